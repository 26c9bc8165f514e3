from . import documents, health, notifications, public_signing

__all__ = [
    "documents",
    "health",
    "notifications",
    "public_signing",
]
