from docsign.schemas import audit, common, document, notification, signing

__all__ = ["audit", "common", "document", "notification", "signing"]
