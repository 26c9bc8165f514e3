# noqa: F401 to ensure models are imported for metadata
from docsign.models.audit import SigningAuditLog
from docsign.models.document import DocumentRequest, DocumentVersion, SignedDocument
from docsign.models.notification import NotificationOutbox

__all__ = [
    "SigningAuditLog",
    "DocumentRequest",
    "DocumentVersion",
    "SignedDocument",
    "NotificationOutbox",
]
