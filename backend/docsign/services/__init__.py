from docsign.services.audit import AuditService
from docsign.services.document import DocumentRequestService
from docsign.services.notification import NotificationService
from docsign.services.signing import SigningPipeline
from docsign.services.source import DocumentFetcher

__all__ = [
    "AuditService",
    "DocumentFetcher",
    "DocumentRequestService",
    "NotificationService",
    "SigningPipeline",
]
