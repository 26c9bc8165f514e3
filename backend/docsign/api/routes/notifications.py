from fastapi import APIRouter, Depends
from sqlmodel import Session

from docsign.api.deps import get_db, require_admin_key
from docsign.core.config import settings
from docsign.models.notification import NotificationStatus
from docsign.schemas.notification import NotificationRead, NotificationRetryResult
from docsign.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"], dependencies=[Depends(require_admin_key)])


@router.post("/retry", response_model=NotificationRetryResult)
def retry_failed_notifications(limit: int = 50, session: Session = Depends(get_db)) -> NotificationRetryResult:
    service = NotificationService(session)
    service.apply_email_settings(settings)
    entries = service.retry_failed(limit=min(max(limit, 1), 500))
    sent = sum(1 for entry in entries if entry.status == NotificationStatus.SENT)
    return NotificationRetryResult(
        attempted=len(entries),
        sent=sent,
        failed=len(entries) - sent,
        items=[NotificationRead.model_validate(entry) for entry in entries],
    )
