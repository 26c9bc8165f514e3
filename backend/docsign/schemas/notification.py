from datetime import datetime
from typing import List
from uuid import UUID

from docsign.models.notification import NotificationStatus
from docsign.schemas.common import CamelModel


class NotificationRead(CamelModel):
    id: UUID
    document_id: UUID
    recipient: str
    kind: str
    status: NotificationStatus
    attempts: int
    last_error: str | None
    created_at: datetime
    updated_at: datetime | None


class NotificationRetryResult(CamelModel):
    attempted: int
    sent: int
    failed: int
    items: List[NotificationRead]
