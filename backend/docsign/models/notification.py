from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlmodel import Field

from docsign.models.base import TimestampedModel, UUIDModel


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class NotificationOutbox(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "notification_outbox"

    document_id: UUID = Field(foreign_key="document_requests.id", index=True)
    recipient: str = Field(max_length=255)
    kind: str = Field(max_length=32)
    subject: str
    html_body: str
    text_body: str | None = Field(default=None)
    attachment_path: str | None = Field(default=None)
    attachment_name: str | None = Field(default=None, max_length=255)
    status: NotificationStatus = Field(default=NotificationStatus.FAILED, index=True)
    attempts: int = Field(default=0)
    last_error: str | None = Field(default=None)
