from datetime import datetime
from typing import Any, List
from uuid import UUID

from pydantic import Field

from docsign.models.audit import AuditAction, SigningAuditLog
from docsign.schemas.common import CamelModel


class ClientAuditEvent(CamelModel):
    action: AuditAction
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditEventRead(CamelModel):
    id: UUID
    document_id: UUID
    action: str
    ip_address: str | None
    user_agent: str | None
    metadata: dict[str, Any] | None
    created_at: datetime

    @classmethod
    def from_log(cls, log: SigningAuditLog) -> "AuditEventRead":
        return cls(
            id=log.id,
            document_id=log.document_id,
            action=log.action,
            ip_address=log.ip_address,
            user_agent=log.user_agent,
            metadata=log.details,
            created_at=log.created_at,
        )


class AuditEventList(CamelModel):
    items: List[AuditEventRead]
    total: int
    page: int
    page_size: int
