from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Field

from docsign.models.base import TimestampedModel, UUIDModel


class AuditAction(str, Enum):
    VIEWED = "viewed"
    FIELD_UPDATED = "field_updated"
    PROGRESS_SAVED = "progress_saved"
    SIGNED = "signed"
    LOCKED = "locked"
    DOWNLOADED = "downloaded"


# Actions the public (unauthenticated) signer page may append on its own.
CLIENT_AUDIT_ACTIONS = frozenset({AuditAction.VIEWED, AuditAction.FIELD_UPDATED, AuditAction.PROGRESS_SAVED})


class SigningAuditLog(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "signing_audit_log"

    document_id: UUID = Field(foreign_key="document_requests.id", index=True)
    action: str = Field(index=True, max_length=32)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None)
    details: dict | None = Field(default_factory=dict, sa_type=JSON)
