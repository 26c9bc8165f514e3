from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import Field

from docsign.models.base import TimestampedModel, UUIDModel


class DocumentStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({DocumentStatus.SIGNED, DocumentStatus.EXPIRED, DocumentStatus.CANCELLED})


def _new_signing_token() -> str:
    return uuid4().hex


class DocumentRequest(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "document_requests"

    signing_token: str = Field(default_factory=_new_signing_token, unique=True, index=True, max_length=64)
    admin_email: str = Field(default="support@docsign.local", max_length=255)
    client_email: str | None = Field(default=None, max_length=255)
    document_url: str
    original_filename: str | None = Field(default=None, max_length=255)
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, index=True)
    locked_at: datetime | None = Field(default=None)
    signed_at: datetime | None = Field(default=None)
    form_field_responses: dict | None = Field(default_factory=dict, sa_type=JSON)
    document_hash: str | None = Field(default=None, max_length=128)
    signer_name: str | None = Field(default=None, max_length=255)
    signer_ip: str | None = Field(default=None, max_length=64)
    signer_user_agent: str | None = Field(default=None)


class DocumentVersion(UUIDModel, table=True):
    __tablename__ = "document_versions"
    __table_args__ = (UniqueConstraint("document_id", "version_number", name="uq_document_versions_number"),)

    document_id: UUID = Field(foreign_key="document_requests.id", index=True)
    version_number: int = Field(default=1, ge=1)
    file_url: str
    document_hash: str | None = Field(default=None, max_length=128)
    created_by: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class SignedDocument(UUIDModel, table=True):
    __tablename__ = "signed_documents"

    request_id: UUID = Field(foreign_key="document_requests.id", index=True)
    signed_file_url: str
    signer_name: str
    signed_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    document_hash: str | None = Field(default=None, max_length=128)
    signature_type: str = Field(default="drawn", max_length=16)
