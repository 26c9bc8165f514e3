from datetime import datetime
from typing import Any, List
from uuid import UUID

from pydantic import Field

from docsign.models.document import DocumentStatus
from docsign.schemas.common import CamelModel


class PublicDocumentRead(CamelModel):
    status: DocumentStatus
    can_sign: bool
    reason: str | None = None
    document_id: UUID | None = None
    document_url: str | None = None
    original_filename: str | None = None
    form_field_responses: dict[str, str] = Field(default_factory=dict)
    signer_name: str | None = None
    signed_at: datetime | None = None


class DraftUpdate(CamelModel):
    form_field_responses: dict[str, Any] = Field(default_factory=dict)


class DraftSaved(CamelModel):
    document_id: UUID
    saved_field_count: int
    updated_at: datetime | None


class DocumentVersionRead(CamelModel):
    id: UUID
    version_number: int
    file_url: str
    document_hash: str | None
    created_by: str | None
    created_at: datetime


class DocumentVersionList(CamelModel):
    document_id: UUID
    items: List[DocumentVersionRead]


class LockRequest(CamelModel):
    reason: str | None = None


class DocumentLockRead(CamelModel):
    document_id: UUID
    status: DocumentStatus
    locked_at: datetime | None
