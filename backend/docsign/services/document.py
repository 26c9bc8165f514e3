from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from sqlmodel import Session, select

from docsign.core.errors import (
    AlreadySignedError,
    DocumentLockedError,
    DocumentNotFoundError,
    DocumentUnavailableError,
    SigningError,
)
from docsign.models.audit import AuditAction
from docsign.models.document import DocumentRequest, DocumentStatus, DocumentVersion
from docsign.services.audit import AuditService

logger = logging.getLogger("docsign.document")


def normalize_form_data(raw: Mapping[str, Any] | None) -> dict[str, str]:
    """String-keyed, string-valued copy of submitted responses; ``None`` values are dropped."""
    normalized: dict[str, str] = {}
    for key, value in (raw or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        normalized[str(key)] = str(value)
    return normalized


def precondition_error(document: DocumentRequest | None) -> SigningError | None:
    """First failing signing precondition, in NotFound, AlreadySigned, Locked, Unavailable order."""
    if document is None:
        return DocumentNotFoundError("Document not found.")
    if document.status == DocumentStatus.SIGNED:
        signed_at = document.signed_at.isoformat() if document.signed_at else None
        return AlreadySignedError(
            "This document has already been signed.",
            details={"signerName": document.signer_name, "signedAt": signed_at},
        )
    if document.locked_at is not None:
        return DocumentLockedError("This document is locked and cannot be signed.")
    if document.status != DocumentStatus.PENDING:
        return DocumentUnavailableError(f"This document is {document.status.value} and can no longer be signed.")
    return None


class DocumentRequestService:
    def __init__(self, session: Session, audit: AuditService | None = None) -> None:
        self.session = session
        self.audit = audit or AuditService(session)

    def get(self, document_id: UUID) -> DocumentRequest:
        document = self.session.get(DocumentRequest, document_id)
        if not document:
            raise DocumentNotFoundError("Document not found.")
        return document

    def get_by_token(self, token: str) -> DocumentRequest:
        document = self.session.exec(
            select(DocumentRequest).where(DocumentRequest.signing_token == token)
        ).first()
        if not document:
            raise DocumentNotFoundError("Signing link is invalid.")
        return document

    def ensure_signable(self, document: DocumentRequest | None) -> DocumentRequest:
        error = precondition_error(document)
        if error is not None or document is None:
            raise error or DocumentNotFoundError("Document not found.")
        return document

    def save_draft(
        self,
        document_id: UUID,
        responses: Mapping[str, Any],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> DocumentRequest:
        document = self.ensure_signable(self.session.get(DocumentRequest, document_id))
        partial = normalize_form_data(responses)

        merged = dict(document.form_field_responses or {})
        merged.update(partial)
        # Reassign so the JSON column is flagged dirty.
        document.form_field_responses = merged
        document.updated_at = datetime.utcnow()
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)

        self.audit.record(
            document.id,
            AuditAction.PROGRESS_SAVED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"fieldCount": len(partial)},
        )
        return document

    def lock(self, document_id: UUID, *, reason: str | None = None, actor: str | None = None) -> DocumentRequest:
        document = self.get(document_id)
        if document.status == DocumentStatus.SIGNED:
            raise precondition_error(document)
        if document.locked_at is None:
            document.locked_at = datetime.utcnow()
            document.updated_at = document.locked_at
            self.session.add(document)
            self.session.commit()
            self.session.refresh(document)
            logger.info("Document %s locked by %s", document.id, actor or "admin")
            self.audit.record(document.id, AuditAction.LOCKED, metadata={"reason": reason, "actor": actor})
        return document

    def list_versions(self, document_id: UUID) -> list[DocumentVersion]:
        self.get(document_id)
        return list(
            self.session.exec(
                select(DocumentVersion)
                .where(DocumentVersion.document_id == document_id)
                .order_by(DocumentVersion.version_number.asc())
            ).all()
        )

    def latest_version(self, document_id: UUID) -> DocumentVersion | None:
        return self.session.exec(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number.desc())
        ).first()

    def mark_downloaded(
        self,
        document: DocumentRequest,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.audit.record(document.id, AuditAction.DOWNLOADED, ip_address=ip_address, user_agent=user_agent)
