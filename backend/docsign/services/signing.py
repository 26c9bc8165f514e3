"""
Signing pipeline.

fetch original -> stamp (bounded time) -> upload -> terminal commit -> audit
-> notify. The terminal commit is the only step that changes the document's
status and it does so with a single conditional UPDATE, so at most one
submission ever wins.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from PIL import Image, UnidentifiedImageError
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from docsign.client.signature_capture import SignatureType
from docsign.core.config import settings
from docsign.core.errors import CommitError, RenderError, SigningValidationError
from docsign.fieldmap import HOST_CONTRACT, FieldMap
from docsign.models.audit import AuditAction
from docsign.models.document import DocumentRequest, DocumentStatus, DocumentVersion, SignedDocument
from docsign.services.audit import AuditService
from docsign.services.document import DocumentRequestService, normalize_form_data, precondition_error
from docsign.services.notification import NotificationService
from docsign.services.source import DocumentFetcher
from docsign.services.stamping import PdfStamper, StampRequest, summary_rows
from docsign.services.storage import StorageBackend, get_storage

logger = logging.getLogger("docsign.signing")

SIGNED_ROOT = "signed"

_render_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="docsign-render")


@dataclass
class SignatureSubmission:
    document_id: UUID
    signer_name: str
    signature_image: str
    signature_type: str = SignatureType.DRAWN.value
    form_data: Mapping[str, Any] = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SigningResult:
    document_id: UUID
    signed_file_path: str
    signed_file_url: str
    document_hash: str
    version_number: int
    signed_at: datetime


def decode_signature_image(value: str) -> bytes:
    """Base64 PNG (data-URL prefix allowed) to normalized PNG bytes."""
    raw = (value or "").strip()
    if raw.startswith("data:"):
        header, _, raw = raw.partition(",")
        if ";base64" not in header:
            raise SigningValidationError("Signature image must be base64 encoded.")
    if not raw:
        raise SigningValidationError("A signature is required.")
    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SigningValidationError("Signature image is not valid base64.") from exc

    try:
        with Image.open(io.BytesIO(decoded)) as img:
            img.load()
            buffer = io.BytesIO()
            img.convert("RGBA").save(buffer, format="PNG")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise SigningValidationError("Signature image could not be decoded.") from exc
    return buffer.getvalue()


def signed_download_url(document_id: UUID) -> str:
    base = (settings.public_base_url or "").rstrip("/")
    return f"{base}/public/documents/{document_id}/signed"


class SigningPipeline:
    def __init__(
        self,
        session: Session,
        *,
        field_map: FieldMap = HOST_CONTRACT,
        storage: StorageBackend | None = None,
        fetcher: DocumentFetcher | None = None,
        notifications: NotificationService | None = None,
        audit: AuditService | None = None,
        render_timeout: float | None = None,
    ) -> None:
        self.session = session
        self.field_map = field_map
        self.storage = storage or get_storage()
        self.fetcher = fetcher or DocumentFetcher(self.storage)
        self.audit = audit or AuditService(session)
        self.documents = DocumentRequestService(session, self.audit)
        if notifications is None:
            notifications = NotificationService(session, storage=self.storage)
            notifications.apply_email_settings(settings)
        self.notifications = notifications
        self.stamper = PdfStamper(field_map)
        self.render_timeout = render_timeout or settings.render_timeout_seconds

    def sign(self, submission: SignatureSubmission) -> SigningResult:
        document = self.documents.ensure_signable(self.session.get(DocumentRequest, submission.document_id))

        signer_name = (submission.signer_name or "").strip()
        if not signer_name:
            raise SigningValidationError("Signer name is required.")
        try:
            signature_type = SignatureType(submission.signature_type)
        except ValueError as exc:
            raise SigningValidationError(f"Unknown signature type {submission.signature_type!r}.") from exc
        signature_png = decode_signature_image(submission.signature_image)
        form_data = normalize_form_data(submission.form_data)

        original = self.fetcher.fetch(document.document_url)

        signed_at = datetime.utcnow()
        stamped = self._render(
            original,
            StampRequest(
                document_id=str(document.id),
                signer_name=signer_name,
                signed_at=signed_at,
                signature_png=signature_png,
                form_data=form_data,
            ),
        )

        digest = hashlib.sha256(stamped).hexdigest()
        path = self.storage.save_bytes(root=SIGNED_ROOT, name=f"{document.id}-{digest[:16]}.pdf", data=stamped)

        version_number = self._commit(
            document,
            signer_name=signer_name,
            signature_type=signature_type,
            form_data=form_data,
            signed_at=signed_at,
            path=path,
            digest=digest,
            ip_address=submission.ip_address,
            user_agent=submission.user_agent,
        )
        logger.info("Document %s signed by %s (version %s)", document.id, signer_name, version_number)

        self.audit.record(
            document.id,
            AuditAction.SIGNED,
            ip_address=submission.ip_address,
            user_agent=submission.user_agent,
            metadata={
                "signerName": signer_name,
                "signatureType": signature_type.value,
                "documentHash": digest,
                "versionNumber": version_number,
            },
        )
        self._notify(document, path, form_data)

        return SigningResult(
            document_id=document.id,
            signed_file_path=path,
            signed_file_url=signed_download_url(document.id),
            document_hash=digest,
            version_number=version_number,
            signed_at=signed_at,
        )

    def _render(self, original: bytes, request: StampRequest) -> bytes:
        future = _render_pool.submit(self.stamper.stamp, original, request)
        try:
            return future.result(timeout=self.render_timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            logger.error("Rendering document %s exceeded %ss", request.document_id, self.render_timeout)
            raise RenderError("Rendering the signed document timed out.") from exc

    def _commit(
        self,
        document: DocumentRequest,
        *,
        signer_name: str,
        signature_type: SignatureType,
        form_data: dict[str, str],
        signed_at: datetime,
        path: str,
        digest: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> int:
        document_id = document.id
        try:
            current = self.session.exec(
                select(func.max(DocumentVersion.version_number)).where(DocumentVersion.document_id == document_id)
            ).one()
            version_number = int(current or 0) + 1

            stmt = (
                update(DocumentRequest)
                .where(
                    DocumentRequest.id == document_id,
                    DocumentRequest.status == DocumentStatus.PENDING,
                    DocumentRequest.locked_at.is_(None),
                )
                .values(
                    status=DocumentStatus.SIGNED,
                    signed_at=signed_at,
                    signer_name=signer_name,
                    signer_ip=ip_address,
                    signer_user_agent=user_agent,
                    form_field_responses=form_data,
                    document_hash=digest,
                    updated_at=signed_at,
                )
            )
            result = self.session.connection().execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                self._raise_lost_race(document_id, path)

            self.session.add(
                DocumentVersion(
                    document_id=document_id,
                    version_number=version_number,
                    file_url=path,
                    document_hash=digest,
                    created_by=signer_name,
                    created_at=signed_at,
                )
            )
            self.session.add(
                SignedDocument(
                    request_id=document_id,
                    signed_file_url=path,
                    signer_name=signer_name,
                    signed_at=signed_at,
                    document_hash=digest,
                    signature_type=signature_type.value,
                )
            )
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            self._raise_lost_race(document_id, path)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.critical(
                "Signed artifact %s for document %s was stored but the commit failed: %s",
                path,
                document_id,
                exc,
            )
            raise CommitError(
                "The signed document was stored but could not be recorded.",
                details={"artifact": path},
            ) from exc

        self.session.refresh(document)
        return version_number

    def _raise_lost_race(self, document_id: UUID, path: str) -> None:
        current = self.session.get(DocumentRequest, document_id, populate_existing=True)
        error = precondition_error(current)
        logger.warning("Signing %s lost the terminal commit; artifact %s is unreferenced", document_id, path)
        if error is None:
            raise CommitError("The document changed while it was being signed.", details={"artifact": path})
        raise error

    def _notify(self, document: DocumentRequest, path: str, form_data: Mapping[str, str]) -> None:
        try:
            self.notifications.notify_document_signed(
                document,
                signed_file_path=path,
                fields=summary_rows(self.field_map, form_data),
                download_url=signed_download_url(document.id),
                admin_email=settings.admin_email,
            )
        except Exception as exc:
            logger.error("Notifications for signed document %s failed: %s", document.id, exc)
