from __future__ import annotations

from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlmodel import Session

from docsign.api.deps import client_info, get_db, get_signing_pipeline
from docsign.core.errors import DocumentNotFoundError, SigningValidationError
from docsign.fieldmap import HOST_CONTRACT
from docsign.models.audit import CLIENT_AUDIT_ACTIONS, AuditAction
from docsign.models.document import DocumentRequest, DocumentStatus
from docsign.schemas.audit import ClientAuditEvent
from docsign.schemas.document import DraftSaved, DraftUpdate, PublicDocumentRead
from docsign.schemas.signing import SignaturePayload, SignatureResult
from docsign.services.audit import AuditService
from docsign.services.document import DocumentRequestService, precondition_error
from docsign.services.signing import SignatureSubmission, SigningPipeline
from docsign.services.source import DocumentFetcher
from docsign.services.storage import get_storage

router = APIRouter(prefix="/public", tags=["public-signing"])


@router.get("/fields")
def get_field_map() -> List[dict[str, Any]]:
    return HOST_CONTRACT.to_schema()


@router.get("/sign/{token}", response_model=PublicDocumentRead)
def open_signing_link(token: str, request: Request, session: Session = Depends(get_db)) -> PublicDocumentRead:
    """Resolve a signing link. The internal document id is only exposed while the document is signable."""
    service = DocumentRequestService(session)
    document = service.get_by_token(token)
    ip_address, user_agent = client_info(request)
    service.audit.record(document.id, AuditAction.VIEWED, ip_address=ip_address, user_agent=user_agent)

    error = precondition_error(document)
    if error is not None:
        return PublicDocumentRead(
            status=document.status,
            can_sign=False,
            reason=str(error),
            original_filename=document.original_filename,
            signer_name=document.signer_name,
            signed_at=document.signed_at,
        )
    return PublicDocumentRead(
        status=document.status,
        can_sign=True,
        document_id=document.id,
        document_url=document.document_url,
        original_filename=document.original_filename,
        form_field_responses=dict(document.form_field_responses or {}),
    )


@router.get("/documents/{document_id}/original")
def download_original(document_id: UUID, session: Session = Depends(get_db)) -> Response:
    service = DocumentRequestService(session)
    document = service.ensure_signable(session.get(DocumentRequest, document_id))
    content = DocumentFetcher(get_storage()).fetch(document.document_url)
    return Response(content=content, media_type="application/pdf")


@router.patch("/documents/{document_id}/draft", response_model=DraftSaved)
def save_draft(
    document_id: UUID,
    payload: DraftUpdate,
    request: Request,
    session: Session = Depends(get_db),
) -> DraftSaved:
    ip_address, user_agent = client_info(request)
    document = DocumentRequestService(session).save_draft(
        document_id,
        payload.form_field_responses,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return DraftSaved(
        document_id=document.id,
        saved_field_count=len(payload.form_field_responses),
        updated_at=document.updated_at,
    )


@router.post("/documents/{document_id}/events", status_code=status.HTTP_202_ACCEPTED)
def record_client_event(
    document_id: UUID,
    payload: ClientAuditEvent,
    request: Request,
    session: Session = Depends(get_db),
) -> dict[str, bool]:
    if payload.action not in CLIENT_AUDIT_ACTIONS:
        raise SigningValidationError(f"Action {payload.action.value!r} cannot be recorded by the signer.")
    document = DocumentRequestService(session).get(document_id)
    ip_address, user_agent = client_info(request)
    log = AuditService(session).record(
        document.id,
        payload.action,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata=payload.metadata,
    )
    return {"recorded": log is not None}


@router.post("/signatures", response_model=SignatureResult)
def submit_signature(
    payload: SignaturePayload,
    request: Request,
    pipeline: SigningPipeline = Depends(get_signing_pipeline),
) -> SignatureResult:
    ip_address, user_agent = client_info(request)
    result = pipeline.sign(
        SignatureSubmission(
            document_id=payload.document_id,
            signer_name=payload.signer_name,
            signature_image=payload.signature_image,
            signature_type=payload.signature_type.value,
            form_data=payload.form_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    )
    return SignatureResult(
        document_id=result.document_id,
        signed_file_url=result.signed_file_url,
        document_hash=result.document_hash,
        version_number=result.version_number,
        signed_at=result.signed_at,
    )


@router.get("/documents/{document_id}/signed")
def download_signed(document_id: UUID, request: Request, session: Session = Depends(get_db)) -> Response:
    service = DocumentRequestService(session)
    document = service.get(document_id)
    version = service.latest_version(document_id) if document.status == DocumentStatus.SIGNED else None
    if version is None:
        raise DocumentNotFoundError("No signed version is available for this document.")

    try:
        content = get_storage().load_bytes(version.file_url)
    except FileNotFoundError as exc:
        raise DocumentNotFoundError("Signed file is missing from storage.") from exc

    ip_address, user_agent = client_info(request)
    service.mark_downloaded(document, ip_address=ip_address, user_agent=user_agent)
    filename = f"signed-{str(document.id)[:8]}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
