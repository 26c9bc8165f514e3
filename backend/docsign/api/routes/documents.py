from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from sqlmodel import Session

from docsign.api.deps import get_db, require_admin_key
from docsign.schemas.audit import AuditEventList, AuditEventRead
from docsign.schemas.document import DocumentLockRead, DocumentVersionList, DocumentVersionRead, LockRequest
from docsign.services.audit import AuditService
from docsign.services.document import DocumentRequestService

router = APIRouter(prefix="/documents", tags=["documents"], dependencies=[Depends(require_admin_key)])


@router.post("/{document_id}/lock", response_model=DocumentLockRead)
def lock_document(
    document_id: UUID,
    payload: Optional[LockRequest] = Body(default=None),
    session: Session = Depends(get_db),
) -> DocumentLockRead:
    """Administrative hold: a locked document refuses drafts and signatures."""
    document = DocumentRequestService(session).lock(
        document_id,
        reason=payload.reason if payload else None,
        actor="admin-api",
    )
    return DocumentLockRead(document_id=document.id, status=document.status, locked_at=document.locked_at)


@router.get("/{document_id}/versions", response_model=DocumentVersionList)
def list_versions(document_id: UUID, session: Session = Depends(get_db)) -> DocumentVersionList:
    versions = DocumentRequestService(session).list_versions(document_id)
    return DocumentVersionList(
        document_id=document_id,
        items=[DocumentVersionRead.model_validate(version) for version in versions],
    )


@router.get("/{document_id}/audit", response_model=AuditEventList)
def list_audit_events(
    document_id: UUID,
    action: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
    session: Session = Depends(get_db),
) -> AuditEventList:
    DocumentRequestService(session).get(document_id)
    items, total = AuditService(session).list_events(
        document_id=document_id,
        action=action,
        page=max(page, 1),
        page_size=min(max(page_size, 1), 200),
    )
    return AuditEventList(
        items=[AuditEventRead.from_log(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )
