import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from docsign.models.audit import AuditAction, SigningAuditLog

logger = logging.getLogger("docsign.audit")


class AuditService:
    """Append-only signing audit trail. Recording never fails the caller."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def record(
        self,
        document_id: UUID,
        action: AuditAction | str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SigningAuditLog | None:
        try:
            log = SigningAuditLog(
                document_id=document_id,
                action=AuditAction(action).value,
                ip_address=ip_address,
                user_agent=user_agent,
                details=dict(metadata or {}),
            )
            self.session.add(log)
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.warning("Audit event %s for document %s was not recorded: %s", action, document_id, exc)
            return None
        return log

    def list_events(
        self,
        document_id: UUID | None = None,
        action: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[SigningAuditLog], int]:
        query = select(SigningAuditLog)
        if document_id:
            query = query.where(SigningAuditLog.document_id == document_id)
        if action:
            query = query.where(SigningAuditLog.action == action)

        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = self.session.exec(
            query.order_by(SigningAuditLog.created_at.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return list(items), int(total or 0)
