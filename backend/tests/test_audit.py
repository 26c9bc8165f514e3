from uuid import uuid4

from sqlmodel import Session, select

from docsign.models.audit import AuditAction, SigningAuditLog
from docsign.services.audit import AuditService


def test_audit_service_records_events(db_session: Session, make_document) -> None:
    document = make_document()
    service = AuditService(db_session)

    log = service.record(
        document.id,
        AuditAction.VIEWED,
        ip_address="127.0.0.1",
        user_agent="pytest",
        metadata={"source": "link"},
    )

    assert log is not None
    stored = db_session.exec(select(SigningAuditLog)).one()
    assert stored.action == "viewed"
    assert stored.ip_address == "127.0.0.1"
    assert stored.details == {"source": "link"}


def test_audit_failures_are_swallowed(db_session: Session, make_document, caplog) -> None:
    document = make_document()
    service = AuditService(db_session)

    assert service.record(document.id, "teleported") is None
    assert "was not recorded" in caplog.text

    # The session is still usable afterwards.
    assert service.record(document.id, AuditAction.DOWNLOADED) is not None


def test_list_events_filters_and_paginates(db_session: Session, make_document) -> None:
    document = make_document()
    other = make_document()
    service = AuditService(db_session)
    for action in (AuditAction.VIEWED, AuditAction.FIELD_UPDATED, AuditAction.FIELD_UPDATED, AuditAction.SIGNED):
        service.record(document.id, action)
    service.record(other.id, AuditAction.VIEWED)

    items, total = service.list_events(document_id=document.id)
    assert total == 4
    assert [item.action for item in items] == ["viewed", "field_updated", "field_updated", "signed"]

    items, total = service.list_events(document_id=document.id, action="field_updated", page=2, page_size=1)
    assert total == 2
    assert len(items) == 1

    _, total = service.list_events(document_id=uuid4())
    assert total == 0
