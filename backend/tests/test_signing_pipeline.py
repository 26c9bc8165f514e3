import base64
import io
import logging
from datetime import datetime

import httpx
import pytest
from PIL import Image
from pypdf import PdfReader
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from docsign.core.errors import (
    AlreadySignedError,
    CommitError,
    DocumentLockedError,
    DocumentNotFoundError,
    DocumentUnavailableError,
    RenderError,
    SigningValidationError,
    UpstreamFetchError,
)
from docsign.models.audit import SigningAuditLog
from docsign.models.document import DocumentRequest, DocumentStatus, DocumentVersion, SignedDocument
from docsign.models.notification import NotificationOutbox, NotificationStatus
from docsign.services.signing import SignatureSubmission, SigningPipeline, decode_signature_image
from docsign.services.source import DocumentFetcher


def _submission(document_id, signature_png: bytes, **overrides) -> SignatureSubmission:
    values = {
        "document_id": document_id,
        "signer_name": "Jane Doe",
        "signature_image": "data:image/png;base64," + base64.b64encode(signature_png).decode("ascii"),
        "form_data": {"host_name": "Jane Doe"},
        "ip_address": "10.0.0.7",
        "user_agent": "pytest",
    }
    values.update(overrides)
    return SignatureSubmission(**values)


def _actions(db_session: Session, document_id) -> list[str]:
    logs = db_session.exec(
        select(SigningAuditLog).where(SigningAuditLog.document_id == document_id).order_by(SigningAuditLog.created_at)
    ).all()
    return [log.action for log in logs]


def test_sign_stamps_uploads_and_commits(db_session, storage, make_document, signature_png) -> None:
    document = make_document()
    result = SigningPipeline(db_session, storage=storage).sign(_submission(document.id, signature_png))

    db_session.refresh(document)
    assert document.status == DocumentStatus.SIGNED
    assert document.signer_name == "Jane Doe"
    assert document.signer_ip == "10.0.0.7"
    assert document.document_hash == result.document_hash
    assert document.form_field_responses == {"host_name": "Jane Doe"}

    assert result.signed_file_path == f"signed/{document.id}-{result.document_hash[:16]}.pdf"
    assert result.signed_file_url.endswith(f"/public/documents/{document.id}/signed")
    assert result.version_number == 1

    versions = db_session.exec(select(DocumentVersion).where(DocumentVersion.document_id == document.id)).all()
    assert [(v.version_number, v.file_url) for v in versions] == [(1, result.signed_file_path)]
    signed = db_session.exec(select(SignedDocument).where(SignedDocument.request_id == document.id)).one()
    assert signed.signature_type == "drawn"

    reader = PdfReader(io.BytesIO(storage.load_bytes(result.signed_file_path)))
    assert len(reader.pages) == 4
    for page in reader.pages[:3]:
        assert "Jane Doe" in page.extract_text()
    assert "Host name: Jane Doe" in reader.pages[-1].extract_text()

    assert "signed" in _actions(db_session, document.id)


def test_second_submission_is_already_signed(db_session, storage, make_document, signature_png) -> None:
    document = make_document()
    pipeline = SigningPipeline(db_session, storage=storage)
    pipeline.sign(_submission(document.id, signature_png))

    with pytest.raises(AlreadySignedError) as excinfo:
        pipeline.sign(_submission(document.id, signature_png, signer_name="Someone Else"))

    assert excinfo.value.status_code == 409
    assert excinfo.value.details["signerName"] == "Jane Doe"
    versions = db_session.exec(select(DocumentVersion).where(DocumentVersion.document_id == document.id)).all()
    assert len(versions) == 1


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({"status": DocumentStatus.EXPIRED}, DocumentUnavailableError),
        ({"status": DocumentStatus.CANCELLED}, DocumentUnavailableError),
        ({"locked_at": datetime(2025, 1, 1)}, DocumentLockedError),
        ({"status": DocumentStatus.SIGNED, "locked_at": datetime(2025, 1, 1)}, AlreadySignedError),
        ({"status": DocumentStatus.EXPIRED, "locked_at": datetime(2025, 1, 1)}, DocumentLockedError),
    ],
)
def test_preconditions_are_checked_in_order(db_session, storage, make_document, signature_png, overrides, expected):
    document = make_document(**overrides)
    with pytest.raises(expected):
        SigningPipeline(db_session, storage=storage).sign(_submission(document.id, signature_png))


def test_unknown_document_is_not_found(db_session, storage, signature_png) -> None:
    from uuid import uuid4

    with pytest.raises(DocumentNotFoundError):
        SigningPipeline(db_session, storage=storage).sign(_submission(uuid4(), signature_png))


def test_payload_validation(db_session, storage, make_document, signature_png) -> None:
    document = make_document()
    pipeline = SigningPipeline(db_session, storage=storage)

    with pytest.raises(SigningValidationError):
        pipeline.sign(_submission(document.id, signature_png, signer_name="   "))
    with pytest.raises(SigningValidationError):
        pipeline.sign(_submission(document.id, signature_png, signature_image="not base64!"))
    with pytest.raises(SigningValidationError):
        pipeline.sign(_submission(document.id, signature_png, signature_type="stamped"))

    db_session.refresh(document)
    assert document.status == DocumentStatus.PENDING


def test_decode_signature_image_accepts_plain_base64(signature_png) -> None:
    decoded = decode_signature_image(base64.b64encode(signature_png).decode("ascii"))
    assert decoded.startswith(b"\x89PNG")
    with pytest.raises(SigningValidationError):
        decode_signature_image(base64.b64encode(b"plain text").decode("ascii"))


def test_upstream_failure_leaves_document_pending(db_session, storage, make_document, signature_png) -> None:
    document = make_document(document_url="https://files.example.com/agreements/host.pdf")
    fetcher = DocumentFetcher(storage, transport=httpx.MockTransport(lambda request: httpx.Response(503)))

    with pytest.raises(UpstreamFetchError) as excinfo:
        SigningPipeline(db_session, storage=storage, fetcher=fetcher).sign(_submission(document.id, signature_png))

    assert excinfo.value.status_code == 502
    db_session.refresh(document)
    assert document.status == DocumentStatus.PENDING
    assert db_session.exec(select(DocumentVersion)).all() == []
    assert not (storage.base_dir / "signed").exists()


def test_http_original_is_fetched(db_session, storage, make_document, original_pdf, signature_png) -> None:
    document = make_document(document_url="https://files.example.com/agreements/host.pdf")
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, content=original_pdf, headers={"Content-Type": "application/pdf"})

    fetcher = DocumentFetcher(storage, transport=httpx.MockTransport(handler))
    result = SigningPipeline(db_session, storage=storage, fetcher=fetcher).sign(_submission(document.id, signature_png))

    assert requested == ["https://files.example.com/agreements/host.pdf"]
    assert result.version_number == 1


def test_render_timeout_is_a_render_error(db_session, storage, make_document, signature_png, monkeypatch) -> None:
    import time

    document = make_document()
    pipeline = SigningPipeline(db_session, storage=storage, render_timeout=0.05)
    monkeypatch.setattr(pipeline.stamper, "stamp", lambda original, request: time.sleep(0.5) or b"")

    with pytest.raises(RenderError):
        pipeline.sign(_submission(document.id, signature_png))

    db_session.refresh(document)
    assert document.status == DocumentStatus.PENDING


def test_notification_failure_does_not_fail_signing(db_session, storage, make_document, signature_png, caplog):
    document = make_document()

    with caplog.at_level(logging.ERROR, logger="docsign.notification"):
        result = SigningPipeline(db_session, storage=storage).sign(_submission(document.id, signature_png))

    db_session.refresh(document)
    assert document.status == DocumentStatus.SIGNED
    assert result.version_number == 1

    outbox = db_session.exec(select(NotificationOutbox).where(NotificationOutbox.document_id == document.id)).all()
    assert {entry.recipient for entry in outbox} == {"admin@fleet.example", "host@example.com"}
    assert all(entry.status == NotificationStatus.FAILED for entry in outbox)
    assert all(entry.attachment_path == result.signed_file_path for entry in outbox)
    assert "Email sender not configured" in caplog.text


def test_losing_the_terminal_commit_race(db_engine, db_session, storage, make_document, signature_png) -> None:
    document = make_document()
    document_id = document.id

    class RacingFetcher(DocumentFetcher):
        def fetch(self, url: str) -> bytes:
            data = super().fetch(url)
            # Another request commits first.
            with Session(db_engine) as other:
                winner = other.get(DocumentRequest, document_id)
                winner.status = DocumentStatus.SIGNED
                winner.signer_name = "First Signer"
                winner.signed_at = datetime(2025, 1, 2, 3, 4, 5)
                other.add(winner)
                other.commit()
            return data

    pipeline = SigningPipeline(db_session, storage=storage, fetcher=RacingFetcher(storage))
    with pytest.raises(AlreadySignedError) as excinfo:
        pipeline.sign(_submission(document_id, signature_png))

    assert excinfo.value.details["signerName"] == "First Signer"
    assert db_session.exec(select(DocumentVersion)).all() == []
    refreshed = db_session.get(DocumentRequest, document_id)
    assert refreshed.signer_name == "First Signer"


def test_commit_failure_is_reported_with_artifact(db_session, storage, make_document, signature_png, monkeypatch):
    document = make_document()
    original_commit = db_session.commit
    calls = {"count": 0}

    def failing_commit() -> None:
        calls["count"] += 1
        raise OperationalError("UPDATE document_requests", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(CommitError) as excinfo:
        SigningPipeline(db_session, storage=storage).sign(_submission(document.id, signature_png))
    monkeypatch.setattr(db_session, "commit", original_commit)

    artifact = excinfo.value.details["artifact"]
    assert artifact.startswith(f"signed/{document.id}-")
    assert (storage.base_dir / artifact).exists()
    assert calls["count"] == 1
    db_session.refresh(document)
    assert document.status == DocumentStatus.PENDING


def test_decompression_bomb_is_a_validation_error(monkeypatch, signature_png) -> None:
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    with pytest.raises(SigningValidationError):
        decode_signature_image(base64.b64encode(signature_png).decode("ascii"))
