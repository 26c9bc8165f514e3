from __future__ import annotations

import io
import os
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas
from sqlmodel import Session, SQLModel, create_engine

from docsign.api.deps import get_db
from docsign.core.config import settings
from docsign.db import session as db_session_module
from docsign.main import app
from docsign.models.document import DocumentRequest, DocumentStatus
from docsign.services.storage import LocalStorage

ADMIN_KEY = "test-admin-key"


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def db_engine(tmp_path):
    test_database_url = os.getenv("TEST_DATABASE_URL")
    if not test_database_url:
        db_path = tmp_path / f"test_{uuid.uuid4().hex}.db"
        test_database_url = f"sqlite:///{db_path}"

    connect_args = {"check_same_thread": False} if test_database_url.startswith("sqlite") else {}
    engine = create_engine(test_database_url, connect_args=connect_args)
    SQLModel.metadata.create_all(bind=engine)

    original_engine = db_session_module.engine
    db_session_module.engine = engine

    def override_dependency():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_dependency

    yield engine

    app.dependency_overrides.pop(get_db, None)
    db_session_module.engine = original_engine
    SQLModel.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def storage_dir(monkeypatch, tmp_path) -> Path:
    directory = tmp_path / "storage"
    directory.mkdir(exist_ok=True)
    monkeypatch.setenv("DOCSIGN_STORAGE", str(directory))
    return directory


@pytest.fixture()
def storage(storage_dir) -> LocalStorage:
    return LocalStorage(base_dir=storage_dir)


@pytest.fixture()
def client(db_engine, storage_dir) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(db_engine) -> Session:
    with Session(db_engine) as session:
        yield session


@pytest.fixture()
def admin_headers(monkeypatch) -> dict[str, str]:
    monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)
    return {"X-Admin-Key": ADMIN_KEY}


def build_pdf(pages: int = 3, pagesize: tuple[float, float] = LETTER) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=pagesize)
    for number in range(1, pages + 1):
        c.setFont("Helvetica", 14)
        c.drawString(72, pagesize[1] - 72, f"Host lease agreement, original page {number}")
        c.showPage()
    c.save()
    return buffer.getvalue()


def build_png(size: tuple[int, int] = (300, 100), color: str = "#1f2937") -> bytes:
    image = Image.new("RGBA", size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(image)
    draw.line([(20, size[1] * 0.7), (size[0] * 0.4, size[1] * 0.3), (size[0] - 20, size[1] * 0.6)], fill=color, width=4)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def pdf_factory():
    return build_pdf


@pytest.fixture()
def original_pdf() -> bytes:
    return build_pdf(pages=3)


@pytest.fixture()
def signature_png() -> bytes:
    return build_png()


@pytest.fixture()
def make_document(db_session: Session, storage: LocalStorage, original_pdf: bytes):
    def factory(**overrides) -> DocumentRequest:
        document_url = overrides.pop("document_url", None)
        if document_url is None:
            document_url = storage.save_bytes(root="originals", name=f"{uuid.uuid4().hex}.pdf", data=original_pdf)
        values = {
            "original_filename": "host-agreement.pdf",
            "admin_email": "admin@fleet.example",
            "client_email": "host@example.com",
            "status": DocumentStatus.PENDING,
        }
        values.update(overrides)
        document = DocumentRequest(document_url=document_url, **values)
        db_session.add(document)
        db_session.commit()
        db_session.refresh(document)
        return document

    return factory
