import hmac
from typing import Annotated, Generator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlmodel import Session

from docsign.core.config import settings
from docsign.db.session import get_session
from docsign.services.signing import SigningPipeline


def get_db() -> Generator[Session, None, None]:
    yield from get_session()


def get_signing_pipeline(session: Annotated[Session, Depends(get_db)]) -> SigningPipeline:
    return SigningPipeline(session)


def require_admin_key(x_admin_key: Annotated[str | None, Header()] = None) -> None:
    expected = settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API is not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")


def client_info(request: Request) -> tuple[str | None, str | None]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    else:
        ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")
