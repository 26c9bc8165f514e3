from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docsign.api.routes import documents, health, notifications, public_signing
from docsign.core.config import settings
from docsign.core.errors import SigningError
from docsign.core.logging_setup import logger
from docsign.db.session import init_db


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    init_db()
    yield


def _normalize_origin(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().rstrip("/")
    return cleaned or None


def _error_body(message: str, details: dict | None = None) -> dict:
    body: dict = {"error": message}
    for key, value in (details or {}).items():
        body.setdefault(key, value)
    return body


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.project_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ===============================================================
    # CORS
    # ===============================================================
    public_front_base = settings.resolved_public_app_url()
    raw_origins = list(settings.allowed_origins) + ([public_front_base] if public_front_base else [])
    origins: list[str] = []
    for item in raw_origins:
        normalized = _normalize_origin(item)
        if normalized and normalized not in origins:
            origins.append(normalized)
    logger.info("CORS origins: %s", origins)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ===============================================================
    # Error mapping
    # ===============================================================
    @application.exception_handler(SigningError)
    async def signing_error_handler(request: Request, exc: SigningError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc), exc.details))

    @application.exception_handler(StarletteHTTPException)
    async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "; ".join(messages) or "Invalid request."},
        )

    # ===============================================================
    # Routes
    # ===============================================================
    application.include_router(health.router)
    application.include_router(public_signing.router)
    application.include_router(documents.router, prefix=settings.api_v1_str)
    application.include_router(notifications.router, prefix=settings.api_v1_str)

    @application.get("/")
    def root() -> dict[str, str]:
        return {"service": settings.project_name}

    logger.info("%s initialised", settings.project_name)
    return application


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000, log_level="debug" if settings.debug else "info")


if __name__ == "__main__":
    run()
