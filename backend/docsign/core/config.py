from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global settings for the signing service.
    Values are read from the environment and from the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_name: str = "DocSign Signing API"
    api_v1_str: str = "/api/v1"
    debug: bool = False
    log_file: Optional[str] = None

    # Admin routes (X-Admin-Key header)
    admin_api_key: Optional[str] = None

    # Database
    database_url: str = "sqlite:///./dev.db"

    # Storage (local directory or S3 / MinIO)
    docsign_storage: str = "_storage"
    s3_endpoint_url: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_bucket_documents: str = "agreements"

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Public URLs (links placed in e-mails and download locations)
    public_base_url: str = "http://localhost:8000"
    public_app_url: str = "http://localhost:5173"

    # E-mail
    email_backend: str = "smtp"
    email_sender: str = "DocSign Signing <noreply@docsign.local>"
    admin_email: str = "support@docsign.local"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_starttls: bool = True
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"

    # Signing pipeline
    document_fetch_timeout_seconds: float = 20.0
    render_timeout_seconds: float = 30.0

    # Client-side engines
    autosave_debounce_seconds: float = 1.5
    signature_max_upload_bytes: int = 5 * 1024 * 1024
    signature_font_dir: Optional[str] = None

    def resolved_public_app_url(self) -> str:
        """Public base URL used in e-mails and signing links."""
        base = (self.public_app_url or "").strip()
        if base:
            return base.rstrip("/")
        return (self.public_base_url or "").rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Return the cached global settings instance."""
    return Settings()


settings = get_settings()
