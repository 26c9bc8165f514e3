from __future__ import annotations

from typing import Any, Dict, Optional


class SigningError(RuntimeError):
    """Base domain error for the signing service; carries the HTTP status to report."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code


class DocumentNotFoundError(SigningError):
    status_code = 404


class AlreadySignedError(SigningError):
    status_code = 409


class DocumentLockedError(SigningError):
    status_code = 423


class DocumentUnavailableError(SigningError):
    status_code = 410


class SigningValidationError(SigningError):
    status_code = 400


class SignatureUploadError(SigningValidationError):
    pass


class UpstreamFetchError(SigningError):
    status_code = 502


class RenderError(SigningError):
    status_code = 500


class StorageError(SigningError):
    status_code = 500


class CommitError(StorageError):
    """Artifact is uploaded but the terminal status change did not persist."""


class NotificationError(SigningError):
    status_code = 500
