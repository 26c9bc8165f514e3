from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping
from uuid import UUID

import httpx

from docsign.client.signature_capture import SignatureImage
from docsign.core.config import settings
from docsign.fieldmap import FieldMap

logger = logging.getLogger("docsign.client")


@dataclass(frozen=True)
class AlreadySignedResult:
    """Someone completed the signature first. Not a failure from the signer's point of view."""

    message: str
    signer_name: str | None = None
    signed_at: str | None = None


class SigningApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = dict(payload or {})

    @property
    def already_signed(self) -> AlreadySignedResult | None:
        if self.status_code != 409:
            return None
        return AlreadySignedResult(
            message=str(self),
            signer_name=self.payload.get("signerName"),
            signed_at=self.payload.get("signedAt"),
        )


@dataclass(frozen=True)
class PublicDocument:
    status: str
    can_sign: bool
    reason: str | None = None
    document_id: UUID | None = None
    document_url: str | None = None
    original_filename: str | None = None
    form_field_responses: dict[str, str] = field(default_factory=dict)
    signer_name: str | None = None
    signed_at: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "PublicDocument":
        raw_id = data.get("documentId")
        return cls(
            status=str(data.get("status", "")),
            can_sign=bool(data.get("canSign")),
            reason=data.get("reason"),
            document_id=UUID(str(raw_id)) if raw_id else None,
            document_url=data.get("documentUrl"),
            original_filename=data.get("originalFilename"),
            form_field_responses={str(k): str(v) for k, v in (data.get("formFieldResponses") or {}).items()},
            signer_name=data.get("signerName"),
            signed_at=data.get("signedAt"),
        )


@dataclass(frozen=True)
class SignedReceipt:
    document_id: UUID
    signed_file_url: str
    document_hash: str | None = None
    version_number: int | None = None
    signed_at: str | None = None


class SigningApiClient:
    """Async client for the public signing endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.public_base_url).rstrip("/"),
            timeout=timeout or settings.document_fetch_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "SigningApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_field_map(self) -> FieldMap:
        response = await self._request("GET", "/public/fields")
        return FieldMap.from_schema(response.json())

    async def fetch_document(self, token: str) -> PublicDocument:
        response = await self._request("GET", f"/public/sign/{token}")
        return PublicDocument.from_payload(response.json())

    async def fetch_original(self, document_id: UUID) -> bytes:
        response = await self._request("GET", f"/public/documents/{document_id}/original")
        return response.content

    async def save_draft(self, document_id: UUID | str, form_data: Mapping[str, str]) -> None:
        await self._request(
            "PATCH",
            f"/public/documents/{document_id}/draft",
            json={"formFieldResponses": dict(form_data)},
        )

    async def record_event(
        self,
        document_id: UUID | str,
        action: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        response = await self._request(
            "POST",
            f"/public/documents/{document_id}/events",
            json={"action": action, "metadata": dict(metadata or {})},
        )
        return bool(response.json().get("recorded"))

    async def submit_signature(
        self,
        document_id: UUID | str,
        *,
        signer_name: str,
        signature: SignatureImage,
        form_data: Mapping[str, str],
    ) -> SignedReceipt:
        response = await self._request(
            "POST",
            "/public/signatures",
            json={
                "documentId": str(document_id),
                "signerName": signer_name,
                "signatureImage": signature.data_url(),
                "signatureType": signature.signature_type.value,
                "formData": dict(form_data),
            },
        )
        data = response.json()
        return SignedReceipt(
            document_id=UUID(str(data["documentId"])),
            signed_file_url=data["signedFileUrl"],
            document_hash=data.get("documentHash"),
            version_number=data.get("versionNumber"),
            signed_at=data.get("signedAt"),
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise SigningApiError(f"Could not reach the signing service: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}
            message = payload.get("error") or f"HTTP {response.status_code}"
            raise SigningApiError(str(message), status_code=response.status_code, payload=payload)
        return response
