from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from docsign.client.signature_capture import SignatureType
from docsign.schemas.common import CamelModel


class SignaturePayload(CamelModel):
    document_id: UUID
    signer_name: str
    signature_image: str
    signature_type: SignatureType = SignatureType.DRAWN
    form_data: dict[str, Any] = Field(default_factory=dict)


class SignatureResult(CamelModel):
    success: bool = True
    document_id: UUID
    signed_file_url: str
    document_hash: str
    version_number: int
    signed_at: datetime
