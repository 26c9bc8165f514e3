from docsign.client.api_client import AlreadySignedResult, PublicDocument, SignedReceipt, SigningApiClient, SigningApiError
from docsign.client.autosave import AutosaveSession, SaveStatus
from docsign.client.form_state import Completion, FormStateEngine, UnknownFieldError
from docsign.client.overlay import ControlState, OverlayRenderer, PageGeometry
from docsign.client.session import SigningSession, SubmissionBlockedError, SubmissionInProgressError, SubmitResult
from docsign.client.signature_capture import (
    DrawnSignaturePad,
    SignatureCapture,
    SignatureImage,
    SignatureType,
    TypedSignatureRenderer,
    load_uploaded_signature,
)

__all__ = [
    "AlreadySignedResult",
    "AutosaveSession",
    "Completion",
    "ControlState",
    "DrawnSignaturePad",
    "FormStateEngine",
    "OverlayRenderer",
    "PageGeometry",
    "PublicDocument",
    "SaveStatus",
    "SignatureCapture",
    "SignatureImage",
    "SignatureType",
    "SignedReceipt",
    "SigningApiClient",
    "SigningApiError",
    "SigningSession",
    "SubmissionBlockedError",
    "SubmissionInProgressError",
    "SubmitResult",
    "TypedSignatureRenderer",
    "UnknownFieldError",
    "load_uploaded_signature",
]
