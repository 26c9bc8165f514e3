"""
One signer's editing session: form state, signature, autosave and submission
wired to the signing API.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from docsign.client.api_client import AlreadySignedResult, PublicDocument, SignedReceipt, SigningApiClient, SigningApiError
from docsign.client.autosave import AutosaveSession, SaveStatus, StatusListener
from docsign.client.form_state import Completion, FormStateEngine
from docsign.client.signature_capture import SignatureCapture, SignatureType
from docsign.fieldmap import HOST_CONTRACT, FieldMap

logger = logging.getLogger("docsign.client.session")


class SubmissionInProgressError(RuntimeError):
    pass


class SubmissionBlockedError(ValueError):
    """Submission refused locally; nothing was sent."""

    def __init__(self, missing_fields: list[str], *, needs_signer_name: bool, needs_signature: bool) -> None:
        parts = []
        if missing_fields:
            parts.append(f"{len(missing_fields)} required field(s) empty")
        if needs_signer_name:
            parts.append("signer name missing")
        if needs_signature:
            parts.append("signature missing")
        super().__init__(", ".join(parts))
        self.missing_fields = missing_fields
        self.needs_signer_name = needs_signer_name
        self.needs_signature = needs_signature


@dataclass(frozen=True)
class SubmitResult:
    receipt: SignedReceipt | None = None
    already_signed: AlreadySignedResult | None = None

    @property
    def signed_by_me(self) -> bool:
        return self.receipt is not None


class SigningSession:
    def __init__(
        self,
        api: SigningApiClient,
        document: PublicDocument,
        *,
        field_map: FieldMap = HOST_CONTRACT,
        autosave_delay: float | None = None,
        on_save_status: StatusListener | None = None,
    ) -> None:
        self.api = api
        self.document = document
        self.form = FormStateEngine(field_map, initial=document.form_field_responses)
        self.capture = SignatureCapture(SignatureType.DRAWN)
        self.signer_name = ""
        self.show_errors = False
        self.autosave: AutosaveSession | None = None
        if document.can_sign and document.document_id is not None:
            self.autosave = AutosaveSession(
                str(document.document_id),
                api.save_draft,
                delay=autosave_delay,
                on_status=on_save_status,
            )
        self._submitting = False
        self._result: SubmitResult | None = None

    @classmethod
    async def open(
        cls,
        api: SigningApiClient,
        token: str,
        *,
        field_map: FieldMap = HOST_CONTRACT,
        autosave_delay: float | None = None,
    ) -> "SigningSession":
        document = await api.fetch_document(token)
        return cls(api, document, field_map=field_map, autosave_delay=autosave_delay)

    @property
    def read_only(self) -> bool:
        return self._result is not None or self.autosave is None

    @property
    def completion(self) -> Completion:
        return self.form.completion()

    @property
    def save_status(self) -> SaveStatus:
        return self.autosave.status if self.autosave else SaveStatus.IDLE

    @property
    def submitting(self) -> bool:
        return self._submitting

    def set_field(self, field_id: str, value: str | None) -> None:
        """Apply an edit and restart the autosave debounce. Must run inside the event loop."""
        if self.read_only or self.autosave is None:
            raise RuntimeError("This document can no longer be edited.")
        self.form.set_field(field_id, value)
        # Send empty strings too so a cleared field overwrites the stored draft.
        self.autosave.schedule(self.form.values)

    async def submit(self) -> SubmitResult:
        if self._submitting:
            raise SubmissionInProgressError("A signature submission is already in progress.")
        if self._result is not None:
            return self._result
        if self.autosave is None or self.document.document_id is None:
            raise RuntimeError("This document cannot be signed.")

        missing = self.form.missing_for_submission()
        needs_name = not self.signer_name.strip()
        needs_signature = not self.capture.has_signature
        if missing or needs_name or needs_signature:
            self.show_errors = True
            raise SubmissionBlockedError(missing, needs_signer_name=needs_name, needs_signature=needs_signature)

        signature = self.capture.current
        if signature is None:
            raise RuntimeError("No signature has been captured.")
        self._submitting = True
        # The final payload carries the whole form, so a pending draft write is redundant.
        self.autosave.close()
        try:
            receipt = await self.api.submit_signature(
                self.document.document_id,
                signer_name=self.signer_name.strip(),
                signature=signature,
                form_data=self.form.snapshot(),
            )
        except SigningApiError as exc:
            already = exc.already_signed
            if already is None:
                logger.warning("Signature submission for %s failed: %s", self.document.document_id, exc)
                raise
            self._result = SubmitResult(already_signed=already)
            return self._result
        finally:
            self._submitting = False

        self._result = SubmitResult(receipt=receipt)
        return self._result

    async def close(self) -> None:
        """Leave the page: flush a pending draft unless the document is finished."""
        if self.autosave is None:
            return
        if self._result is None and self.autosave.status == SaveStatus.PENDING:
            await self.autosave.flush()
        self.autosave.close()
