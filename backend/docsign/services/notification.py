from __future__ import annotations

import base64
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import parseaddr
from pathlib import Path
from typing import Optional, Sequence

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlmodel import Session, select

from docsign.models.document import DocumentRequest
from docsign.models.notification import NotificationOutbox, NotificationStatus
from docsign.services.storage import StorageBackend, get_storage

logger = logging.getLogger("docsign.notification")


@dataclass
class EmailConfig:
    host: str
    port: int
    username: str | None
    password: str | None
    sender: str
    starttls: bool


@dataclass
class ResendConfig:
    api_key: str
    sender: str
    api_url: str = "https://api.resend.com/emails"


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


class NotificationService:
    """
    Post-signing e-mails to the admin and the client.

    Every message is written to the notification outbox with its outcome, so a
    delivery failure never reaches the signer and can be retried later.
    """

    def __init__(
        self,
        session: Session,
        *,
        storage: StorageBackend | None = None,
        email_config: Optional[EmailConfig] = None,
        resend_config: Optional[ResendConfig] = None,
        email_backend: str = "smtp",
        template_root: Path | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.session = session
        self.storage = storage or get_storage()
        self.email_config = email_config
        self.resend_config = resend_config
        normalized_backend = (email_backend or "smtp").strip().lower()
        self.email_backend = normalized_backend if normalized_backend in {"smtp", "resend"} else "smtp"
        if self.resend_config and not self.email_config:
            self.email_backend = "resend"
        self.template_root = template_root or Path(__file__).resolve().parent.parent / "templates"
        self.template_env = Environment(
            loader=FileSystemLoader(self.template_root),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self._transport = transport

    def apply_email_settings(self, settings) -> None:  # type: ignore[no-untyped-def]
        preferred = (getattr(settings, "email_backend", "smtp") or "smtp").strip().lower()
        sender = getattr(settings, "email_sender", None)
        resend_key = getattr(settings, "resend_api_key", None)
        resend_url = getattr(settings, "resend_api_url", None) or ResendConfig.api_url
        smtp_host = getattr(settings, "smtp_host", None)
        smtp_port = getattr(settings, "smtp_port", None)

        def use_resend() -> bool:
            if resend_key and sender:
                self.configure_resend(api_key=resend_key, sender=sender, api_url=resend_url)
                return True
            return False

        def use_smtp() -> bool:
            if smtp_host and sender and smtp_port:
                self.configure_email(
                    host=smtp_host,
                    port=int(smtp_port),
                    sender=sender,
                    username=getattr(settings, "smtp_username", None),
                    password=getattr(settings, "smtp_password", None),
                    starttls=bool(getattr(settings, "smtp_starttls", True)),
                )
                return True
            return False

        if preferred == "resend":
            if not use_resend():
                use_smtp()
            return
        if not use_smtp():
            use_resend()

    def configure_email(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
    ) -> None:
        self.email_config = EmailConfig(
            host=host,
            port=port,
            username=username,
            password=password,
            sender=sender,
            starttls=starttls,
        )
        self.email_backend = "smtp"

    def configure_resend(self, *, api_key: str, sender: str, api_url: str = ResendConfig.api_url) -> None:
        self.resend_config = ResendConfig(api_key=api_key, sender=sender, api_url=api_url)
        self.email_backend = "resend"

    def _render_template(self, template_name: str, context: dict) -> str:
        template = self.template_env.get_template(template_name)
        return template.render(**context)

    # ------------------------------------------------------------------
    # Signed-document notifications
    # ------------------------------------------------------------------
    def notify_document_signed(
        self,
        document: DocumentRequest,
        *,
        signed_file_path: str,
        fields: Sequence[tuple[str, str]] = (),
        download_url: str | None = None,
        admin_email: str | None = None,
    ) -> list[NotificationOutbox]:
        signer_name = document.signer_name or "The signer"
        signed_at = (document.signed_at or datetime.utcnow()).strftime("%B %d, %Y at %H:%M UTC")
        document_name = document.original_filename or "the agreement"
        attachment_name = f"signed-{str(document.id)[:8]}.pdf"
        context = {
            "signer_name": signer_name,
            "document_name": document_name,
            "document_id": str(document.id),
            "signed_at": signed_at,
            "client_email": document.client_email,
            "document_hash": document.document_hash,
            "fields": list(fields),
            "download_url": download_url,
        }

        messages: list[tuple[str, str, str, str, str]] = []
        admin_recipient = document.admin_email or admin_email
        if admin_recipient:
            messages.append(
                (
                    "signed_admin",
                    admin_recipient,
                    f"Agreement signed by {signer_name}",
                    self._render_template("email/document_signed_admin.html", context),
                    f"{signer_name} signed {document_name} on {signed_at}.\nDocument ID: {document.id}\n",
                )
            )
        if document.client_email:
            messages.append(
                (
                    "signed_client",
                    document.client_email,
                    "Your signed agreement",
                    self._render_template("email/document_signed_client.html", context),
                    f"Hello {signer_name},\n\nYour signature was recorded on {signed_at}. "
                    "A copy of the signed agreement is attached.\n",
                )
            )

        seen: set[str] = set()
        entries: list[NotificationOutbox] = []
        for kind, recipient, subject, html_body, text_body in messages:
            if recipient.lower() in seen:
                continue
            seen.add(recipient.lower())
            entry = NotificationOutbox(
                document_id=document.id,
                recipient=recipient,
                kind=kind,
                subject=subject,
                html_body=html_body,
                text_body=text_body,
                attachment_path=signed_file_path,
                attachment_name=attachment_name,
            )
            entries.append(self._deliver(entry))
        return entries

    def retry_failed(self, *, limit: int = 50) -> list[NotificationOutbox]:
        pending = self.session.exec(
            select(NotificationOutbox)
            .where(NotificationOutbox.status == NotificationStatus.FAILED)
            .order_by(NotificationOutbox.created_at.asc())
            .limit(limit)
        ).all()
        return [self._deliver(entry) for entry in pending]

    def _deliver(self, entry: NotificationOutbox) -> NotificationOutbox:
        entry.attempts += 1
        entry.updated_at = datetime.utcnow()
        try:
            attachments = []
            if entry.attachment_path:
                attachments.append(
                    EmailAttachment(
                        filename=entry.attachment_name or Path(entry.attachment_path).name,
                        content=self.storage.load_bytes(entry.attachment_path),
                    )
                )
            self._send_email(
                to=entry.recipient,
                subject=entry.subject,
                html_body=entry.html_body,
                text_body=entry.text_body,
                attachments=attachments,
            )
        except Exception as exc:
            entry.status = NotificationStatus.FAILED
            entry.last_error = str(exc)
            logger.error(
                "Notification %s to %s for document %s failed: %s",
                entry.kind,
                entry.recipient,
                entry.document_id,
                exc,
            )
        else:
            entry.status = NotificationStatus.SENT
            entry.last_error = None

        try:
            self.session.add(entry)
            self.session.commit()
            self.session.refresh(entry)
        except Exception as exc:
            self.session.rollback()
            logger.error("Could not persist notification outbox entry for %s: %s", entry.recipient, exc)
        return entry

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------
    def _send_email(
        self,
        *,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        attachments: Sequence[EmailAttachment] | None = None,
    ) -> None:
        if self.email_backend == "resend":
            self._send_email_via_resend(
                to=to,
                subject=subject,
                html_body=html_body,
                text_body=text_body,
                attachments=list(attachments or []),
            )
            return

        if not self.email_config:
            raise RuntimeError("Email sender not configured")

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.email_config.sender
        message["To"] = to

        message.set_content(text_body or "", subtype="plain", charset="utf-8")
        message.add_alternative(html_body, subtype="html", charset="utf-8")

        for attachment in attachments or []:
            maintype, subtype = "application", "octet-stream"
            if attachment.mime_type and "/" in attachment.mime_type:
                maintype, subtype = attachment.mime_type.split("/", 1)
            message.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )

        with smtplib.SMTP(self.email_config.host, self.email_config.port, timeout=30) as smtp:
            if self.email_config.starttls:
                smtp.starttls()
            if self.email_config.username and self.email_config.password:
                smtp.login(self.email_config.username, self.email_config.password)
            smtp.send_message(message)

    def _send_email_via_resend(
        self,
        *,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None,
        attachments: Sequence[EmailAttachment],
    ) -> None:
        if not self.resend_config:
            raise RuntimeError("Resend sender not configured")

        _, email = parseaddr(self.resend_config.sender)
        if not email:
            raise RuntimeError("Resend sender address invalid")

        payload: dict[str, object] = {
            "from": self.resend_config.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            payload["text"] = text_body
        if attachments:
            payload["attachments"] = [
                {
                    "filename": item.filename,
                    "content": base64.b64encode(item.content).decode("ascii"),
                }
                for item in attachments
            ]

        headers = {
            "Authorization": f"Bearer {self.resend_config.api_key}",
            "Content-Type": "application/json",
        }
        with httpx.Client(timeout=30, transport=self._transport) as client:
            response = client.post(self.resend_config.api_url, headers=headers, json=payload)
        response.raise_for_status()
