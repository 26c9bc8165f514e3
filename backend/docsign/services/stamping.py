"""
Stamps a signed agreement.

Works on the untouched original bytes every time: the submitted field values
are drawn at their field-map positions, every original page receives an
opaque signature footer, and a summary page is appended.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from pypdf import PdfReader, PdfWriter
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from docsign.core.errors import RenderError
from docsign.fieldmap import FieldMap, humanize_field_id

logger = logging.getLogger("docsign.stamping")

FIELD_FONT = "Helvetica-Bold"
FIELD_FONT_SIZE = 9
FIELD_COLOR = colors.Color(0.05, 0.05, 0.4)

FOOTER_HEIGHT = 60
FOOTER_MARGIN = 36
FOOTER_SIGNATURE_HEIGHT = 30
FOOTER_SIGNATURE_MAX_WIDTH = 100

SUMMARY_SIGNATURE_WIDTH = 250
SUMMARY_SIGNATURE_MAX_HEIGHT = 100
SUMMARY_LINE_HEIGHT = 13
SUMMARY_COLUMN_GAP = 24


@dataclass(frozen=True)
class StampRequest:
    document_id: str
    signer_name: str
    signed_at: datetime
    signature_png: bytes
    form_data: Mapping[str, str] = field(default_factory=dict)


def format_signed_at(value: datetime) -> str:
    return value.strftime("%B %d, %Y at %I:%M %p UTC")


def short_document_id(document_id: str) -> str:
    return f"{document_id[:8]}..."


def summary_rows(field_map: FieldMap, form_data: Mapping[str, str]) -> list[tuple[str, str]]:
    """Every submitted, non-empty value as (label, display value); mapped fields first, in map order."""
    rows: list[tuple[str, str]] = []
    for descriptor in field_map:
        value = (form_data.get(descriptor.id) or "").strip()
        if value:
            rows.append((field_map.label_for(descriptor.id), field_map.display_value(descriptor.id, value)))
    extras = sorted(key for key in form_data if key not in field_map and (form_data[key] or "").strip())
    rows.extend((humanize_field_id(key), form_data[key].strip()) for key in extras)
    return rows


def _fit(text: str, font: str, size: float, max_width: float) -> str:
    if pdfmetrics.stringWidth(text, font, size) <= max_width:
        return text
    while len(text) > 1 and pdfmetrics.stringWidth(text + "...", font, size) > max_width:
        text = text[:-1]
    return text + "..."


class PdfStamper:
    def __init__(self, field_map: FieldMap) -> None:
        self.field_map = field_map

    def stamp(self, original: bytes, request: StampRequest) -> bytes:
        try:
            reader = PdfReader(io.BytesIO(original))
            total_pages = len(reader.pages)
        except Exception as exc:
            raise RenderError(f"Original document could not be read: {exc}") from exc
        if total_pages == 0:
            raise RenderError("Original document has no pages.")

        try:
            signature = ImageReader(io.BytesIO(request.signature_png))
            sig_w, sig_h = signature.getSize()
        except Exception as exc:
            raise RenderError(f"Signature image could not be used: {exc}") from exc

        writer = PdfWriter()
        try:
            for page_number, page in enumerate(reader.pages, start=1):
                if page.rotation:
                    page.transfer_rotation_to_content()
                box = page.mediabox
                width = float(box.width)
                height = float(box.height)
                stream = io.BytesIO()
                overlay = canvas.Canvas(stream, pagesize=(float(box.right), float(box.top)))
                # Page user space may not start at the origin.
                overlay.translate(float(box.left), float(box.bottom))
                self._draw_field_values(overlay, page_number, width, height, request.form_data)
                self._draw_footer(overlay, width, request, signature, (sig_w, sig_h), page_number, total_pages)
                overlay.save()
                stream.seek(0)
                page.merge_page(PdfReader(stream).pages[0])
                writer.add_page(page)

            summary = PdfReader(io.BytesIO(self._summary_page(request, signature, (sig_w, sig_h), total_pages)))
            for summary_page in summary.pages:
                writer.add_page(summary_page)

            output = io.BytesIO()
            writer.write(output)
        except RenderError:
            raise
        except Exception as exc:
            logger.exception("Stamping failed for document %s", request.document_id)
            raise RenderError(f"Failed to render the signed document: {exc}") from exc
        return output.getvalue()

    def _draw_field_values(
        self,
        c: canvas.Canvas,
        page_number: int,
        width: float,
        height: float,
        form_data: Mapping[str, str],
    ) -> None:
        c.setFillColor(FIELD_COLOR)
        for descriptor in self.field_map.fields_for_page(page_number):
            value = (form_data.get(descriptor.id) or "").strip()
            if not value:
                continue
            size = descriptor.font_size or FIELD_FONT_SIZE
            x = width * descriptor.left_pct / 100
            y = height * (1 - descriptor.top_pct / 100)
            text = _fit(
                self.field_map.display_value(descriptor.id, value),
                FIELD_FONT,
                size,
                max(width * descriptor.width_pct / 100, size),
            )
            c.setFont(FIELD_FONT, size)
            c.drawString(x, y, text)

    def _draw_footer(
        self,
        c: canvas.Canvas,
        width: float,
        request: StampRequest,
        signature: ImageReader,
        signature_size: tuple[int, int],
        page_number: int,
        total_pages: int,
    ) -> None:
        c.setFillColor(colors.white)
        c.rect(0, 0, width, FOOTER_HEIGHT, stroke=0, fill=1)
        c.setStrokeColor(colors.HexColor("#D1D5DB"))
        c.setLineWidth(0.5)
        c.line(0, FOOTER_HEIGHT, width, FOOTER_HEIGHT)

        src_w, src_h = signature_size
        draw_h = float(FOOTER_SIGNATURE_HEIGHT)
        draw_w = src_w * draw_h / src_h if src_h else FOOTER_SIGNATURE_MAX_WIDTH
        if draw_w > FOOTER_SIGNATURE_MAX_WIDTH:
            draw_w = float(FOOTER_SIGNATURE_MAX_WIDTH)
            draw_h = src_h * draw_w / src_w if src_w else draw_h
        c.drawImage(
            signature,
            FOOTER_MARGIN,
            (FOOTER_HEIGHT - draw_h) / 2,
            width=draw_w,
            height=draw_h,
            mask="auto",
        )

        text_x = FOOTER_MARGIN + draw_w + 12
        c.setFillColor(colors.HexColor("#111827"))
        c.setFont("Helvetica-Bold", 9)
        c.drawString(text_x, 34, f"Signed by: {request.signer_name}")
        c.setFont("Helvetica", 8)
        c.drawString(text_x, 22, format_signed_at(request.signed_at))

        c.setFillColor(colors.HexColor("#4B5563"))
        c.drawRightString(width - FOOTER_MARGIN, 34, f"Page {page_number} of {total_pages}")
        c.drawRightString(width - FOOTER_MARGIN, 22, f"ID: {short_document_id(request.document_id)}")

    def _summary_page(
        self,
        request: StampRequest,
        signature: ImageReader,
        signature_size: tuple[int, int],
        total_pages: int,
    ) -> bytes:
        page_w, page_h = LETTER
        margin = 54
        stream = io.BytesIO()
        c = canvas.Canvas(stream, pagesize=LETTER)

        c.setFillColor(colors.HexColor("#0D0D66"))
        c.setFont("Helvetica-Bold", 18)
        c.drawCentredString(page_w / 2, page_h - 60, "SIGNATURE PAGE")

        c.setFillColor(colors.HexColor("#111827"))
        c.setFont("Helvetica", 11)
        c.drawString(margin, page_h - 100, f"Signed by: {request.signer_name}")
        c.drawString(margin, page_h - 116, f"Date: {format_signed_at(request.signed_at)}")

        src_w, src_h = signature_size
        draw_w = float(SUMMARY_SIGNATURE_WIDTH)
        draw_h = src_h * draw_w / src_w if src_w else SUMMARY_SIGNATURE_MAX_HEIGHT
        if draw_h > SUMMARY_SIGNATURE_MAX_HEIGHT:
            draw_h = float(SUMMARY_SIGNATURE_MAX_HEIGHT)
            draw_w = src_w * draw_h / src_h if src_h else draw_w
        signature_top = page_h - 136
        c.drawImage(signature, margin, signature_top - draw_h, width=draw_w, height=draw_h, mask="auto")
        rule_y = signature_top - draw_h - 6
        c.setStrokeColor(colors.HexColor("#9CA3AF"))
        c.line(margin, rule_y, margin + SUMMARY_SIGNATURE_WIDTH, rule_y)

        c.setFillColor(colors.HexColor("#0D0D66"))
        c.setFont("Helvetica-Bold", 12)
        details_top = rule_y - 30
        c.drawString(margin, details_top, "DOCUMENT DETAILS")

        footer_top = 110
        column_width = (page_w - 2 * margin - SUMMARY_COLUMN_GAP) / 2
        columns = (margin, margin + column_width + SUMMARY_COLUMN_GAP)
        first_row = details_top - 20
        column = 0
        y = first_row
        c.setFillColor(colors.HexColor("#111827"))
        c.setFont("Helvetica", 9)
        for label, value in summary_rows(self.field_map, request.form_data):
            if y < footer_top:
                column += 1
                y = first_row
                if column >= len(columns):
                    c.showPage()
                    c.setFillColor(colors.HexColor("#111827"))
                    c.setFont("Helvetica", 9)
                    column = 0
                    first_row = y = page_h - 60
            c.drawString(columns[column], y, _fit(f"{label}: {value}", "Helvetica", 9, column_width))
            y -= SUMMARY_LINE_HEIGHT

        c.setFillColor(colors.HexColor("#4B5563"))
        c.setFont("Helvetica", 8)
        c.drawString(margin, 80, f"Document ID: {request.document_id}")
        c.drawString(margin, 68, f"Timestamp: {request.signed_at.isoformat()}")
        c.drawString(margin, 56, f"Total pages signed: {total_pages}")
        c.save()
        return stream.getvalue()


def stamp_document(original: bytes, request: StampRequest, field_map: FieldMap) -> bytes:
    return PdfStamper(field_map).stamp(original, request)
