"""
Overlay renderer.

Positions one control per mapped field on top of each document page. Absolute
positions are always recomputed from the field map percentages for the current
zoom; nothing measured in pixels is kept between layouts.
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from pypdf import PdfReader, PdfWriter
from reportlab.lib import colors
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from docsign.client.form_state import FormStateEngine
from docsign.fieldmap.schema import FieldDescriptor, FieldMap

DEFAULT_FONT_SIZE = 10.0
CONTROL_HEIGHT_RATIO = 1.8

_STATE_COLORS = {
    "unfilled": ("#D7A04D", "#FFFFFF"),
    "filled": ("#22C55E", "#F0FDF4"),
    "error": ("#EF4444", "#FEF2F2"),
}


class ControlState(str, Enum):
    UNFILLED = "unfilled"
    FILLED = "filled"
    ERROR = "error"


@dataclass(frozen=True)
class PageGeometry:
    width: float
    height: float

    @classmethod
    def from_pdf(cls, pdf_bytes: bytes) -> list["PageGeometry"]:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        return [cls(float(page.mediabox.width), float(page.mediabox.height)) for page in reader.pages]

    def scaled(self, zoom: float) -> "PageGeometry":
        return PageGeometry(self.width * zoom, self.height * zoom)


@dataclass(frozen=True)
class OverlayControl:
    field: FieldDescriptor
    x: float
    y: float
    width: float
    height: float
    font_size: float
    state: ControlState
    value: str


@dataclass(frozen=True)
class PageOverlay:
    page: int
    width: float
    height: float
    zoom: float
    read_only: bool
    controls: tuple[OverlayControl, ...]


def to_absolute(field: FieldDescriptor, rendered: PageGeometry) -> tuple[float, float, float]:
    """(x, y, width) of a field on a rendered page, top-left origin."""
    x = field.left_pct / 100.0 * rendered.width
    y = field.top_pct / 100.0 * rendered.height
    width = field.width_pct / 100.0 * rendered.width
    return x, y, width


def to_percent(x: float, y: float, rendered: PageGeometry) -> tuple[float, float]:
    """Inverse of :func:`to_absolute` for a point: returns (top_pct, left_pct)."""
    return y / rendered.height * 100.0, x / rendered.width * 100.0


class OverlayRenderer:
    def __init__(self, field_map: FieldMap, geometries: Sequence[PageGeometry], zoom: float = 1.0) -> None:
        self.field_map = field_map
        self.geometries = list(geometries)
        self.zoom = zoom

    @property
    def zoom(self) -> float:
        return self._zoom

    @zoom.setter
    def zoom(self, value: float) -> None:
        if value <= 0:
            raise ValueError("zoom must be positive")
        self._zoom = float(value)

    @property
    def page_count(self) -> int:
        return len(self.geometries)

    def control_state(self, field: FieldDescriptor, state: FormStateEngine, show_errors: bool) -> ControlState:
        if state.is_filled(field):
            return ControlState.FILLED
        if show_errors and state.is_required(field):
            return ControlState.ERROR
        return ControlState.UNFILLED

    def layout_page(self, page: int, state: FormStateEngine, show_errors: bool = False) -> PageOverlay:
        if page < 1 or page > len(self.geometries):
            raise IndexError(f"page {page} outside document (1..{len(self.geometries)})")
        rendered = self.geometries[page - 1].scaled(self._zoom)
        fields = self.field_map.fields_for_page(page)

        controls: list[OverlayControl] = []
        for field in fields:
            if not state.is_active(field):
                continue
            x, y, width = to_absolute(field, rendered)
            font_size = (field.font_size or DEFAULT_FONT_SIZE) * self._zoom
            controls.append(
                OverlayControl(
                    field=field,
                    x=x,
                    y=y,
                    width=width,
                    height=font_size * CONTROL_HEIGHT_RATIO,
                    font_size=font_size,
                    state=self.control_state(field, state, show_errors),
                    value=state.value(field.id),
                )
            )

        return PageOverlay(
            page=page,
            width=rendered.width,
            height=rendered.height,
            zoom=self._zoom,
            read_only=not fields,
            controls=tuple(controls),
        )

    def layout(self, state: FormStateEngine, show_errors: bool = False) -> list[PageOverlay]:
        return [self.layout_page(page, state, show_errors) for page in range(1, len(self.geometries) + 1)]

    def render_preview(self, pdf_bytes: bytes, state: FormStateEngine, show_errors: bool = False) -> bytes:
        """Scale every page by the current zoom and draw the overlay controls on it."""
        reader = PdfReader(io.BytesIO(pdf_bytes))
        writer = PdfWriter()

        for page_number, page in enumerate(reader.pages, start=1):
            page.scale_by(self._zoom)
            overlay = self.layout_page(page_number, state, show_errors)
            if overlay.controls:
                stream = io.BytesIO()
                c = canvas.Canvas(stream, pagesize=(overlay.width, overlay.height))
                for control in overlay.controls:
                    self._draw_control(c, overlay, control)
                c.save()
                stream.seek(0)
                page.merge_page(PdfReader(stream).pages[0])
            writer.add_page(page)

        output = io.BytesIO()
        writer.write(output)
        return output.getvalue()

    def _draw_control(self, c: canvas.Canvas, overlay: PageOverlay, control: OverlayControl) -> None:
        stroke, fill = _STATE_COLORS[control.state.value]
        # Canvas origin is bottom-left.
        bottom = overlay.height - control.y - control.height
        c.setStrokeColor(colors.HexColor(stroke))
        c.setFillColor(colors.HexColor(fill))
        c.setLineWidth(0.8)
        c.rect(control.x, bottom, control.width, control.height, stroke=1, fill=1)

        text = self.field_map.display_value(control.field.id, control.value) if control.value else control.field.label
        font_name = "Helvetica" if control.value else "Helvetica-Oblique"
        c.setFillColor(colors.HexColor("#111827" if control.value else "#9CA3AF"))
        c.setFont(font_name, control.font_size)
        max_width = max(control.width - 4, 1)
        while len(text) > 1 and pdfmetrics.stringWidth(text, font_name, control.font_size) > max_width:
            text = text[:-1]
        c.drawString(control.x + 2, bottom + (control.height - control.font_size) / 2 + 1, text)
