"""
Signature capture.

Three producers of the same output, a PNG raster wrapped in
:class:`SignatureImage`: a freehand drawing pad, a typed name rendered in a
decorative font, and an uploaded image. :class:`SignatureCapture` keeps at most
one signature and discards it whenever the mode changes.
"""
from __future__ import annotations

import base64
import io
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from docsign.core.config import settings
from docsign.core.errors import SignatureUploadError


class SignatureType(str, Enum):
    DRAWN = "drawn"
    TYPED = "typed"
    UPLOADED = "uploaded"


@dataclass(frozen=True)
class SignatureImage:
    png: bytes
    signature_type: SignatureType

    def to_base64(self) -> str:
        return base64.b64encode(self.png).decode("ascii")

    def data_url(self) -> str:
        return f"data:image/png;base64,{self.to_base64()}"

    @property
    def size(self) -> tuple[int, int]:
        with Image.open(io.BytesIO(self.png)) as img:
            return img.size


def _export_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


# ----------------------------------------------------------------------
# Drawn
# ----------------------------------------------------------------------
@dataclass
class DrawnSignaturePad:
    width: int = 500
    height: int = 200
    stroke_width: int = 3
    color: str = "#111111"
    strokes: list[list[tuple[float, float]]] = field(default_factory=list)
    _active: Optional[list[tuple[float, float]]] = field(default=None, repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.strokes

    def _clamp(self, x: float, y: float) -> tuple[float, float]:
        return min(max(x, 0.0), float(self.width)), min(max(y, 0.0), float(self.height))

    def pointer_down(self, x: float, y: float) -> None:
        self._active = [self._clamp(x, y)]
        self.strokes.append(self._active)

    def pointer_move(self, x: float, y: float) -> None:
        if self._active is None:
            return
        self._active.append(self._clamp(x, y))

    def pointer_up(self) -> SignatureImage | None:
        """Finish the current stroke and export the surface."""
        self._active = None
        return self.export()

    def clear(self) -> None:
        self.strokes = []
        self._active = None

    def export(self) -> SignatureImage | None:
        if self.is_empty:
            return None
        image = Image.new("RGBA", (self.width, self.height), (255, 255, 255, 0))
        draw = ImageDraw.Draw(image)
        radius = self.stroke_width / 2
        for stroke in self.strokes:
            if len(stroke) == 1:
                x, y = stroke[0]
                draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=self.color)
            else:
                draw.line(stroke, fill=self.color, width=self.stroke_width, joint="curve")
        return SignatureImage(png=_export_png(image), signature_type=SignatureType.DRAWN)


# ----------------------------------------------------------------------
# Typed
# ----------------------------------------------------------------------
SIGNATURE_FONTS: tuple[tuple[str, str], ...] = (
    ("Dancing Script", "DancingScript-Bold.ttf"),
    ("Great Vibes", "GreatVibes-Regular.ttf"),
    ("Caveat", "Caveat-SemiBold.ttf"),
    ("Sacramento", "Sacramento-Regular.ttf"),
)


class TypedSignatureRenderer:
    WIDTH = 400
    HEIGHT = 120
    FONT_SIZE = 36
    TEXT_X = 20
    RULE_OFFSET = 22
    TEXT_COLOR = "#111111"
    RULE_COLOR = "#D7A04D"

    def __init__(self, font_dir: str | Path | None = None, font_index: int = 0) -> None:
        raw_dir = font_dir or settings.signature_font_dir
        self.font_dir = Path(raw_dir) if raw_dir else None
        self._font_index = 0
        self.select_font(font_index)

    @property
    def font_index(self) -> int:
        return self._font_index

    @property
    def font_name(self) -> str:
        return SIGNATURE_FONTS[self._font_index][0]

    def select_font(self, index: int) -> None:
        if not 0 <= index < len(SIGNATURE_FONTS):
            raise ValueError(f"font index {index} out of range")
        self._font_index = index

    def _load_font(self) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
        if self.font_dir:
            candidate = self.font_dir / SIGNATURE_FONTS[self._font_index][1]
            if candidate.exists():
                return ImageFont.truetype(str(candidate), self.FONT_SIZE)
        return ImageFont.load_default(size=self.FONT_SIZE)

    def render(self, signer_name: str) -> SignatureImage:
        display_name = signer_name.strip() or "Your Name"
        image = Image.new("RGBA", (self.WIDTH, self.HEIGHT), (255, 255, 255, 0))
        draw = ImageDraw.Draw(image)
        font = self._load_font()
        middle = self.HEIGHT / 2

        draw.text((self.TEXT_X, middle), display_name, font=font, fill=self.TEXT_COLOR, anchor="lm")
        text_width = draw.textlength(display_name, font=font)
        rule_y = middle + self.RULE_OFFSET
        draw.line(
            [(self.TEXT_X, rule_y), (self.TEXT_X + text_width, rule_y)],
            fill=self.RULE_COLOR,
            width=2,
        )
        return SignatureImage(png=_export_png(image), signature_type=SignatureType.TYPED)


# ----------------------------------------------------------------------
# Uploaded
# ----------------------------------------------------------------------
def load_uploaded_signature(
    data: bytes,
    content_type: str | None,
    *,
    max_bytes: int | None = None,
) -> SignatureImage:
    limit = max_bytes if max_bytes is not None else settings.signature_max_upload_bytes
    if len(data) > limit:
        raise SignatureUploadError(
            f"Signature image is too large ({len(data)} bytes); the limit is {limit // (1024 * 1024)} MB.",
            details={"size": len(data), "limit": limit},
        )
    mime = (content_type or "").strip().lower()
    if not mime.startswith("image/"):
        raise SignatureUploadError("Please upload an image file (PNG, JPG or similar).", details={"mime": mime})

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            normalized = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise SignatureUploadError("The uploaded file could not be read as an image.") from exc

    return SignatureImage(png=_export_png(normalized), signature_type=SignatureType.UPLOADED)


# ----------------------------------------------------------------------
# Mode selection
# ----------------------------------------------------------------------
class SignatureCapture:
    """Holds the single signature that will be submitted."""

    def __init__(self, mode: SignatureType = SignatureType.DRAWN) -> None:
        self._mode = mode
        self._current: SignatureImage | None = None

    @property
    def mode(self) -> SignatureType:
        return self._mode

    @property
    def current(self) -> SignatureImage | None:
        return self._current

    @property
    def has_signature(self) -> bool:
        return self._current is not None

    def switch_mode(self, mode: SignatureType) -> None:
        self._mode = SignatureType(mode)
        self._current = None

    def accept(self, image: SignatureImage | None) -> None:
        if image is None:
            self._current = None
            return
        if image.signature_type != self._mode:
            raise ValueError(f"{image.signature_type.value} signature offered while in {self._mode.value} mode")
        self._current = image

    def clear(self) -> None:
        self._current = None
