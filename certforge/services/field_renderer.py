"""
Field Renderer
Draws text and QR fields onto a PDF page overlay or a raster image
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import qrcode
from babel.dates import format_datetime
from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.colors import Color
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from certforge.schemas.generation import FieldMapping
from certforge.schemas.template import FieldType, TemplateField, TextAlign
from certforge.services.expiry_calculator import parse_date

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMAT = "MMMM dd, yyyy"
DEFAULT_QR_SIZE = 100


@dataclass(frozen=True)
class FontFace:
    pdf_regular: str
    pdf_bold: str
    ttf_regular: Tuple[str, ...]
    ttf_bold: Tuple[str, ...]


_SANS = FontFace(
    "Helvetica",
    "Helvetica-Bold",
    ("DejaVuSans.ttf", "LiberationSans-Regular.ttf", "Arial.ttf", "arial.ttf"),
    ("DejaVuSans-Bold.ttf", "LiberationSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf"),
)
_SERIF = FontFace(
    "Times-Roman",
    "Times-Bold",
    ("DejaVuSerif.ttf", "LiberationSerif-Regular.ttf", "Times New Roman.ttf", "times.ttf"),
    ("DejaVuSerif-Bold.ttf", "LiberationSerif-Bold.ttf", "Times New Roman Bold.ttf", "timesbd.ttf"),
)
_MONO = FontFace(
    "Courier",
    "Courier-Bold",
    ("DejaVuSansMono.ttf", "LiberationMono-Regular.ttf", "Courier New.ttf", "cour.ttf"),
    ("DejaVuSansMono-Bold.ttf", "LiberationMono-Bold.ttf", "Courier New Bold.ttf", "courbd.ttf"),
)

# Template font family -> face; anything else renders as sans-serif
FONT_TABLE = {
    "arial": _SANS,
    "helvetica": _SANS,
    "times": _SERIF,
    "times new roman": _SERIF,
    "times-roman": _SERIF,
    "courier": _MONO,
    "courier new": _MONO,
}

_SYSTEM_FONT_DIRS = (
    Path("/usr/share/fonts/truetype/dejavu"),
    Path("/usr/share/fonts/truetype/liberation"),
    Path("/usr/share/fonts/TTF"),
    Path("/Library/Fonts"),
    Path("C:/Windows/Fonts"),
)


def resolve_font_face(font_family: Optional[str]) -> FontFace:
    return FONT_TABLE.get((font_family or "").strip().lower(), _SANS)


def is_bold(font_weight: Optional[str]) -> bool:
    weight = str(font_weight or "").strip().lower()
    return weight in {"bold", "bolder"} or (weight.isdigit() and int(weight) >= 600)


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    if not hex_color:
        return (0, 0, 0)
    color = hex_color.strip().lstrip("#")
    if len(color) == 3:
        color = "".join(ch * 2 for ch in color)
    if len(color) != 6:
        return (0, 0, 0)
    try:
        return tuple(int(color[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return (0, 0, 0)


def hex_to_unit_rgb(hex_color: str) -> Tuple[float, float, float]:
    r, g, b = hex_to_rgb(hex_color)
    return (r / 255.0, g / 255.0, b / 255.0)


def aligned_x(x: float, width: Optional[float], text_width: float, align: TextAlign) -> float:
    """Left edge of the text inside a field box of the given width"""
    box_width = width or 0
    if align == TextAlign.CENTER:
        return x + (box_width - text_width) / 2
    if align == TextAlign.RIGHT:
        return x + box_width - text_width
    return x


def flip_y(page_height: float, y: float, height: Optional[float]) -> float:
    """Top-left origin -> bottom-left origin for the bottom edge of a box"""
    return page_height - y - (height or 0)


def verification_url(app_url: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/verify/{token}"


def _sanitize_key(value: str) -> str:
    key = re.sub(r"[^a-z0-9_]", "_", value.lower())
    return re.sub(r"_+", "_", key).strip("_")


def find_mapping(field: TemplateField, mappings: Sequence[FieldMapping]) -> Optional[FieldMapping]:
    """
    Locate the column mapping for a field.

    Editors have sent several id flavours over time, so a mapping matches on
    the field id, the id the editor originally generated, the field key, or a
    sanitized form of its own id equal to the field key.
    """
    by_id = {m.field_id: m for m in mappings}
    if field.id in by_id:
        return by_id[field.id]
    original_id = field.style.original_field_id
    if original_id and original_id in by_id:
        return by_id[original_id]
    if field.field_key in by_id:
        return by_id[field.field_key]
    for mapping in mappings:
        if _sanitize_key(mapping.field_id) == field.field_key:
            return mapping
    return None


def format_date_value(raw: str, date_format: Optional[str]) -> str:
    """
    Format a date-typed value with an LDML pattern such as `dd/MM/yyyy`.

    Unparseable dates and unsupported pattern letters leave the value unchanged.
    """
    parsed = parse_date(raw)
    if parsed is None:
        return raw
    try:
        return format_datetime(parsed, date_format or DEFAULT_DATE_FORMAT, tzinfo=parsed.tzinfo, locale="en")
    except (KeyError, ValueError):
        logger.debug("Unsupported date format %r", date_format)
        return raw


def resolve_field_text(
    field: TemplateField,
    mappings: Sequence[FieldMapping],
    row: Mapping[str, Any],
) -> Optional[str]:
    """Final text for a field, or None when the field has no column mapping"""
    mapping = find_mapping(field, mappings)
    if mapping is None:
        logger.debug("No mapping for field %s (%s)", field.id, field.field_key)
        return None
    raw = row.get(mapping.column_name)
    value = "" if raw is None else str(raw)
    if field.is_date and value:
        value = format_date_value(value, field.style.date_format)
    return f"{field.style.prefix}{value}{field.style.suffix}"


def build_qr_image(payload: str) -> Image.Image:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, border=1)
    qr.add_data(payload)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").convert("RGB")


@dataclass
class PdfSurface:
    """reportlab canvas for one page overlay (origin bottom-left)"""
    canvas: canvas.Canvas
    page_width: float
    page_height: float


@dataclass
class ImageSurface:
    """Pillow image (origin top-left)"""
    image: Image.Image
    draw: ImageDraw.ImageDraw

    @classmethod
    def wrap(cls, image: Image.Image) -> "ImageSurface":
        return cls(image=image, draw=ImageDraw.Draw(image))


Surface = Union[PdfSurface, ImageSurface]


class FieldRenderer:
    """Draws template fields for one recipient onto a surface"""

    def __init__(self, app_url: str, fonts_dir: Optional[str] = None):
        self.app_url = app_url
        self.fonts_dir = Path(fonts_dir) if fonts_dir else None

    def render_fields(
        self,
        surface: Surface,
        fields: Sequence[TemplateField],
        mappings: Sequence[FieldMapping],
        row: Mapping[str, Any],
        include_qr: bool,
        verification_token: Optional[str],
    ) -> None:
        for field in fields:
            if field.type == FieldType.QR_CODE:
                if include_qr and verification_token:
                    self.render(surface, field, verification_url(self.app_url, verification_token))
                continue
            value = resolve_field_text(field, mappings, row)
            if value is None:
                continue
            self.render(surface, field, value)

    def render(self, surface: Surface, field: TemplateField, value: str) -> None:
        if field.type == FieldType.QR_CODE:
            if isinstance(surface, PdfSurface):
                self._render_qr_pdf(surface, field, value)
            else:
                self._render_qr_image(surface, field, value)
            return
        if not value:
            return
        if isinstance(surface, PdfSurface):
            self._render_text_pdf(surface, field, value)
        else:
            self._render_text_image(surface, field, value)

    # PDF surfaces

    def _render_text_pdf(self, surface: PdfSurface, field: TemplateField, value: str) -> None:
        style = field.style
        face = resolve_font_face(style.font_family)
        font_name = face.pdf_bold if is_bold(style.font_weight) else face.pdf_regular
        font_size = float(style.font_size)

        text_width = pdfmetrics.stringWidth(value, font_name, font_size)
        x = aligned_x(field.x, field.width, text_width, style.text_align)
        # Baseline sits so the glyphs are centred in the field's height band
        y = surface.page_height - field.y - (field.height or 0) / 2 - font_size / 3

        c = surface.canvas
        c.setFillColor(Color(*hex_to_unit_rgb(style.color)))
        c.setFont(font_name, font_size)
        c.drawString(x, y, value)

    def _render_qr_pdf(self, surface: PdfSurface, field: TemplateField, payload: str) -> None:
        width = field.width or DEFAULT_QR_SIZE
        height = field.height or DEFAULT_QR_SIZE
        qr_image = build_qr_image(payload)
        surface.canvas.drawImage(
            ImageReader(qr_image),
            field.x,
            flip_y(surface.page_height, field.y, height),
            width=width,
            height=height,
        )

    # Raster surfaces

    def _render_text_image(self, surface: ImageSurface, field: TemplateField, value: str) -> None:
        style = field.style
        face = resolve_font_face(style.font_family)
        candidates = face.ttf_bold if is_bold(style.font_weight) else face.ttf_regular
        font = self._load_font(candidates, int(round(style.font_size)))

        left, top, right, bottom = surface.draw.textbbox((0, 0), value, font=font)
        text_width = right - left
        text_height = bottom - top
        x = aligned_x(field.x, field.width, text_width, style.text_align) - left
        y = field.y + ((field.height or 0) - text_height) / 2 - top

        fill = hex_to_rgb(style.color)
        if surface.image.mode == "RGBA":
            fill = fill + (255,)
        surface.draw.text((x, y), value, fill=fill, font=font)

    def _render_qr_image(self, surface: ImageSurface, field: TemplateField, payload: str) -> None:
        width = int(round(field.width or DEFAULT_QR_SIZE))
        height = int(round(field.height or DEFAULT_QR_SIZE))
        qr_image = build_qr_image(payload).resize((width, height), Image.Resampling.NEAREST)
        if surface.image.mode != qr_image.mode:
            qr_image = qr_image.convert(surface.image.mode)
        surface.image.paste(qr_image, (int(round(field.x)), int(round(field.y))))

    def _load_font(self, candidates: Tuple[str, ...], size: int) -> ImageFont.ImageFont:
        return _load_truetype(candidates, max(size, 1), str(self.fonts_dir) if self.fonts_dir else None)


@lru_cache(maxsize=64)
def _load_truetype(candidates: Tuple[str, ...], size: int, fonts_dir: Optional[str]) -> ImageFont.ImageFont:
    search_dirs: List[Path] = []
    if fonts_dir:
        search_dirs.append(Path(fonts_dir))
    search_dirs.extend(_SYSTEM_FONT_DIRS)

    for candidate in candidates:
        for directory in search_dirs:
            font_path = directory / candidate
            if font_path.exists():
                return ImageFont.truetype(str(font_path), size)
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue

    logger.debug("No TrueType face among %s, using bundled default", candidates)
    return ImageFont.load_default(size=size)
