"""
Artifact Builder
Renders one recipient's certificate and derives its token, checksum and filename
"""

import hashlib
import logging
import re
import secrets
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.pdfgen import canvas

from certforge.schemas.generation import FieldMapping, GenerationOptions
from certforge.schemas.template import TemplateField
from certforge.services.field_renderer import FieldRenderer, ImageSurface, PdfSurface

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class OutputFormat:
    mime_type: str
    extension: str
    pil_format: Optional[str] = None

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME_TYPE


PDF_OUTPUT = OutputFormat(PDF_MIME_TYPE, "pdf")
JPEG_OUTPUT = OutputFormat("image/jpeg", "jpg", "JPEG")

_IMAGE_OUTPUTS = {
    "image/png": OutputFormat("image/png", "png", "PNG"),
    "image/jpeg": JPEG_OUTPUT,
    "image/jpg": JPEG_OUTPUT,
    "image/webp": OutputFormat("image/webp", "webp", "WEBP"),
}


def resolve_output_format(source_mime_type: str) -> OutputFormat:
    """PDF templates produce PDFs; image templates keep their format (JPEG if unrecognized)"""
    mime_type = (source_mime_type or "").strip().lower()
    if mime_type == PDF_MIME_TYPE:
        return PDF_OUTPUT
    return _IMAGE_OUTPUTS.get(mime_type, JPEG_OUTPUT)


def compute_sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_verification_token() -> str:
    return secrets.token_urlsafe(32)


def sanitize_file_name(name: str, max_length: int = 100) -> str:
    cleaned = re.sub(r"[^a-z0-9_\-]", "_", (name or "").lower())
    cleaned = re.sub(r"_{2,}", "_", cleaned).strip("_")
    return cleaned[:max_length]


@dataclass
class RenderedArtifact:
    index: int
    content: bytes
    mime_type: str
    extension: str
    file_name: str
    checksum: str
    verification_token: str
    verification_token_hash: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass
class ItemFailure:
    index: int
    error: str


class ArtifactBuilder:
    """CPU-bound rendering of one certificate; safe to run in a worker thread"""

    JPEG_QUALITY = 90

    def __init__(self, renderer: FieldRenderer):
        self.renderer = renderer

    def build(
        self,
        index: int,
        source_bytes: bytes,
        output_format: OutputFormat,
        fields: Sequence[TemplateField],
        field_mappings: Sequence[FieldMapping],
        row: Mapping[str, Any],
        options: GenerationOptions,
        display_name: Optional[str] = None,
        verification_token: Optional[str] = None,
    ) -> Union[RenderedArtifact, ItemFailure]:
        """Render one recipient; failures come back as an ItemFailure instead of raising"""
        token = verification_token or generate_verification_token()
        try:
            content = self.render(
                source_bytes, output_format, fields, field_mappings, row,
                include_qr=options.include_qr, verification_token=token,
            )
        except Exception as exc:
            logger.warning("Rendering failed for recipient %d: %s", index, exc)
            return ItemFailure(index=index, error=f"Rendering failed: {exc}")

        base_name = sanitize_file_name(display_name or "") or f"certificate_{index + 1}"
        return RenderedArtifact(
            index=index,
            content=content,
            mime_type=output_format.mime_type,
            extension=output_format.extension,
            file_name=f"{base_name}.{output_format.extension}",
            checksum=compute_sha256(content),
            verification_token=token,
            verification_token_hash=hash_token(token),
        )

    def render(
        self,
        source_bytes: bytes,
        output_format: OutputFormat,
        fields: Sequence[TemplateField],
        field_mappings: Sequence[FieldMapping],
        row: Mapping[str, Any],
        include_qr: bool,
        verification_token: Optional[str],
    ) -> bytes:
        if output_format.is_pdf:
            return self._render_pdf(source_bytes, fields, field_mappings, row, include_qr, verification_token)
        return self._render_image(source_bytes, output_format, fields, field_mappings, row, include_qr, verification_token)

    def _render_pdf(self, source_bytes, fields, field_mappings, row, include_qr, verification_token) -> bytes:
        reader = PdfReader(BytesIO(source_bytes))
        writer = PdfWriter()

        fields_by_page: Dict[int, List[TemplateField]] = {}
        for field in fields:
            fields_by_page.setdefault(field.page_number, []).append(field)

        for page_number, page in enumerate(reader.pages, start=1):
            page_fields = fields_by_page.get(page_number)
            if page_fields:
                page_width = float(page.mediabox.width)
                page_height = float(page.mediabox.height)
                overlay_bytes = self._draw_pdf_overlay(
                    page_width, page_height, page_fields, field_mappings, row, include_qr, verification_token
                )
                page.merge_page(PdfReader(BytesIO(overlay_bytes)).pages[0])
            writer.add_page(page)

        output = BytesIO()
        writer.write(output)
        return output.getvalue()

    def _draw_pdf_overlay(self, page_width, page_height, fields, field_mappings, row, include_qr, verification_token) -> bytes:
        packet = BytesIO()
        # invariant output keeps identical input rendering to identical bytes
        c = canvas.Canvas(packet, pagesize=(page_width, page_height), invariant=1)
        surface = PdfSurface(canvas=c, page_width=page_width, page_height=page_height)
        self.renderer.render_fields(surface, fields, field_mappings, row, include_qr, verification_token)
        c.showPage()
        c.save()
        return packet.getvalue()

    def _render_image(self, source_bytes, output_format, fields, field_mappings, row, include_qr, verification_token) -> bytes:
        image = Image.open(BytesIO(source_bytes))
        image.load()
        keep_alpha = output_format.pil_format in {"PNG", "WEBP"} and image.mode in {"RGBA", "LA", "P"}
        image = image.convert("RGBA" if keep_alpha else "RGB")

        surface = ImageSurface.wrap(image)
        self.renderer.render_fields(surface, fields, field_mappings, row, include_qr, verification_token)

        output = BytesIO()
        if output_format.pil_format == "PNG":
            image.save(output, format="PNG")
        else:
            image.save(output, format=output_format.pil_format, quality=self.JPEG_QUALITY)
        return output.getvalue()
