"""
Preview Generator
Raster previews for template versions and issued certificates
"""

import asyncio
import logging
import uuid
from typing import Optional, Tuple

import fitz

from certforge.errors import NotFoundError, ValidationError
from certforge.schemas.template import StoredFile
from certforge.services.artifact_builder import PDF_MIME_TYPE, compute_sha256
from certforge.services.compensation import CompensationStack
from certforge.services.image_optimizer import ImageOptimizer

logger = logging.getLogger(__name__)

PREVIEWABLE_IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp"}

# Rasterize PDF pages at up to 2x (144 dpi) before downscaling
MAX_PDF_ZOOM = 2.0


def render_preview_image(content: bytes, mime_type: str, max_width: int) -> Tuple[bytes, str]:
    """First page of a PDF or the image itself, as a PNG no wider than max_width"""
    mime_type = (mime_type or "").lower()
    if mime_type == PDF_MIME_TYPE:
        doc = fitz.open(stream=content, filetype="pdf")
        try:
            if doc.page_count == 0:
                raise ValidationError("PDF has no pages")
            page = doc[0]
            zoom = min(MAX_PDF_ZOOM, max_width / float(page.rect.width))
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
            png_bytes = pix.tobytes("png")
        finally:
            doc.close()
        return ImageOptimizer.resize_for_preview(png_bytes, max_width)

    if mime_type in PREVIEWABLE_IMAGE_TYPES:
        return ImageOptimizer.resize_for_preview(content, max_width)

    raise ValidationError(f"Preview generation not supported for file type: {mime_type}")


class PreviewGenerator:
    """Builds, stores and registers previews; template previews are created once per version"""

    def __init__(self, storage, templates, files, bucket: str, max_width: int = ImageOptimizer.DEFAULT_MAX_WIDTH):
        self.storage = storage
        self.templates = templates
        self.files = files
        self.bucket = bucket
        self.max_width = max_width

    async def generate_preview(
        self,
        organization_id: str,
        template_id: str,
        version_id: str,
        requested_by: Optional[str] = None,
    ) -> StoredFile:
        await self.templates.get_template(template_id, organization_id)
        version = await self.templates.get_version(version_id)
        if version.template_id != template_id:
            raise NotFoundError("Template version not found")

        if version.preview_file_id:
            logger.info("Preview already exists for version %s", version_id)
            return await self.files.get(version.preview_file_id)

        source = await self.files.get(version.source_file_id)
        source_bytes = await self.storage.download(source.bucket, source.path)
        preview_bytes, preview_mime = await asyncio.to_thread(
            render_preview_image, source_bytes, source.mime_type, self.max_width
        )
        logger.info(
            "Rendered preview for version %s (%s)",
            version_id,
            ImageOptimizer.get_size_reduction(len(source_bytes), len(preview_bytes)),
        )

        path = f"certificate_templates/{organization_id}/{template_id}/previews/{uuid.uuid4()}.png"
        stack = CompensationStack(f"template-preview:{version_id}")
        try:
            stored = await self._store(
                stack, organization_id, path, preview_bytes, preview_mime, "template_preview", requested_by
            )
            current_id = await self.templates.set_preview_file(version_id, stored.id)
            if current_id != stored.id:
                # Another request attached a preview first; keep theirs
                await stack.unwind()
                return await self.files.get(current_id)
        except BaseException:
            await stack.unwind()
            raise
        stack.commit()
        return stored

    async def create_certificate_preview(
        self,
        stack: CompensationStack,
        organization_id: str,
        job_id: str,
        certificate_id: str,
        content: bytes,
        mime_type: str,
        requested_by: Optional[str] = None,
    ) -> StoredFile:
        """Render and store a certificate preview, registering undo steps on the caller's stack"""
        preview_bytes, preview_mime = await asyncio.to_thread(
            render_preview_image, content, mime_type, self.max_width
        )
        path = f"certificates/{organization_id}/{job_id}/previews/{certificate_id}.png"
        return await self._store(
            stack, organization_id, path, preview_bytes, preview_mime, "certificate_preview", requested_by
        )

    async def _store(
        self,
        stack: CompensationStack,
        organization_id: str,
        path: str,
        content: bytes,
        mime_type: str,
        kind: str,
        requested_by: Optional[str],
    ) -> StoredFile:
        await self.storage.upload(self.bucket, path, content, mime_type)
        stack.push(f"delete {path}", lambda: self.storage.delete(self.bucket, path))

        stored = await self.files.register(
            organization_id=organization_id,
            bucket=self.bucket,
            path=path,
            kind=kind,
            mime_type=mime_type,
            size_bytes=len(content),
            checksum_sha256=compute_sha256(content),
            original_name="preview.png",
            created_by=requested_by,
        )
        stack.push(f"unregister file {stored.id}", lambda: self.files.delete(stored.id))
        return stored
