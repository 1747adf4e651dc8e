"""
Tests for template and certificate preview generation.
"""

from io import BytesIO

import pytest
from PIL import Image

from certforge.errors import NotFoundError, ValidationError
from certforge.schemas.template import StoredFile
from certforge.services.compensation import CompensationStack
from certforge.services.preview_generator import render_preview_image

from conftest import (
    BUCKET,
    ORG_ID,
    OTHER_ORG_ID,
    TEMPLATE_ID,
    VERSION_ID,
    build_harness,
    make_latest,
    make_pdf,
    make_png,
)


def preview_paths(h):
    return h.storage.paths(f"certificate_templates/{ORG_ID}/{TEMPLATE_ID}/previews/")


class TestRenderPreviewImage:

    def test_wide_image_is_downscaled(self):
        content, mime = render_preview_image(make_png(size=(2400, 1200)), "image/png", 1200)
        assert mime == "image/png"
        assert Image.open(BytesIO(content)).size == (1200, 600)

    def test_small_image_keeps_size(self):
        content, _ = render_preview_image(make_png(size=(300, 200)), "image/png", 1200)
        assert Image.open(BytesIO(content)).size == (300, 200)

    def test_pdf_first_page(self):
        content, mime = render_preview_image(make_pdf(pages=2), "application/pdf", 400)
        image = Image.open(BytesIO(content))
        assert mime == "image/png"
        assert image.format == "PNG"
        assert image.size[0] <= 400

    def test_unsupported_type(self):
        with pytest.raises(ValidationError):
            render_preview_image(b"GIF89a", "image/gif", 1200)


class TestTemplatePreview:

    @pytest.mark.asyncio
    async def test_creates_and_registers_preview(self):
        h = build_harness()
        stored = await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, VERSION_ID)

        assert stored.kind == "template_preview"
        assert stored.mime_type == "image/png"
        assert preview_paths(h) == [stored.path]
        assert h.templates.latest.version.preview_file_id == stored.id

    @pytest.mark.asyncio
    async def test_second_call_returns_existing_preview(self):
        h = build_harness()
        first = await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, VERSION_ID)
        second = await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, VERSION_ID)

        assert second.id == first.id
        assert len(preview_paths(h)) == 1
        assert len(h.files.by_kind("template_preview")) == 1

    @pytest.mark.asyncio
    async def test_pdf_template_preview(self):
        h = build_harness(make_latest(mime_type="application/pdf", page_count=2), source_bytes=make_pdf(pages=2))
        stored = await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, VERSION_ID)

        assert stored.mime_type == "image/png"
        image = Image.open(BytesIO(h.storage.content(stored.path)))
        assert image.size[0] <= 150

    @pytest.mark.asyncio
    async def test_losing_a_race_returns_winner_and_cleans_up(self):
        h = build_harness()
        winner = StoredFile(id="winner-file", bucket=BUCKET, path="certificate_templates/winner.png",
                            mime_type="image/png", kind="template_preview")
        h.files.add(winner)
        h.templates.competing_preview_id = winner.id

        stored = await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, VERSION_ID)

        assert stored.id == "winner-file"
        assert preview_paths(h) == []
        assert [row["id"] for row in h.files.by_kind("template_preview")] == ["winner-file"]

    @pytest.mark.asyncio
    async def test_registry_failure_removes_upload(self):
        h = build_harness()
        h.files.fail_register = lambda kind: kind == "template_preview"

        with pytest.raises(RuntimeError):
            await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, VERSION_ID)

        assert preview_paths(h) == []
        assert h.templates.latest.version.preview_file_id is None

    @pytest.mark.asyncio
    async def test_other_organization_cannot_preview(self):
        h = build_harness()
        with pytest.raises(NotFoundError):
            await h.previews.generate_preview(OTHER_ORG_ID, TEMPLATE_ID, VERSION_ID)

    @pytest.mark.asyncio
    async def test_unknown_version(self):
        h = build_harness()
        with pytest.raises(NotFoundError):
            await h.previews.generate_preview(ORG_ID, TEMPLATE_ID, "missing-version")


class TestCertificatePreview:

    @pytest.mark.asyncio
    async def test_undo_steps_land_on_callers_stack(self):
        h = build_harness()
        stack = CompensationStack("certificate")

        stored = await h.previews.create_certificate_preview(
            stack, ORG_ID, "job-1", "cert-1", make_png(size=(600, 400)), "image/png"
        )

        assert stored.path == f"certificates/{ORG_ID}/job-1/previews/cert-1.png"
        assert len(stack) == 2

        await stack.unwind()
        assert h.storage.paths("certificates/") == []
        assert stored.id not in h.files.rows
