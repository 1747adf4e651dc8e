"""
Tests for the Supabase Storage REST client.
"""

import json

import httpx
import pytest

from certforge.errors import NotFoundError, StorageError
from certforge.services.storage_service import StorageService

BASE_URL = "https://project.supabase.co"


def make_storage(handler) -> StorageService:
    return StorageService(BASE_URL, "service-key", transport=httpx.MockTransport(handler))


class TestDownload:

    @pytest.mark.asyncio
    async def test_returns_bytes(self):
        def handler(request):
            assert request.url.path == "/storage/v1/object/certforge/templates/a.png"
            assert request.headers["Authorization"] == "Bearer service-key"
            return httpx.Response(200, content=b"PNGDATA")

        assert await make_storage(handler).download("certforge", "templates/a.png") == b"PNGDATA"

    @pytest.mark.asyncio
    async def test_missing_object(self):
        storage = make_storage(lambda request: httpx.Response(404, json={"error": "not_found"}))
        with pytest.raises(NotFoundError):
            await storage.download("certforge", "missing.png")

    @pytest.mark.asyncio
    async def test_supabase_not_found_as_400(self):
        storage = make_storage(lambda request: httpx.Response(400, json={"error": "not_found", "statusCode": "404"}))
        with pytest.raises(NotFoundError):
            await storage.download("certforge", "missing.png")

    @pytest.mark.asyncio
    async def test_server_error(self):
        storage = make_storage(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(StorageError):
            await storage.download("certforge", "a.png")


class TestUpload:

    @pytest.mark.asyncio
    async def test_never_overwrites(self):
        seen = {}

        def handler(request):
            seen["upsert"] = request.headers["x-upsert"]
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(200, json={"Key": "certforge/a.pdf"})

        await make_storage(handler).upload("certforge", "a.pdf", b"%PDF", "application/pdf")

        assert seen == {"upsert": "false", "content_type": "application/pdf", "body": b"%PDF"}

    @pytest.mark.asyncio
    async def test_existing_path_is_a_conflict(self):
        storage = make_storage(lambda request: httpx.Response(400, json={"error": "Duplicate", "message": "The resource already exists"}))
        with pytest.raises(StorageError) as exc_info:
            await storage.upload("certforge", "a.pdf", b"%PDF", "application/pdf")
        assert exc_info.value.conflict

    @pytest.mark.asyncio
    async def test_other_failures_are_not_conflicts(self):
        storage = make_storage(lambda request: httpx.Response(413, text="Payload too large"))
        with pytest.raises(StorageError) as exc_info:
            await storage.upload("certforge", "a.pdf", b"%PDF", "application/pdf")
        assert not exc_info.value.conflict


class TestSignedUrl:

    @pytest.mark.asyncio
    async def test_relative_signed_path(self):
        def handler(request):
            assert request.url.path == "/storage/v1/object/sign/certforge/exports/a.zip"
            assert json.loads(request.content) == {"expiresIn": 3600}
            return httpx.Response(200, json={"signedURL": "/object/sign/certforge/exports/a.zip?token=abc"})

        url = await make_storage(handler).signed_url("certforge", "exports/a.zip", 3600)
        assert url == f"{BASE_URL}/storage/v1/object/sign/certforge/exports/a.zip?token=abc"

    @pytest.mark.asyncio
    async def test_failure(self):
        storage = make_storage(lambda request: httpx.Response(400, json={"error": "invalid"}))
        with pytest.raises(StorageError):
            await storage.signed_url("certforge", "a.zip", 60)


class TestDelete:

    @pytest.mark.asyncio
    async def test_missing_object_is_fine(self):
        storage = make_storage(lambda request: httpx.Response(404))
        await storage.delete("certforge", "gone.png")

    @pytest.mark.asyncio
    async def test_failure(self):
        storage = make_storage(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(StorageError):
            await storage.delete("certforge", "a.png")


@pytest.mark.asyncio
async def test_unconfigured_client():
    with pytest.raises(StorageError):
        await StorageService(None, None).download("certforge", "a.png")
