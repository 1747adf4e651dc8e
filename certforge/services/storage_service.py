"""
Storage Service
Supabase Storage integration for template sources and generated artifacts
"""

import logging
from typing import Optional

import httpx

from certforge.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class StorageService:
    """Supabase Storage REST client; uploads never overwrite an existing path"""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> "StorageService":
        return cls(settings.SUPABASE_URL, settings.SUPABASE_KEY)

    def _ensure_config(self) -> None:
        if not self.base_url or not self.api_key:
            raise StorageError("Supabase Storage is not configured")

    def _headers(self, content_type: Optional[str] = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{bucket}/{path.lstrip('/')}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def download(self, bucket: str, path: str) -> bytes:
        self._ensure_config()
        logger.debug("Downloading %s/%s", bucket, path)
        async with self._client() as client:
            resp = await client.get(self._object_url(bucket, path), headers=self._headers())

        if resp.status_code == 404 or (resp.status_code == 400 and "not_found" in resp.text.lower()):
            raise NotFoundError(f"Stored file not found: {bucket}/{path}")
        if resp.status_code != 200:
            raise StorageError(f"Storage download failed: {resp.text}", {"status": resp.status_code})
        return resp.content

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> None:
        self._ensure_config()
        headers = self._headers(content_type or "application/octet-stream")
        headers["x-upsert"] = "false"
        logger.debug("Uploading %s/%s (%d bytes)", bucket, path, len(content))

        async with self._client() as client:
            resp = await client.post(self._object_url(bucket, path), headers=headers, content=content)

        if resp.status_code in (200, 201):
            return
        body = resp.text
        if resp.status_code == 409 or "duplicate" in body.lower() or "already exists" in body.lower():
            raise StorageError(
                f"Storage object already exists: {bucket}/{path}",
                {"status": resp.status_code},
                conflict=True,
            )
        raise StorageError(f"Storage upload failed: {body}", {"status": resp.status_code})

    async def signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        self._ensure_config()
        url = f"{self.base_url}/storage/v1/object/sign/{bucket}/{path.lstrip('/')}"
        async with self._client() as client:
            resp = await client.post(url, headers=self._headers("application/json"), json={"expiresIn": ttl_seconds})

        if resp.status_code != 200:
            raise StorageError(f"Signed URL request failed: {resp.text}", {"status": resp.status_code})
        signed_path = resp.json().get("signedURL") or resp.json().get("signedUrl")
        if not signed_path:
            raise StorageError("Signed URL response had no URL")
        if signed_path.startswith("http"):
            return signed_path
        return f"{self.base_url}/storage/v1{signed_path}"

    async def delete(self, bucket: str, path: str) -> None:
        self._ensure_config()
        async with self._client() as client:
            resp = await client.delete(self._object_url(bucket, path), headers=self._headers())

        if resp.status_code not in (200, 204, 404):
            raise StorageError(f"Storage delete failed: {resp.text}", {"status": resp.status_code})
