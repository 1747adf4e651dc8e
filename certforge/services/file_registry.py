"""
File Registry
Metadata rows for every binary object the pipeline writes to storage
"""

import uuid
from typing import Optional

from databases import Database

from certforge.errors import NotFoundError
from certforge.schemas.template import StoredFile


class FileRegistry:
    """Service for the `files` table"""

    def __init__(self, database: Database):
        self.database = database

    async def register(
        self,
        organization_id: str,
        bucket: str,
        path: str,
        kind: str,
        mime_type: str,
        size_bytes: int,
        checksum_sha256: str,
        original_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StoredFile:
        file_id = str(uuid.uuid4())
        await self.database.execute(
            """
            INSERT INTO files
            (id, organization_id, bucket, path, kind, original_name, mime_type, size_bytes,
             checksum_sha256, created_by_user_id)
            VALUES (:id, :organization_id, :bucket, :path, :kind, :original_name, :mime_type, :size_bytes,
                    :checksum_sha256, :created_by)
            """,
            {
                "id": file_id,
                "organization_id": organization_id,
                "bucket": bucket,
                "path": path,
                "kind": kind,
                "original_name": original_name,
                "mime_type": mime_type,
                "size_bytes": size_bytes,
                "checksum_sha256": checksum_sha256,
                "created_by": created_by,
            }
        )
        return StoredFile(
            id=file_id,
            bucket=bucket,
            path=path,
            mime_type=mime_type,
            size_bytes=size_bytes,
            checksum_sha256=checksum_sha256,
            kind=kind,
        )

    async def get(self, file_id: str) -> StoredFile:
        row = await self.database.fetch_one(
            "SELECT * FROM files WHERE id = :file_id",
            {"file_id": file_id}
        )
        if not row:
            raise NotFoundError("File not found")
        row = dict(row)
        return StoredFile(
            id=str(row["id"]),
            bucket=row["bucket"],
            path=row["path"],
            mime_type=row["mime_type"],
            size_bytes=row.get("size_bytes") or 0,
            checksum_sha256=row.get("checksum_sha256"),
            kind=row.get("kind"),
        )

    async def delete(self, file_id: str) -> None:
        await self.database.execute(
            "DELETE FROM files WHERE id = :file_id",
            {"file_id": file_id}
        )
