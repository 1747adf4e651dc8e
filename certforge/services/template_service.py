"""
Template Service
Read access to templates, their immutable versions and positioned fields
"""

import json
import logging
from typing import Any, Mapping, Optional, Sequence

from databases import Database

from certforge.errors import NotFoundError, ValidationError
from certforge.schemas.template import (
    STYLE_MAX_BYTES,
    FieldStyle,
    LatestTemplateVersion,
    PageMetadata,
    StoredFile,
    Template,
    TemplateField,
    TemplateVersion,
)

logger = logging.getLogger(__name__)


def _parse_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def build_field(row: Mapping[str, Any], style_max_bytes: int = STYLE_MAX_BYTES) -> TemplateField:
    """Turn a stored field row into a TemplateField, rejecting malformed styles"""
    try:
        style = FieldStyle.from_raw(row.get("style"), max_bytes=style_max_bytes)
        return TemplateField(
            id=str(row["id"]),
            field_key=row["field_key"],
            label=row.get("label") or "",
            type=row.get("type") or "text",
            page_number=row.get("page_number") or 1,
            x=row["x"],
            y=row["y"],
            width=row.get("width"),
            height=row.get("height"),
            style=style,
            required=bool(row.get("required")),
        )
    except ValueError as exc:
        raise ValidationError(
            f"Invalid field '{row.get('field_key')}': {exc}",
            {"field_id": str(row.get("id"))},
        )


def validate_template_fields(fields: Sequence[TemplateField], page_count: int) -> None:
    """Field keys are unique per version and every field sits on an existing page"""
    seen = set()
    for field in fields:
        if field.field_key in seen:
            raise ValidationError(
                f"Duplicate field key '{field.field_key}'",
                {"field_key": field.field_key},
            )
        seen.add(field.field_key)
        if not 1 <= field.page_number <= page_count:
            raise ValidationError(
                f"Field '{field.field_key}' is on page {field.page_number} but the template has {page_count} page(s)",
                {"field_key": field.field_key, "page_number": field.page_number, "page_count": page_count},
            )


def _stored_file(row: Mapping[str, Any]) -> StoredFile:
    return StoredFile(
        id=str(row["id"]),
        bucket=row["bucket"],
        path=row["path"],
        mime_type=row["mime_type"],
        size_bytes=row.get("size_bytes") or 0,
        checksum_sha256=row.get("checksum_sha256"),
        kind=row.get("kind"),
    )


def _template_version(row: Mapping[str, Any]) -> TemplateVersion:
    pages = _parse_json(row.get("normalized_pages"))
    return TemplateVersion(
        id=str(row["id"]),
        template_id=str(row["template_id"]),
        version_number=row.get("version_number") or 1,
        source_file_id=str(row["source_file_id"]),
        page_count=row.get("page_count") or 1,
        pages=[PageMetadata(**page) for page in pages] if pages else None,
        preview_file_id=str(row["preview_file_id"]) if row.get("preview_file_id") else None,
        created_at=row.get("created_at"),
    )


class TemplateService:
    """Service for template lookups used by generation and previews"""

    def __init__(self, database: Database, style_max_bytes: int = STYLE_MAX_BYTES):
        self.database = database
        self.style_max_bytes = style_max_bytes

    async def get_template(self, template_id: str, organization_id: str) -> Template:
        """Live template of the organization"""
        row = await self.database.fetch_one(
            """
            SELECT * FROM certificate_templates
            WHERE id = :template_id
              AND organization_id = :organization_id
              AND deleted_at IS NULL
            """,
            {"template_id": template_id, "organization_id": organization_id}
        )
        if not row:
            raise NotFoundError("Template not found")
        row = dict(row)
        return Template(
            id=str(row["id"]),
            organization_id=str(row["organization_id"]),
            title=row.get("title") or "",
            category_id=str(row["category_id"]) if row.get("category_id") else None,
            subcategory_id=str(row["subcategory_id"]) if row.get("subcategory_id") else None,
            latest_version_id=str(row["latest_version_id"]) if row.get("latest_version_id") else None,
            deleted_at=row.get("deleted_at"),
        )

    async def get_latest_version(self, template_id: str, organization_id: str) -> LatestTemplateVersion:
        template = await self.get_template(template_id, organization_id)
        if not template.latest_version_id:
            raise NotFoundError("Template has no version")

        version = await self.get_version(template.latest_version_id)

        source = await self.database.fetch_one(
            "SELECT * FROM files WHERE id = :file_id",
            {"file_id": version.source_file_id}
        )
        if not source:
            raise NotFoundError("Template source file not found")

        field_rows = await self.database.fetch_all(
            """
            SELECT * FROM certificate_template_fields
            WHERE template_version_id = :version_id
            ORDER BY created_at ASC
            """,
            {"version_id": version.id}
        )
        fields = [build_field(dict(row), self.style_max_bytes) for row in field_rows]

        return LatestTemplateVersion(
            template=template,
            version=version,
            source_file=_stored_file(dict(source)),
            fields=fields,
        )

    async def get_version(self, version_id: str) -> TemplateVersion:
        row = await self.database.fetch_one(
            "SELECT * FROM certificate_template_versions WHERE id = :version_id",
            {"version_id": version_id}
        )
        if not row:
            raise NotFoundError("Template version not found")
        return _template_version(dict(row))

    async def set_preview_file(self, version_id: str, file_id: str) -> Optional[str]:
        """
        Point a version at its preview if it has none yet.

        Returns the preview file id now stored on the version: `file_id` when
        this call won, the existing id when another writer got there first.
        """
        updated = await self.database.fetch_one(
            """
            UPDATE certificate_template_versions
            SET preview_file_id = :file_id
            WHERE id = :version_id AND preview_file_id IS NULL
            RETURNING preview_file_id
            """,
            {"version_id": version_id, "file_id": file_id}
        )
        if updated:
            return str(updated["preview_file_id"])

        current = await self.get_version(version_id)
        logger.info("Version %s already has preview %s", version_id, current.preview_file_id)
        return current.preview_file_id

