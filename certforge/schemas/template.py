"""
Certificate Template Models
Templates, immutable versions, positioned fields and stored files
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# Serialized size cap for a field's style bag
STYLE_MAX_BYTES = 8192

DATE_FIELD_TYPES = {"date", "start_date", "end_date"}


class FieldType(str, Enum):
    """Type of field placed on a template"""
    NAME = "name"
    COURSE = "course"
    TEXT = "text"
    CUSTOM = "custom"
    DATE = "date"
    START_DATE = "start_date"
    END_DATE = "end_date"
    QR_CODE = "qr_code"


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class FieldStyle(BaseModel):
    """
    Styling for one field.

    Stored as a loosely-typed JSON object; unknown keys are ignored so older
    readers keep working when the editor adds new style options.
    """
    font_family: str = Field(default="Helvetica", alias="fontFamily")
    font_size: float = Field(default=16, gt=0, le=500, alias="fontSize")
    color: str = Field(default="#000000")
    text_align: TextAlign = Field(default=TextAlign.LEFT, alias="textAlign")
    font_weight: str = Field(default="normal", alias="fontWeight")
    font_style: str = Field(default="normal", alias="fontStyle")
    prefix: str = ""
    suffix: str = ""
    date_format: Optional[str] = Field(default=None, alias="dateFormat")
    original_field_id: Optional[str] = Field(default=None, alias="originalFieldId")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("text_align", mode="before")
    @classmethod
    def _normalize_align(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in {"left", "center", "right"}:
                return "left"
        return value

    @classmethod
    def from_raw(cls, raw: Any, max_bytes: int = STYLE_MAX_BYTES) -> "FieldStyle":
        """Parse a stored style bag (dict or JSON string), enforcing the size cap"""
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, str):
            serialized = raw
            raw = json.loads(raw)
        else:
            serialized = json.dumps(raw, default=str)
        if len(serialized.encode("utf-8")) > max_bytes:
            raise ValueError(f"style exceeds {max_bytes} bytes")
        if not isinstance(raw, dict):
            raise ValueError("style must be a JSON object")
        return cls.model_validate(raw)


class TemplateField(BaseModel):
    """One positioned placeholder on a template version (origin top-left, y down)"""
    id: str
    field_key: str = Field(..., min_length=1, max_length=100)
    label: str = ""
    type: FieldType = FieldType.TEXT
    page_number: int = Field(default=1, ge=1)
    x: float
    y: float
    width: Optional[float] = Field(default=None, ge=0)
    height: Optional[float] = Field(default=None, ge=0)
    style: FieldStyle = Field(default_factory=FieldStyle)
    required: bool = False

    @property
    def is_date(self) -> bool:
        return self.type.value in DATE_FIELD_TYPES


class StoredFile(BaseModel):
    """Opaque binary object in storage (source, artifact, preview or bundle)"""
    id: str
    bucket: str
    path: str
    mime_type: str
    size_bytes: int = 0
    checksum_sha256: Optional[str] = None
    kind: Optional[str] = None


class PageMetadata(BaseModel):
    width: float
    height: float


class TemplateVersion(BaseModel):
    """Immutable snapshot of a template's source file and page layout"""
    id: str
    template_id: str
    version_number: int = 1
    source_file_id: str
    page_count: int = Field(default=1, ge=1)
    pages: Optional[List[PageMetadata]] = None
    preview_file_id: Optional[str] = None
    created_at: Optional[datetime] = None


class Template(BaseModel):
    id: str
    organization_id: str
    title: str
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    latest_version_id: Optional[str] = None
    deleted_at: Optional[datetime] = None


class LatestTemplateVersion(BaseModel):
    """Everything the pipeline needs to render one template"""
    template: Template
    version: TemplateVersion
    source_file: StoredFile
    fields: List[TemplateField] = Field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "template_id": self.template.id,
            "version_id": self.version.id,
            "version_number": self.version.version_number,
            "source_mime_type": self.source_file.mime_type,
            "field_count": len(self.fields),
        }
