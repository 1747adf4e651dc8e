"""
Certificate Generation Request/Response Models
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ExpiryType(str, Enum):
    """How the expiry date is derived from the issue date"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    FIVE_YEARS = "5_years"
    NEVER = "never"
    CUSTOM = "custom"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CertificateStatus(str, Enum):
    ISSUED = "issued"
    REVOKED = "revoked"
    EXPIRED = "expired"


class FieldMapping(BaseModel):
    """Links a template field to a column of the recipient rows"""
    field_id: str = Field(..., alias="fieldId")
    column_name: str = Field(..., alias="columnName")

    class Config:
        populate_by_name = True


class RecipientColumns(BaseModel):
    """Explicit column names that override header sniffing"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class GenerationOptions(BaseModel):
    include_qr: bool = Field(default=True, alias="includeQR")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    expiry_type: str = Field(default=ExpiryType.YEAR.value)
    custom_expiry_date: Optional[datetime] = None
    issue_date: Optional[datetime] = None
    recipient_columns: Optional[RecipientColumns] = None

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def _custom_expiry_requires_date(self):
        if self.expiry_type == ExpiryType.CUSTOM.value and self.custom_expiry_date is None:
            raise ValueError("custom_expiry_date is required when expiry_type is 'custom'")
        return self


class GenerateCertificatesRequest(BaseModel):
    template_id: str
    data: List[Dict[str, Any]] = Field(..., min_length=1)
    field_mappings: List[FieldMapping] = Field(default_factory=list)
    options: GenerationOptions = Field(default_factory=GenerationOptions)

    class Config:
        json_schema_extra = {
            "example": {
                "template_id": "0b6c5c56-9a57-4d43-a3f6-1c2b1f0f9a10",
                "data": [
                    {"Full Name": "Jane Smith", "Email": "jane@example.com", "Course": "Data Engineering"}
                ],
                "field_mappings": [
                    {"fieldId": "recipient_name", "columnName": "Full Name"},
                    {"fieldId": "course_name", "columnName": "Course"}
                ],
                "options": {"includeQR": True, "expiry_type": "year"}
            }
        }


class RecipientRecord(BaseModel):
    """One input row with best-effort display fields"""
    index: int
    name: str = "Unknown"
    email: Optional[str] = None
    phone: Optional[str] = None
    row: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None


class ItemError(BaseModel):
    index: int
    error: str


class GeneratedCertificateInfo(BaseModel):
    id: str
    certificate_number: str
    recipient_name: str
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    issued_at: datetime
    expires_at: Optional[datetime] = None
    download_url: Optional[str] = None
    preview_url: Optional[str] = None
    # Only present in the generation response, never stored
    verification_token: Optional[str] = None


class GenerationResult(BaseModel):
    job_id: str
    status: JobStatus
    total_requested: int
    total_certificates: int
    certificates: List[GeneratedCertificateInfo] = Field(default_factory=list)
    zip_download_url: Optional[str] = None
    errors: Optional[List[ItemError]] = None
    error: Optional[str] = None
