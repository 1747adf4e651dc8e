"""
Pydantic schemas for request/response validation
"""

from certforge.schemas.template import (
    FieldStyle,
    FieldType,
    LatestTemplateVersion,
    StoredFile,
    Template,
    TemplateField,
    TemplateVersion,
    TextAlign,
)
from certforge.schemas.generation import (
    CertificateStatus,
    ExpiryType,
    FieldMapping,
    GenerateCertificatesRequest,
    GeneratedCertificateInfo,
    GenerationOptions,
    GenerationResult,
    ItemError,
    JobStatus,
    RecipientColumns,
    RecipientRecord,
)

__all__ = [
    "FieldStyle",
    "FieldType",
    "LatestTemplateVersion",
    "StoredFile",
    "Template",
    "TemplateField",
    "TemplateVersion",
    "TextAlign",
    "CertificateStatus",
    "ExpiryType",
    "FieldMapping",
    "GenerateCertificatesRequest",
    "GeneratedCertificateInfo",
    "GenerationOptions",
    "GenerationResult",
    "ItemError",
    "JobStatus",
    "RecipientColumns",
    "RecipientRecord",
]
