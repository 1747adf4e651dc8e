"""
Database Models
Import all models here for Alembic migrations
"""

from certforge.models.file import File
from certforge.models.template import CertificateTemplate, CertificateTemplateVersion, CertificateTemplateField
from certforge.models.generation import (
    CertificateGenerationJob,
    CertificateGenerationRecipient,
    CertificateNumberCounter,
)
from certforge.models.certificate import Certificate

__all__ = [
    "File",
    "CertificateTemplate",
    "CertificateTemplateVersion",
    "CertificateTemplateField",
    "CertificateGenerationJob",
    "CertificateGenerationRecipient",
    "CertificateNumberCounter",
    "Certificate",
]
