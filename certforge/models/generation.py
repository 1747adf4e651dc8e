"""
Generation Models
Batch jobs, the recipient rows they were given and the certificate number counters
"""

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
import uuid
from certforge.database import Base


class CertificateGenerationJob(Base):
    __tablename__ = "certificate_generation_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed', 'cancelled')",
            name="ck_generation_jobs_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    template_id = Column(UUID(as_uuid=True), ForeignKey("certificate_templates.id"), nullable=False)
    template_version_id = Column(UUID(as_uuid=True), ForeignKey("certificate_template_versions.id"), nullable=False)
    created_by_user_id = Column(UUID(as_uuid=True), nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default="queued")
    options = Column(JSONB, nullable=False, default={})
    total_requested = Column(Integer, nullable=False, default=0)
    total_certificates = Column(Integer, nullable=False, default=0)

    # Outcome
    errors = Column(JSONB, nullable=True)  # [{index, error}]
    error_message = Column(Text, nullable=True)
    error_kind = Column(String(30), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    template = relationship("CertificateTemplate")
    template_version = relationship("CertificateTemplateVersion")


class CertificateGenerationRecipient(Base):
    __tablename__ = "certificate_generation_recipients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_id = Column(
        UUID(as_uuid=True), ForeignKey("certificate_generation_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id = Column(UUID(as_uuid=True), nullable=False)

    row_index = Column(Integer, nullable=False)
    recipient_name = Column(String(255), nullable=False)
    recipient_email = Column(String(255), nullable=True)
    recipient_phone = Column(String(50), nullable=True)
    recipient_data = Column(JSONB, nullable=False, default={})  # the raw row

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    job = relationship("CertificateGenerationJob", backref="recipients")


class CertificateNumberCounter(Base):
    __tablename__ = "certificate_number_counters"

    organization_id = Column(UUID(as_uuid=True), primary_key=True)
    last_value = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
