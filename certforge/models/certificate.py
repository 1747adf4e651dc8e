"""
Certificate Model
Issued certificates; the verification token itself is never stored
"""

from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Index, String, UniqueConstraint, func
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from certforge.database import Base


class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("organization_id", "certificate_number", name="uq_certificates_org_number"),
        UniqueConstraint("verification_token_hash", name="uq_certificates_token_hash"),
        CheckConstraint("status IN ('issued', 'revoked', 'expired')", name="ck_certificates_status"),
        Index("ix_certificates_generation_job_id", "generation_job_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False)
    generation_job_id = Column(
        UUID(as_uuid=True), ForeignKey("certificate_generation_jobs.id", ondelete="SET NULL"), nullable=True
    )
    recipient_id = Column(
        UUID(as_uuid=True), ForeignKey("certificate_generation_recipients.id", ondelete="SET NULL"), nullable=True
    )
    certificate_template_id = Column(UUID(as_uuid=True), ForeignKey("certificate_templates.id"), nullable=False)
    certificate_template_version_id = Column(
        UUID(as_uuid=True), ForeignKey("certificate_template_versions.id"), nullable=False
    )

    # Identity
    certificate_number = Column(String(50), nullable=False)
    recipient_name = Column(String(255), nullable=False)
    recipient_email = Column(String(255), nullable=True)
    recipient_phone = Column(String(50), nullable=True)
    verification_token_hash = Column(String(64), nullable=False)  # sha256 hex

    # Artifacts
    certificate_file_id = Column(UUID(as_uuid=True), ForeignKey("files.id", ondelete="SET NULL"), nullable=True)
    certificate_preview_file_id = Column(
        UUID(as_uuid=True), ForeignKey("files.id", ondelete="SET NULL"), nullable=True
    )

    # Validity
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="issued")
    issued_by_user_id = Column(UUID(as_uuid=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    job = relationship("CertificateGenerationJob", backref="certificates")
    certificate_file = relationship("File", foreign_keys=[certificate_file_id])
    preview_file = relationship("File", foreign_keys=[certificate_preview_file_id])
