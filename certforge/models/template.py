"""
Certificate Template Models
Templates, their immutable versions and the positioned fields of each version
"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
import uuid
from certforge.database import Base


class CertificateTemplate(Base):
    __tablename__ = "certificate_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    # Template info
    title = Column(String(200), nullable=False)
    category_id = Column(UUID(as_uuid=True), nullable=True)
    subcategory_id = Column(UUID(as_uuid=True), nullable=True)

    # Current version; versions reference the template, hence use_alter
    latest_version_id = Column(
        UUID(as_uuid=True),
        ForeignKey("certificate_template_versions.id", use_alter=True, name="fk_templates_latest_version"),
        nullable=True,
    )

    # Metadata
    created_by_user_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    latest_version = relationship("CertificateTemplateVersion", foreign_keys=[latest_version_id], post_update=True)


class CertificateTemplateVersion(Base):
    __tablename__ = "certificate_template_versions"
    __table_args__ = (
        UniqueConstraint("template_id", "version_number", name="uq_template_versions_number"),
        CheckConstraint("page_count >= 1", name="ck_template_versions_page_count"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        UUID(as_uuid=True), ForeignKey("certificate_templates.id", ondelete="CASCADE"), nullable=False
    )
    version_number = Column(Integer, nullable=False, default=1)

    # Source document and its derived preview
    source_file_id = Column(UUID(as_uuid=True), ForeignKey("files.id"), nullable=False)
    preview_file_id = Column(UUID(as_uuid=True), ForeignKey("files.id", ondelete="SET NULL"), nullable=True)
    page_count = Column(Integer, nullable=False, default=1)
    normalized_pages = Column(JSONB, nullable=True)  # [{page_number, width, height}]

    created_by_user_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    template = relationship("CertificateTemplate", foreign_keys=[template_id], backref="versions")
    source_file = relationship("File", foreign_keys=[source_file_id])
    preview_file = relationship("File", foreign_keys=[preview_file_id])


class CertificateTemplateField(Base):
    __tablename__ = "certificate_template_fields"
    __table_args__ = (
        UniqueConstraint("template_version_id", "field_key", name="uq_template_fields_version_key"),
        CheckConstraint("page_number >= 1", name="ck_template_fields_page_number"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_version_id = Column(
        UUID(as_uuid=True), ForeignKey("certificate_template_versions.id", ondelete="CASCADE"), nullable=False
    )

    # Field definition
    field_key = Column(String(100), nullable=False)
    label = Column(String(200), nullable=True)
    type = Column(String(20), nullable=False, default="text")
    required = Column(Boolean, nullable=False, default=False)

    # Placement in page units, origin top-left
    page_number = Column(Integer, nullable=False, default=1)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)
    style = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    version = relationship("CertificateTemplateVersion", backref="fields")
