"""
File Model
One row per object written to storage
"""

from sqlalchemy import BigInteger, Column, DateTime, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
import uuid
from certforge.database import Base


class File(Base):
    __tablename__ = "files"
    __table_args__ = (
        UniqueConstraint("bucket", "path", name="uq_files_bucket_path"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    # Storage location
    bucket = Column(String(100), nullable=False)
    path = Column(Text, nullable=False)

    # source, template_preview, certificate, certificate_preview, bundle
    kind = Column(String(30), nullable=False)
    original_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=False)
    size_bytes = Column(BigInteger, nullable=False, default=0)
    checksum_sha256 = Column(String(64), nullable=True)

    created_by_user_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
