"""Create certificate generation tables"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '3a7c5e91d2f4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create files table
    op.create_table(
        'files',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('bucket', sa.String(100), nullable=False),
        sa.Column('path', sa.Text(), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('original_name', sa.String(255), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('checksum_sha256', sa.String(64), nullable=True),
        sa.Column('created_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bucket', 'path', name='uq_files_bucket_path')
    )
    op.create_index(op.f('ix_files_organization_id'), 'files', ['organization_id'])

    # Create certificate_templates table (latest_version_id FK added below)
    op.create_table(
        'certificate_templates',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('subcategory_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('latest_version_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_certificate_templates_organization_id'), 'certificate_templates', ['organization_id'])

    # Create certificate_template_versions table
    op.create_table(
        'certificate_template_versions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('source_file_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('preview_file_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('page_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('normalized_pages', postgresql.JSONB(), nullable=True),
        sa.Column('created_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['template_id'], ['certificate_templates.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['source_file_id'], ['files.id']),
        sa.ForeignKeyConstraint(['preview_file_id'], ['files.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_id', 'version_number', name='uq_template_versions_number'),
        sa.CheckConstraint('page_count >= 1', name='ck_template_versions_page_count')
    )
    op.create_foreign_key(
        'fk_templates_latest_version', 'certificate_templates', 'certificate_template_versions',
        ['latest_version_id'], ['id']
    )

    # Create certificate_template_fields table
    op.create_table(
        'certificate_template_fields',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('field_key', sa.String(100), nullable=False),
        sa.Column('label', sa.String(200), nullable=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='text'),
        sa.Column('required', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('page_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('x', sa.Float(), nullable=False),
        sa.Column('y', sa.Float(), nullable=False),
        sa.Column('width', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('style', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['template_version_id'], ['certificate_template_versions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_version_id', 'field_key', name='uq_template_fields_version_key'),
        sa.CheckConstraint('page_number >= 1', name='ck_template_fields_page_number')
    )

    # Create certificate_generation_jobs table
    op.create_table(
        'certificate_generation_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='queued'),
        sa.Column('options', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('total_requested', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_certificates', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', postgresql.JSONB(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_kind', sa.String(30), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['template_id'], ['certificate_templates.id']),
        sa.ForeignKeyConstraint(['template_version_id'], ['certificate_template_versions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed', 'cancelled')",
            name='ck_generation_jobs_status'
        )
    )
    op.create_index(
        op.f('ix_certificate_generation_jobs_organization_id'), 'certificate_generation_jobs', ['organization_id']
    )

    # Create certificate_generation_recipients table
    op.create_table(
        'certificate_generation_recipients',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('row_index', sa.Integer(), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=False),
        sa.Column('recipient_email', sa.String(255), nullable=True),
        sa.Column('recipient_phone', sa.String(50), nullable=True),
        sa.Column('recipient_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['job_id'], ['certificate_generation_jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_certificate_generation_recipients_job_id'), 'certificate_generation_recipients', ['job_id']
    )

    # Create certificate_number_counters table
    op.create_table(
        'certificate_number_counters',
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('last_value', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('organization_id')
    )

    # Create certificates table
    op.create_table(
        'certificates',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('generation_job_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('certificate_template_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('certificate_template_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('certificate_number', sa.String(50), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=False),
        sa.Column('recipient_email', sa.String(255), nullable=True),
        sa.Column('recipient_phone', sa.String(50), nullable=True),
        sa.Column('verification_token_hash', sa.String(64), nullable=False),
        sa.Column('certificate_file_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('certificate_preview_file_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='issued'),
        sa.Column('issued_by_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['generation_job_id'], ['certificate_generation_jobs.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['recipient_id'], ['certificate_generation_recipients.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['certificate_template_id'], ['certificate_templates.id']),
        sa.ForeignKeyConstraint(['certificate_template_version_id'], ['certificate_template_versions.id']),
        sa.ForeignKeyConstraint(['certificate_file_id'], ['files.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['certificate_preview_file_id'], ['files.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'certificate_number', name='uq_certificates_org_number'),
        sa.UniqueConstraint('verification_token_hash', name='uq_certificates_token_hash'),
        sa.CheckConstraint("status IN ('issued', 'revoked', 'expired')", name='ck_certificates_status')
    )
    op.create_index('ix_certificates_generation_job_id', 'certificates', ['generation_job_id'])


def downgrade():
    op.drop_index('ix_certificates_generation_job_id', table_name='certificates')
    op.drop_table('certificates')
    op.drop_table('certificate_number_counters')
    op.drop_index(op.f('ix_certificate_generation_recipients_job_id'), table_name='certificate_generation_recipients')
    op.drop_table('certificate_generation_recipients')
    op.drop_index(op.f('ix_certificate_generation_jobs_organization_id'), table_name='certificate_generation_jobs')
    op.drop_table('certificate_generation_jobs')
    op.drop_table('certificate_template_fields')
    op.drop_constraint('fk_templates_latest_version', 'certificate_templates', type_='foreignkey')
    op.drop_table('certificate_template_versions')
    op.drop_index(op.f('ix_certificate_templates_organization_id'), table_name='certificate_templates')
    op.drop_table('certificate_templates')
    op.drop_index(op.f('ix_files_organization_id'), table_name='files')
    op.drop_table('files')
