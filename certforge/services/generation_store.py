"""
Generation Store
Persistence for generation jobs, recipient rows, issued certificates and
the per-organization certificate number sequence
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from databases import Database

from certforge.errors import NotFoundError
from certforge.schemas.generation import CertificateStatus, JobStatus, RecipientRecord
from certforge.services.job_state import TERMINAL_STATES
from certforge.services.recipient_parser import row_payload


def format_certificate_number(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:06d}"


class GenerationStore:
    """Service for generation bookkeeping tables"""

    def __init__(self, database: Database, number_prefix: str = "CERT"):
        self.database = database
        self.number_prefix = number_prefix

    # Jobs

    async def create_job(
        self,
        organization_id: str,
        template_id: str,
        template_version_id: str,
        requested_by: Optional[str],
        status: JobStatus,
        options: Dict[str, Any],
        total_requested: int,
    ) -> str:
        job_id = str(uuid.uuid4())
        await self.database.execute(
            """
            INSERT INTO certificate_generation_jobs
            (id, organization_id, template_id, template_version_id, created_by_user_id,
             status, options, total_requested, total_certificates)
            VALUES (:id, :organization_id, :template_id, :template_version_id, :requested_by,
                    :status, :options, :total_requested, 0)
            """,
            {
                "id": job_id,
                "organization_id": organization_id,
                "template_id": template_id,
                "template_version_id": template_version_id,
                "requested_by": requested_by,
                "status": status.value,
                "options": json.dumps(options, default=str),
                "total_requested": total_requested,
            }
        )
        return job_id

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        total_certificates: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        error_message: Optional[str] = None,
        error_kind: Optional[str] = None,
    ) -> None:
        completed_at = datetime.now(timezone.utc) if status in TERMINAL_STATES else None
        await self.database.execute(
            """
            UPDATE certificate_generation_jobs
            SET status = :status,
                total_certificates = COALESCE(:total_certificates, total_certificates),
                errors = :errors,
                error_message = :error_message,
                error_kind = :error_kind,
                completed_at = :completed_at,
                updated_at = NOW()
            WHERE id = :job_id
            """,
            {
                "job_id": job_id,
                "status": status.value,
                "total_certificates": total_certificates,
                "errors": json.dumps(errors) if errors else None,
                "error_message": error_message,
                "error_kind": error_kind,
                "completed_at": completed_at,
            }
        )

    async def get_job(self, job_id: str) -> dict:
        job = await self.database.fetch_one(
            "SELECT * FROM certificate_generation_jobs WHERE id = :job_id",
            {"job_id": job_id}
        )
        if not job:
            raise NotFoundError("Generation job not found")
        return dict(job)

    # Recipients

    async def insert_recipients(
        self,
        job_id: str,
        organization_id: str,
        recipients: Sequence[RecipientRecord],
    ) -> List[str]:
        values = []
        ids = []
        for recipient in recipients:
            recipient_id = str(uuid.uuid4())
            ids.append(recipient_id)
            values.append({
                "id": recipient_id,
                "job_id": job_id,
                "organization_id": organization_id,
                "row_index": recipient.index,
                "recipient_name": recipient.name,
                "recipient_email": recipient.email,
                "recipient_phone": recipient.phone,
                "recipient_data": json.dumps(row_payload(recipient.row)),
            })
        if values:
            await self.database.execute_many(
                """
                INSERT INTO certificate_generation_recipients
                (id, job_id, organization_id, row_index, recipient_name, recipient_email,
                 recipient_phone, recipient_data)
                VALUES (:id, :job_id, :organization_id, :row_index, :recipient_name, :recipient_email,
                        :recipient_phone, :recipient_data)
                """,
                values
            )
        return ids

    # Certificate numbers

    async def next_certificate_number(self, organization_id: str, year: Optional[int] = None) -> str:
        """Atomically advance the organization's counter; the row lock serializes concurrent batches"""
        value = await self.database.fetch_val(
            """
            INSERT INTO certificate_number_counters (organization_id, last_value)
            VALUES (:organization_id, 1)
            ON CONFLICT (organization_id)
            DO UPDATE SET last_value = certificate_number_counters.last_value + 1,
                          updated_at = NOW()
            RETURNING last_value
            """,
            {"organization_id": organization_id}
        )
        year = year or datetime.now(timezone.utc).year
        return format_certificate_number(self.number_prefix, year, int(value))

    # Certificates

    async def insert_certificate(
        self,
        organization_id: str,
        job_id: str,
        recipient_id: Optional[str],
        template_id: str,
        template_version_id: str,
        certificate_number: str,
        recipient_name: str,
        recipient_email: Optional[str],
        recipient_phone: Optional[str],
        verification_token_hash: str,
        issued_at: datetime,
        expires_at: Optional[datetime],
        issued_by: Optional[str],
    ) -> str:
        certificate_id = str(uuid.uuid4())
        await self.database.execute(
            """
            INSERT INTO certificates
            (id, organization_id, generation_job_id, recipient_id, certificate_template_id,
             certificate_template_version_id, certificate_number, recipient_name, recipient_email,
             recipient_phone, verification_token_hash, issued_at, expires_at, status, issued_by_user_id)
            VALUES (:id, :organization_id, :job_id, :recipient_id, :template_id,
                    :template_version_id, :certificate_number, :recipient_name, :recipient_email,
                    :recipient_phone, :verification_token_hash, :issued_at, :expires_at, :status, :issued_by)
            """,
            {
                "id": certificate_id,
                "organization_id": organization_id,
                "job_id": job_id,
                "recipient_id": recipient_id,
                "template_id": template_id,
                "template_version_id": template_version_id,
                "certificate_number": certificate_number,
                "recipient_name": recipient_name,
                "recipient_email": recipient_email,
                "recipient_phone": recipient_phone,
                "verification_token_hash": verification_token_hash,
                "issued_at": issued_at,
                "expires_at": expires_at,
                "status": CertificateStatus.ISSUED.value,
                "issued_by": issued_by,
            }
        )
        return certificate_id

    async def attach_certificate_files(
        self,
        certificate_id: str,
        certificate_file_id: str,
        preview_file_id: Optional[str] = None,
    ) -> None:
        await self.database.execute(
            """
            UPDATE certificates
            SET certificate_file_id = :certificate_file_id,
                certificate_preview_file_id = COALESCE(:preview_file_id, certificate_preview_file_id),
                updated_at = NOW()
            WHERE id = :certificate_id
            """,
            {
                "certificate_id": certificate_id,
                "certificate_file_id": certificate_file_id,
                "preview_file_id": preview_file_id,
            }
        )

    async def delete_certificate(self, certificate_id: str) -> None:
        await self.database.execute(
            "DELETE FROM certificates WHERE id = :certificate_id",
            {"certificate_id": certificate_id}
        )
