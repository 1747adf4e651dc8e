"""
Certificate Service
Batch certificate generation: job tracking, per-recipient issuance with
failure isolation, and the downloadable zip bundle
"""

import asyncio
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional, Set

from certforge.errors import BatchTimeoutError, PerItemRenderError, PipelineError
from certforge.schemas.generation import (
    GenerateCertificatesRequest,
    GeneratedCertificateInfo,
    GenerationResult,
    ItemError,
    JobStatus,
    RecipientRecord,
)
from certforge.schemas.template import FieldType, LatestTemplateVersion, StoredFile
from certforge.services.artifact_builder import (
    ArtifactBuilder,
    ItemFailure,
    OutputFormat,
    RenderedArtifact,
    compute_sha256,
    resolve_output_format,
    sanitize_file_name,
)
from certforge.services.compensation import CompensationStack
from certforge.services.expiry_calculator import compute_expiry, resolve_issued_at
from certforge.services.field_renderer import FieldRenderer, find_mapping
from certforge.services.file_registry import FileRegistry
from certforge.services.generation_store import GenerationStore
from certforge.services.job_state import JobTracker
from certforge.services.preview_generator import PreviewGenerator
from certforge.services.recipient_parser import RecipientParser
from certforge.services.template_service import TemplateService, validate_template_fields

logger = logging.getLogger(__name__)

ZIP_MIME_TYPE = "application/zip"


def name_field_column(resolved: LatestTemplateVersion, request: GenerateCertificatesRequest) -> Optional[str]:
    """Column mapped onto the template's name field, if any"""
    for template_field in resolved.fields:
        if template_field.type != FieldType.NAME:
            continue
        mapping = find_mapping(template_field, request.field_mappings)
        if mapping is not None:
            return mapping.column_name
    return None


@dataclass
class BatchRun:
    """Mutable state of one synchronous batch"""
    organization_id: str
    requested_by: Optional[str]
    job_id: str
    resolved: LatestTemplateVersion
    request: GenerateCertificatesRequest
    source_bytes: bytes
    output_format: OutputFormat
    issued_at: datetime
    certificates: List[GeneratedCertificateInfo] = field(default_factory=list)
    errors: List[PerItemRenderError] = field(default_factory=list)
    _zip_buffer: BytesIO = field(default_factory=BytesIO)
    _zip_file: Optional[zipfile.ZipFile] = None
    _zip_names: Set[str] = field(default_factory=set)

    def add_to_bundle(self, artifact: RenderedArtifact) -> str:
        if self._zip_file is None:
            self._zip_file = zipfile.ZipFile(self._zip_buffer, "w", zipfile.ZIP_DEFLATED)
        name = artifact.file_name
        stem, _, extension = name.rpartition(".")
        counter = 2
        while name in self._zip_names:
            name = f"{stem}_{counter}.{extension}"
            counter += 1
        self._zip_names.add(name)
        self._zip_file.writestr(name, artifact.content)
        return name

    def close_bundle(self) -> bytes:
        if self._zip_file is not None:
            self._zip_file.close()
            self._zip_file = None
        return self._zip_buffer.getvalue()

    def error_dicts(self) -> List[Dict[str, Any]]:
        return [error.to_dict() for error in sorted(self.errors, key=lambda e: e.index)]

    def item_errors(self) -> Optional[List[ItemError]]:
        errors = self.error_dicts()
        return [ItemError(**error) for error in errors] if errors else None


class CertificateService:
    """Orchestrates certificate generation for one batch request"""

    def __init__(
        self,
        templates: TemplateService,
        store: GenerationStore,
        files: FileRegistry,
        storage,
        previews: PreviewGenerator,
        builder: ArtifactBuilder,
        bucket: str,
        max_sync_batch_size: int = 50,
        zip_url_min_certificates: int = 10,
        signed_url_ttl_seconds: int = 3600,
        item_timeout_seconds: float = 30.0,
        batch_timeout_seconds: float = 600.0,
    ):
        self.templates = templates
        self.store = store
        self.files = files
        self.storage = storage
        self.previews = previews
        self.builder = builder
        self.bucket = bucket
        self.max_sync_batch_size = max_sync_batch_size
        self.zip_url_min_certificates = zip_url_min_certificates
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.item_timeout_seconds = item_timeout_seconds
        self.batch_timeout_seconds = batch_timeout_seconds

    @classmethod
    def from_settings(cls, settings, database, storage) -> "CertificateService":
        templates = TemplateService(database, style_max_bytes=settings.STYLE_MAX_BYTES)
        files = FileRegistry(database)
        previews = PreviewGenerator(
            storage, templates, files, bucket=settings.STORAGE_BUCKET, max_width=settings.PREVIEW_MAX_WIDTH
        )
        return cls(
            templates=templates,
            store=GenerationStore(database, number_prefix=settings.CERTIFICATE_NUMBER_PREFIX),
            files=files,
            storage=storage,
            previews=previews,
            builder=ArtifactBuilder(FieldRenderer(settings.APP_URL, fonts_dir=settings.FONTS_DIR)),
            bucket=settings.STORAGE_BUCKET,
            max_sync_batch_size=settings.MAX_SYNC_BATCH_SIZE,
            zip_url_min_certificates=settings.ZIP_URL_MIN_CERTIFICATES,
            signed_url_ttl_seconds=settings.SIGNED_URL_TTL_SECONDS,
            item_timeout_seconds=settings.GENERATION_ITEM_TIMEOUT_SECONDS,
            batch_timeout_seconds=settings.GENERATION_BATCH_TIMEOUT_SECONDS,
        )

    async def generate_certificates(
        self,
        organization_id: str,
        requested_by: Optional[str],
        request: GenerateCertificatesRequest,
    ) -> GenerationResult:
        """
        Generate certificates for every row of the request.

        Batches above the synchronous cap are only recorded as `queued` jobs.
        Smaller batches render sequentially; a failing recipient is recorded
        in `errors` and the batch moves on. The job completes once every row
        was attempted; only failures outside the per-recipient loop (or the
        batch deadline) fail the job. Certificates issued before such a
        failure stay valid.
        """
        # Template problems surface before any job exists
        resolved = await self.templates.get_latest_version(request.template_id, organization_id)
        validate_template_fields(resolved.fields, resolved.version.page_count)

        total_requested = len(request.data)
        options_snapshot = {
            "options": request.options.model_dump(mode="json"),
            "field_mappings": [m.model_dump(mode="json") for m in request.field_mappings],
        }

        if total_requested > self.max_sync_batch_size:
            job_id = await self.store.create_job(
                organization_id, resolved.template.id, resolved.version.id, requested_by,
                JobStatus.QUEUED, options_snapshot, total_requested,
            )
            logger.info(
                "Job %s queued: %d recipients exceeds synchronous cap of %d",
                job_id, total_requested, self.max_sync_batch_size,
            )
            return GenerationResult(
                job_id=job_id,
                status=JobStatus.QUEUED,
                total_requested=total_requested,
                total_certificates=0,
            )

        source = resolved.source_file
        source_bytes = await self.storage.download(source.bucket, source.path)

        job_id = await self.store.create_job(
            organization_id, resolved.template.id, resolved.version.id, requested_by,
            JobStatus.RUNNING, options_snapshot, total_requested,
        )
        job = JobTracker(self.store, job_id, JobStatus.RUNNING)
        logger.info("Job %s running: %d recipients, template %s", job_id, total_requested, resolved.to_summary())

        run = BatchRun(
            organization_id=organization_id,
            requested_by=requested_by,
            job_id=job_id,
            resolved=resolved,
            request=request,
            source_bytes=source_bytes,
            output_format=resolve_output_format(source.mime_type),
            issued_at=resolve_issued_at(request.options.issue_date),
        )

        try:
            recipients = RecipientParser.extract_all(
                request.data,
                request.options.recipient_columns,
                name_field_column(resolved, request),
            )
            recipient_ids = await self.store.insert_recipients(job_id, organization_id, recipients)
            for recipient, recipient_id in zip(recipients, recipient_ids):
                recipient.id = recipient_id

            await self._process_recipients(run, recipients)
            zip_url = await self._publish_bundle(run)
            await job.complete(len(run.certificates), run.error_dicts())
        except PipelineError as exc:
            return await self._fail(job, run, exc)
        except Exception as exc:
            logger.exception("Job %s aborted", job_id)
            return await self._fail(job, run, PipelineError(str(exc)))

        logger.info(
            "Job %s completed: %d issued, %d failed",
            job_id, len(run.certificates), len(run.errors),
        )
        return GenerationResult(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            total_requested=total_requested,
            total_certificates=len(run.certificates),
            certificates=run.certificates,
            zip_download_url=zip_url,
            errors=run.item_errors(),
        )

    async def _process_recipients(self, run: BatchRun, recipients: List[RecipientRecord]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout_seconds

        for position, recipient in enumerate(recipients):
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise BatchTimeoutError(
                    f"Batch deadline exceeded after {position} of {len(recipients)} recipients"
                )
            timeout = min(self.item_timeout_seconds, remaining)
            try:
                info = await asyncio.wait_for(self._process_one(run, recipient), timeout)
            except asyncio.TimeoutError:
                if timeout < self.item_timeout_seconds:
                    raise BatchTimeoutError(
                        f"Batch deadline exceeded after {position} of {len(recipients)} recipients"
                    )
                error = PerItemRenderError(recipient.index, f"Timed out after {timeout:g}s")
                logger.warning("Job %s recipient %d: %s", run.job_id, recipient.index, error.message)
                run.errors.append(error)
                continue
            except PerItemRenderError as error:
                logger.warning("Job %s recipient %d: %s", run.job_id, recipient.index, error.message)
                run.errors.append(error)
                continue
            run.certificates.append(info)

    async def _process_one(self, run: BatchRun, recipient: RecipientRecord) -> GeneratedCertificateInfo:
        display_name = recipient.name if recipient.name != RecipientParser.UNKNOWN_NAME else None
        built = await asyncio.to_thread(
            self.builder.build,
            recipient.index,
            run.source_bytes,
            run.output_format,
            run.resolved.fields,
            run.request.field_mappings,
            recipient.row,
            run.request.options,
            display_name,
        )
        if isinstance(built, ItemFailure):
            raise PerItemRenderError(built.index, built.error)

        stack = CompensationStack(f"job:{run.job_id}:recipient:{recipient.index}")
        try:
            info = await self._issue(run, recipient, built, stack)
        except asyncio.CancelledError:
            await stack.unwind()
            raise
        except Exception as exc:
            await stack.unwind()
            raise PerItemRenderError(recipient.index, str(exc)) from exc
        stack.commit()

        run.add_to_bundle(built)
        return info

    async def _issue(
        self,
        run: BatchRun,
        recipient: RecipientRecord,
        built: RenderedArtifact,
        stack: CompensationStack,
    ) -> GeneratedCertificateInfo:
        options = run.request.options
        organization_id = run.organization_id

        certificate_number = await self.store.next_certificate_number(organization_id)
        expires_at = compute_expiry(options.expiry_type, run.issued_at, options.custom_expiry_date, recipient.row)

        certificate_id = await self.store.insert_certificate(
            organization_id=organization_id,
            job_id=run.job_id,
            recipient_id=recipient.id,
            template_id=run.resolved.template.id,
            template_version_id=run.resolved.version.id,
            certificate_number=certificate_number,
            recipient_name=recipient.name,
            recipient_email=recipient.email,
            recipient_phone=recipient.phone,
            verification_token_hash=built.verification_token_hash,
            issued_at=run.issued_at,
            expires_at=expires_at,
            issued_by=run.requested_by,
        )
        stack.push(f"delete certificate {certificate_id}", lambda: self.store.delete_certificate(certificate_id))

        path = f"certificates/{organization_id}/{run.job_id}/{certificate_id}.{built.extension}"
        await self.storage.upload(self.bucket, path, built.content, built.mime_type)
        stack.push(f"delete {path}", lambda: self.storage.delete(self.bucket, path))

        stored = await self.files.register(
            organization_id=organization_id,
            bucket=self.bucket,
            path=path,
            kind="certificate",
            mime_type=built.mime_type,
            size_bytes=built.size_bytes,
            checksum_sha256=built.checksum,
            original_name=built.file_name,
            created_by=run.requested_by,
        )
        stack.push(f"unregister file {stored.id}", lambda: self.files.delete(stored.id))

        preview = await self._try_preview(run, certificate_id, built, stack)
        await self.store.attach_certificate_files(certificate_id, stored.id, preview.id if preview else None)

        download_url = await self.storage.signed_url(self.bucket, path, self.signed_url_ttl_seconds)
        preview_url = None
        if preview:
            preview_url = await self.storage.signed_url(preview.bucket, preview.path, self.signed_url_ttl_seconds)

        return GeneratedCertificateInfo(
            id=certificate_id,
            certificate_number=certificate_number,
            recipient_name=recipient.name,
            recipient_email=recipient.email,
            recipient_phone=recipient.phone,
            issued_at=run.issued_at,
            expires_at=expires_at,
            download_url=download_url,
            preview_url=preview_url,
            verification_token=built.verification_token,
        )

    async def _try_preview(
        self,
        run: BatchRun,
        certificate_id: str,
        built: RenderedArtifact,
        stack: CompensationStack,
    ) -> Optional[StoredFile]:
        """A certificate without a preview is still valid"""
        preview_stack = CompensationStack(f"certificate-preview:{certificate_id}")
        try:
            preview = await self.previews.create_certificate_preview(
                preview_stack,
                run.organization_id,
                run.job_id,
                certificate_id,
                built.content,
                built.mime_type,
                requested_by=run.requested_by,
            )
        except asyncio.CancelledError:
            await preview_stack.unwind()
            raise
        except Exception as exc:
            logger.warning("Preview skipped for certificate %s: %s", certificate_id, exc)
            await preview_stack.unwind()
            return None
        stack.absorb(preview_stack)
        return preview

    async def _publish_bundle(self, run: BatchRun) -> Optional[str]:
        if not run.certificates:
            return None

        content = run.close_bundle()
        bundle_name = sanitize_file_name(run.request.options.file_name or "") or "certificates"
        path = f"exports/{run.organization_id}/{run.job_id}/{bundle_name}.zip"

        stack = CompensationStack(f"job:{run.job_id}:bundle")
        try:
            await self.storage.upload(self.bucket, path, content, ZIP_MIME_TYPE)
            stack.push(f"delete {path}", lambda: self.storage.delete(self.bucket, path))
            await self.files.register(
                organization_id=run.organization_id,
                bucket=self.bucket,
                path=path,
                kind="bundle",
                mime_type=ZIP_MIME_TYPE,
                size_bytes=len(content),
                checksum_sha256=compute_sha256(content),
                original_name=f"{bundle_name}.zip",
                created_by=run.requested_by,
            )
        except Exception as exc:
            await stack.unwind()
            raise PipelineError(f"Bundle upload failed: {exc}") from exc
        stack.commit()

        # Small batches are fetched per certificate
        if len(run.certificates) <= self.zip_url_min_certificates:
            return None
        return await self.storage.signed_url(self.bucket, path, self.signed_url_ttl_seconds)

    async def _fail(self, job: JobTracker, run: BatchRun, exc: PipelineError) -> GenerationResult:
        logger.error("Job %s failed (%s): %s", job.job_id, exc.kind, exc.message)
        await job.fail(
            exc.message,
            exc.kind,
            total_certificates=len(run.certificates),
            errors=run.error_dicts(),
        )
        return GenerationResult(
            job_id=job.job_id,
            status=JobStatus.FAILED,
            total_requested=len(run.request.data),
            total_certificates=len(run.certificates),
            certificates=run.certificates,
            errors=run.item_errors(),
            error=exc.message,
        )
