"""
Shared fixtures: in-memory collaborators and generated template sources.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

from certforge.errors import NotFoundError, StorageError
from certforge.schemas.template import (
    LatestTemplateVersion,
    StoredFile,
    Template,
    TemplateField,
    TemplateVersion,
)
from certforge.services.artifact_builder import ArtifactBuilder
from certforge.services.certificate_service import CertificateService
from certforge.services.field_renderer import FieldRenderer
from certforge.services.generation_store import format_certificate_number
from certforge.services.preview_generator import PreviewGenerator

ORG_ID = "11111111-1111-1111-1111-111111111111"
OTHER_ORG_ID = "22222222-2222-2222-2222-222222222222"
USER_ID = "33333333-3333-3333-3333-333333333333"
TEMPLATE_ID = "44444444-4444-4444-4444-444444444444"
VERSION_ID = "55555555-5555-5555-5555-555555555555"
SOURCE_FILE_ID = "66666666-6666-6666-6666-666666666666"
BUCKET = "certforge"
APP_URL = "https://certs.test"

PAGE_SIZE = (300, 200)


# =============================================================
# In-memory collaborators
# =============================================================

class FakeStorage:
    """Object store keyed by (bucket, path); uploads never overwrite"""

    def __init__(self):
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.deleted: List[str] = []
        self.downloads: List[str] = []
        self.fail_upload: Optional[Callable[[str], bool]] = None

    def put(self, bucket: str, path: str, content: bytes, content_type: str) -> None:
        self.objects[(bucket, path)] = (content, content_type)

    def paths(self, prefix: str = "") -> List[str]:
        return sorted(path for _, path in self.objects if path.startswith(prefix))

    def content(self, path: str, bucket: str = BUCKET) -> bytes:
        return self.objects[(bucket, path)][0]

    async def download(self, bucket: str, path: str) -> bytes:
        self.downloads.append(path)
        if (bucket, path) not in self.objects:
            raise NotFoundError(f"Stored file not found: {bucket}/{path}")
        return self.objects[(bucket, path)][0]

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> None:
        if self.fail_upload and self.fail_upload(path):
            raise StorageError(f"Storage upload failed: {path}")
        if (bucket, path) in self.objects:
            raise StorageError(f"Storage object already exists: {bucket}/{path}", conflict=True)
        self.objects[(bucket, path)] = (content, content_type)

    async def signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        return f"https://storage.test/{bucket}/{path}?ttl={ttl_seconds}"

    async def delete(self, bucket: str, path: str) -> None:
        self.deleted.append(path)
        self.objects.pop((bucket, path), None)


class FakeTemplates:
    """Single-template catalogue"""

    def __init__(self, latest: LatestTemplateVersion):
        self.latest = latest
        self.competing_preview_id: Optional[str] = None

    async def get_template(self, template_id: str, organization_id: str) -> Template:
        template = self.latest.template
        if template.id != template_id or template.organization_id != organization_id:
            raise NotFoundError("Template not found")
        return template

    async def get_latest_version(self, template_id: str, organization_id: str) -> LatestTemplateVersion:
        await self.get_template(template_id, organization_id)
        return self.latest

    async def get_version(self, version_id: str) -> TemplateVersion:
        if version_id != self.latest.version.id:
            raise NotFoundError("Template version not found")
        return self.latest.version.model_copy()

    async def set_preview_file(self, version_id: str, file_id: str) -> Optional[str]:
        version = self.latest.version
        if self.competing_preview_id and version.preview_file_id is None:
            # Another writer lands between our read and our update
            version.preview_file_id = self.competing_preview_id
        if version.preview_file_id is None:
            version.preview_file_id = file_id
        return version.preview_file_id


class FakeFiles:
    def __init__(self):
        self.rows: Dict[str, dict] = {}
        self.fail_register: Optional[Callable[[str], bool]] = None

    def add(self, stored: StoredFile, organization_id: str = ORG_ID) -> None:
        self.rows[stored.id] = {**stored.model_dump(), "organization_id": organization_id}

    def by_kind(self, kind: str) -> List[dict]:
        return [row for row in self.rows.values() if row["kind"] == kind]

    async def register(self, **kwargs) -> StoredFile:
        if self.fail_register and self.fail_register(kwargs["kind"]):
            raise RuntimeError("files table unavailable")
        file_id = str(uuid.uuid4())
        self.rows[file_id] = {"id": file_id, **kwargs}
        return StoredFile(
            id=file_id,
            bucket=kwargs["bucket"],
            path=kwargs["path"],
            mime_type=kwargs["mime_type"],
            size_bytes=kwargs["size_bytes"],
            checksum_sha256=kwargs["checksum_sha256"],
            kind=kwargs["kind"],
        )

    async def get(self, file_id: str) -> StoredFile:
        if file_id not in self.rows:
            raise NotFoundError("File not found")
        row = self.rows[file_id]
        return StoredFile(
            id=file_id,
            bucket=row["bucket"],
            path=row["path"],
            mime_type=row["mime_type"],
            size_bytes=row.get("size_bytes") or 0,
            checksum_sha256=row.get("checksum_sha256"),
            kind=row.get("kind"),
        )

    async def delete(self, file_id: str) -> None:
        self.rows.pop(file_id, None)


class FakeStore:
    """Jobs, recipients, certificates and a locked per-organization counter"""

    def __init__(self, number_prefix: str = "CERT"):
        self.number_prefix = number_prefix
        self.jobs: Dict[str, dict] = {}
        self.status_history: List[Tuple[str, str]] = []
        self.recipients: Dict[str, dict] = {}
        self.certificates: Dict[str, dict] = {}
        self.counters: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def create_job(self, organization_id, template_id, template_version_id, requested_by,
                         status, options, total_requested) -> str:
        job_id = str(uuid.uuid4())
        self.jobs[job_id] = {
            "id": job_id,
            "organization_id": organization_id,
            "template_id": template_id,
            "template_version_id": template_version_id,
            "created_by_user_id": requested_by,
            "status": status.value,
            "options": options,
            "total_requested": total_requested,
            "total_certificates": 0,
            "errors": None,
            "error_message": None,
            "error_kind": None,
        }
        self.status_history.append((job_id, status.value))
        return job_id

    async def update_job_status(self, job_id, status, total_certificates=None, errors=None,
                                error_message=None, error_kind=None) -> None:
        job = self.jobs[job_id]
        job["status"] = status.value
        if total_certificates is not None:
            job["total_certificates"] = total_certificates
        job["errors"] = errors
        job["error_message"] = error_message
        job["error_kind"] = error_kind
        self.status_history.append((job_id, status.value))

    async def get_job(self, job_id: str) -> dict:
        if job_id not in self.jobs:
            raise NotFoundError("Generation job not found")
        return dict(self.jobs[job_id])

    async def insert_recipients(self, job_id, organization_id, recipients) -> List[str]:
        ids = []
        for recipient in recipients:
            recipient_id = str(uuid.uuid4())
            self.recipients[recipient_id] = {"job_id": job_id, "row_index": recipient.index, "name": recipient.name}
            ids.append(recipient_id)
        return ids

    async def next_certificate_number(self, organization_id: str, year: Optional[int] = None) -> str:
        async with self._lock:
            value = self.counters.get(organization_id, 0) + 1
            await asyncio.sleep(0)
            self.counters[organization_id] = value
        year = year or datetime.now(timezone.utc).year
        return format_certificate_number(self.number_prefix, year, value)

    async def insert_certificate(self, **kwargs) -> str:
        certificate_id = str(uuid.uuid4())
        self.certificates[certificate_id] = dict(kwargs)
        return certificate_id

    async def attach_certificate_files(self, certificate_id, certificate_file_id, preview_file_id=None) -> None:
        self.certificates[certificate_id]["certificate_file_id"] = certificate_file_id
        self.certificates[certificate_id]["certificate_preview_file_id"] = preview_file_id

    async def delete_certificate(self, certificate_id: str) -> None:
        self.certificates.pop(certificate_id, None)


# =============================================================
# Template sources
# =============================================================

def make_png(size=PAGE_SIZE, color=(255, 255, 255), mode="RGB") -> bytes:
    output = BytesIO()
    Image.new(mode, size, color).save(output, format="PNG")
    return output.getvalue()


def make_jpeg(size=PAGE_SIZE) -> bytes:
    output = BytesIO()
    Image.new("RGB", size, (250, 250, 240)).save(output, format="JPEG", quality=95)
    return output.getvalue()


def make_pdf(pages: int = 1, size=PAGE_SIZE) -> bytes:
    packet = BytesIO()
    c = canvas.Canvas(packet, pagesize=size, invariant=1)
    for number in range(1, pages + 1):
        c.setFont("Helvetica", 10)
        c.drawString(10, 10, f"Page {number}")
        c.showPage()
    c.save()
    return packet.getvalue()


def default_fields() -> List[TemplateField]:
    return [
        TemplateField(
            id="f-name", field_key="recipient_name", label="Name", type="name",
            x=20, y=30, width=260, height=40,
            style={"fontFamily": "Arial", "fontSize": 18, "textAlign": "center", "fontWeight": "bold"},
        ),
        TemplateField(
            id="f-course", field_key="course_name", label="Course", type="course",
            x=20, y=80, width=260, height=30, style={"fontSize": 12, "prefix": "for "},
        ),
        TemplateField(
            id="f-date", field_key="completion_date", label="Date", type="date",
            x=20, y=120, width=150, height=20, style={"fontSize": 10},
        ),
        TemplateField(
            id="f-qr", field_key="qr", label="QR", type="qr_code",
            x=230, y=130, width=60, height=60,
        ),
    ]


def default_mappings() -> List[dict]:
    return [
        {"fieldId": "f-name", "columnName": "Full Name"},
        {"fieldId": "f-course", "columnName": "Course"},
        {"fieldId": "completion_date", "columnName": "Date"},
    ]


def make_rows(count: int, **extra) -> List[dict]:
    return [
        {"Full Name": f"Recipient {i + 1}", "Email": f"r{i + 1}@example.com", "Course": "Data Engineering",
         "Date": "2025-01-15", **extra}
        for i in range(count)
    ]


def make_latest(
    mime_type: str = "image/png",
    page_count: int = 1,
    fields: Optional[List[TemplateField]] = None,
    organization_id: str = ORG_ID,
) -> LatestTemplateVersion:
    extension = {"application/pdf": "pdf", "image/jpeg": "jpg"}.get(mime_type, "png")
    return LatestTemplateVersion(
        template=Template(
            id=TEMPLATE_ID, organization_id=organization_id, title="Course Completion", latest_version_id=VERSION_ID
        ),
        version=TemplateVersion(
            id=VERSION_ID, template_id=TEMPLATE_ID, source_file_id=SOURCE_FILE_ID, page_count=page_count
        ),
        source_file=StoredFile(
            id=SOURCE_FILE_ID,
            bucket=BUCKET,
            path=f"certificate_templates/{organization_id}/{TEMPLATE_ID}/source.{extension}",
            mime_type=mime_type,
            kind="source",
        ),
        fields=default_fields() if fields is None else fields,
    )


@dataclass
class Harness:
    storage: FakeStorage
    templates: FakeTemplates
    files: FakeFiles
    store: FakeStore
    previews: PreviewGenerator
    service: CertificateService


def build_harness(
    latest: Optional[LatestTemplateVersion] = None,
    source_bytes: Optional[bytes] = None,
    builder: Optional[ArtifactBuilder] = None,
    **service_kwargs,
) -> Harness:
    latest = latest or make_latest()
    storage = FakeStorage()
    storage.put(BUCKET, latest.source_file.path, source_bytes if source_bytes is not None else make_png(),
                latest.source_file.mime_type)
    templates = FakeTemplates(latest)
    files = FakeFiles()
    files.add(latest.source_file)
    store = FakeStore()
    previews = PreviewGenerator(storage, templates, files, bucket=BUCKET, max_width=150)
    service = CertificateService(
        templates=templates,
        store=store,
        files=files,
        storage=storage,
        previews=previews,
        builder=builder or ArtifactBuilder(FieldRenderer(APP_URL)),
        bucket=BUCKET,
        **service_kwargs,
    )
    return Harness(storage, templates, files, store, previews, service)


@pytest.fixture
def png_template() -> bytes:
    return make_png()


@pytest.fixture
def pdf_template() -> bytes:
    return make_pdf(pages=2)


@pytest.fixture
def harness() -> Harness:
    return build_harness()
