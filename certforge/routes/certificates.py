"""
Certificate Endpoints
Batch generation and job status
"""

from fastapi import APIRouter, Depends

from certforge.errors import NotFoundError
from certforge.routes.dependencies import RequestContext, get_certificate_service, get_request_context
from certforge.schemas.generation import GenerateCertificatesRequest, GenerationResult
from certforge.services.certificate_service import CertificateService

router = APIRouter()


@router.post("/generate", response_model=GenerationResult)
async def generate_certificates(
    request: GenerateCertificatesRequest,
    context: RequestContext = Depends(get_request_context),
    service: CertificateService = Depends(get_certificate_service),
):
    """Generate one certificate per data row"""
    return await service.generate_certificates(context.organization_id, context.user_id, request)


@router.get("/jobs/{job_id}")
async def get_generation_job(
    job_id: str,
    context: RequestContext = Depends(get_request_context),
    service: CertificateService = Depends(get_certificate_service),
):
    """Current state of a generation job"""
    job = await service.store.get_job(job_id)
    if str(job["organization_id"]) != context.organization_id:
        raise NotFoundError("Generation job not found")
    return {
        "job_id": str(job["id"]),
        "status": job["status"],
        "total_requested": job["total_requested"],
        "total_certificates": job["total_certificates"],
        "errors": job.get("errors"),
        "error": job.get("error_message"),
        "error_kind": job.get("error_kind"),
        "created_at": job.get("created_at"),
        "completed_at": job.get("completed_at"),
    }
