"""
Request Dependencies
Tenant context from gateway headers and services from application state
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Header, HTTPException, Request, status

from certforge.services.certificate_service import CertificateService
from certforge.services.preview_generator import PreviewGenerator


@dataclass
class RequestContext:
    organization_id: str
    user_id: Optional[str] = None


async def get_request_context(
    x_organization_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> RequestContext:
    """
    Identify the tenant of the request

    The upstream gateway authenticates the caller and forwards the ids.

    Raises:
        HTTPException: If the organization header is missing
    """
    if not x_organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-Id header is required"
        )
    return RequestContext(organization_id=x_organization_id, user_id=x_user_id or None)


def get_certificate_service(request: Request) -> CertificateService:
    return request.app.state.certificate_service


def get_preview_generator(request: Request) -> PreviewGenerator:
    return request.app.state.certificate_service.previews
