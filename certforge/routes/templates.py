"""
Template Endpoints
Preview generation for template versions
"""

from fastapi import APIRouter, Depends

from certforge.routes.dependencies import RequestContext, get_preview_generator, get_request_context
from certforge.services.preview_generator import PreviewGenerator

router = APIRouter()


@router.post("/{template_id}/versions/{version_id}/preview")
async def generate_template_preview(
    template_id: str,
    version_id: str,
    context: RequestContext = Depends(get_request_context),
    previews: PreviewGenerator = Depends(get_preview_generator),
):
    """Create the version's preview image, or return the existing one"""
    stored = await previews.generate_preview(context.organization_id, template_id, version_id, context.user_id)
    return {
        "file_id": stored.id,
        "bucket": stored.bucket,
        "path": stored.path,
        "mime_type": stored.mime_type,
        "size_bytes": stored.size_bytes,
    }
