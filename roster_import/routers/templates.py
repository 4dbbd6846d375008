"""
Templates Router
Downloadable blank roster workbooks.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from roster_import.dependencies.auth import get_current_active_user
from roster_import.models import User
from roster_import.services.template_generator import TemplateVariant, build_template


router = APIRouter()


@router.get("/download")
async def download_template(
    variant: str = Query(TemplateVariant.STANDARD.value, alias="format"),
    current_user: User = Depends(get_current_active_user)
):
    """Download the standard or the compatibility template."""
    template = build_template(variant)
    return Response(
        content=template.content,
        media_type=template.media_type,
        headers={"Content-Disposition": f'attachment; filename="{template.filename}"'}
    )
