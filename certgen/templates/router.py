import logging
import os
import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.admins.models import Admin
from certgen.auth.dependencies import get_current_admin
from certgen.config import settings as app_settings
from certgen.database import get_db
from certgen.ratelimit import upload_limiter
from certgen.rendering.fonts import FONT_CHOICES
from certgen.templates.assets import (
    ALLOWED_MIME_TYPES,
    TemplateTooLargeError,
    probe_dimensions,
    remove_asset,
    save_upload,
)
from certgen.templates.schemas import (
    FontChoice,
    PlaceholderLayout,
    TemplateListOut,
    TemplateOut,
    TemplateUpdate,
)
from certgen.templates.service import (
    DuplicateTemplateNameError,
    TemplateNotFoundError,
    create_template,
    deactivate_template,
    get_template,
    list_templates,
    save_placeholders,
    update_template,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_template(db: AsyncSession, template_id: uuid.UUID, admin: Admin, active_only: bool = False):
    try:
        return await get_template(db, template_id, admin.id, active_only=active_only)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ── Upload ───────────────────────────────────────────────────────────


@router.post("/upload", response_model=TemplateOut, status_code=status.HTTP_201_CREATED)
async def upload_template(
    file: UploadFile = File(...),
    name: str = Form(...),
    description: str | None = Form(None),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    upload_limiter.hit(str(current_admin.id))

    name = name.strip()
    if not 2 <= len(name) <= 100:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Template name must be between 2 and 100 characters.",
        )
    if description and len(description) > 500:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Description cannot exceed 500 characters.",
        )
    if file.content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported file type. Use an image (JPEG, PNG, GIF, BMP, WebP, TIFF) or a PDF.",
        )
    content = await file.read()
    max_bytes = app_settings.max_upload_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum {app_settings.max_upload_size_mb} MB.",
        )
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")

    filename, path = save_upload(content, file.filename, file.content_type)
    try:
        width, height = probe_dimensions(path, file.content_type)
    except TemplateTooLargeError:
        remove_asset(path)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Image dimensions are too large to process.",
        )
    try:
        return await create_template(
            db,
            current_admin.id,
            name=name,
            description=description,
            filename=filename,
            original_name=file.filename or filename,
            file_path=path,
            file_size=len(content),
            mime_type=file.content_type,
            width=width,
            height=height,
        )
    except DuplicateTemplateNameError as e:
        remove_asset(path)
        raise HTTPException(status_code=400, detail=str(e))


# ── Browse ───────────────────────────────────────────────────────────


@router.get("", response_model=TemplateListOut)
async def list_my_templates(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    status_filter: str | None = Query(None, alias="status", pattern="^(active|inactive)$"),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    items, total, pages = await list_templates(db, current_admin.id, page, limit, search, status_filter)
    return {"items": items, "total": total, "page": page, "limit": limit, "pages": pages}


@router.get("/fonts", response_model=list[FontChoice])
async def list_fonts(_: Admin = Depends(get_current_admin)):
    return FONT_CHOICES


@router.get("/{template_id}", response_model=TemplateOut)
async def get_one_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    return await _owned_template(db, template_id, current_admin)


@router.get("/{template_id}/file")
async def serve_template_file(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    template = await _owned_template(db, template_id, current_admin, active_only=True)
    if not os.path.isfile(template.file_path):
        raise HTTPException(status_code=404, detail="Template file not found on server")
    return FileResponse(template.file_path, media_type=template.mime_type, filename=template.original_name)


# ── Editor ───────────────────────────────────────────────────────────


@router.post("/{template_id}/placeholders", response_model=TemplateOut)
async def save_template_placeholders(
    template_id: uuid.UUID,
    data: PlaceholderLayout,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    template = await _owned_template(db, template_id, current_admin, active_only=True)
    return await save_placeholders(db, template, data, current_admin.id)


@router.put("/{template_id}", response_model=TemplateOut)
async def update_one_template(
    template_id: uuid.UUID,
    data: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    template = await _owned_template(db, template_id, current_admin)
    try:
        return await update_template(db, template, data, current_admin.id)
    except DuplicateTemplateNameError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    """Deactivate a template. Certificates keep their snapshot of it."""
    template = await _owned_template(db, template_id, current_admin)
    await deactivate_template(db, template, current_admin.id)
