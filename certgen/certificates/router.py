import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.admins.models import Admin
from certgen.auth.dependencies import get_current_admin
from certgen.certificates.models import CertificateStatus
from certgen.certificates.packager import build_archive
from certgen.certificates.schemas import (
    BulkDeleteRequest,
    BulkDeleteResult,
    BulkDownloadRequest,
    CertificateCreate,
    CertificateListOut,
    CertificateOut,
    CertificateUpdate,
    DashboardStats,
)
from certgen.certificates.service import (
    CertificateIdConflictError,
    CertificateNotFoundError,
    InvalidConfirmationError,
    TemplateNotReadyError,
    archive_certificate,
    bulk_delete,
    certificates_for_download,
    dashboard_stats,
    generate_certificate,
    get_certificate,
    list_certificates,
    record_download,
    record_downloads,
    update_certificate,
)
from certgen.database import get_db
from certgen.progress.hub import hub
from certgen.ratelimit import client_ip, generate_limiter
from certgen.rendering.generator import CertificateGenerator, get_generator
from certgen.templates.service import TemplateNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_certificate(db: AsyncSession, certificate_pk: uuid.UUID, admin: Admin, active_only: bool = False):
    try:
        return await get_certificate(db, certificate_pk, admin.id, active_only=active_only)
    except CertificateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ── Generation ───────────────────────────────────────────────────────


@router.post("", response_model=CertificateOut, status_code=status.HTTP_201_CREATED)
async def create_certificate(
    data: CertificateCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    generator: CertificateGenerator = Depends(get_generator),
    current_admin: Admin = Depends(get_current_admin),
):
    generate_limiter.hit(str(current_admin.id))
    try:
        return await generate_certificate(
            db,
            current_admin.id,
            data,
            generator,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TemplateNotReadyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CertificateIdConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ── Browse ───────────────────────────────────────────────────────────


@router.get("", response_model=CertificateListOut)
async def list_my_certificates(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    status_filter: CertificateStatus | None = Query(None, alias="status"),
    template_id: uuid.UUID | None = Query(None, alias="templateId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    items, total, pages = await list_certificates(
        db,
        current_admin.id,
        page=page,
        limit=limit,
        search=search,
        status=status_filter,
        template_id=template_id,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {"items": items, "total": total, "page": page, "limit": limit, "pages": pages}


@router.get("/stats/dashboard", response_model=DashboardStats)
async def get_dashboard_stats(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    return await dashboard_stats(db, current_admin.id)


# ── Bulk operations ──────────────────────────────────────────────────


@router.delete("/bulk", response_model=BulkDeleteResult)
async def delete_all_certificates(
    data: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    generator: CertificateGenerator = Depends(get_generator),
    current_admin: Admin = Depends(get_current_admin),
):
    """Permanently delete every active certificate of the current admin."""
    try:
        deleted, files = await bulk_delete(db, current_admin.id, data.confirm_text, generator)
    except InvalidConfirmationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return BulkDeleteResult(deleted_count=deleted, files_deleted=files)


@router.post("/bulk-download")
async def bulk_download(
    data: BulkDownloadRequest,
    db: AsyncSession = Depends(get_db),
    generator: CertificateGenerator = Depends(get_generator),
    current_admin: Admin = Depends(get_current_admin),
):
    certificates = await certificates_for_download(db, current_admin.id, data.certificate_ids)
    if not certificates:
        raise HTTPException(status_code=404, detail="No valid certificates found for download")

    async def _progress(**progress):
        await hub.bulk_download_progress(current_admin.id, **progress)

    try:
        archive = await build_archive(certificates, data.format, generator, on_progress=_progress)
    except OSError as e:
        logger.exception("Bulk download failed for admin %s", current_admin.id)
        await hub.bulk_download_error(current_admin.id, str(e))
        raise HTTPException(status_code=500, detail="Error creating ZIP archive")

    if not archive.added:
        await hub.bulk_download_error(current_admin.id, "No valid certificate files found for download")
        raise HTTPException(status_code=404, detail="No valid certificate files found for download")

    await record_downloads(db, archive.added_ids)
    await hub.bulk_download_complete(
        current_admin.id,
        status="completed",
        total=archive.total,
        processed=archive.processed,
        added=archive.added,
        zipFileName=archive.filename,
        message=f"Successfully created ZIP archive with {archive.added} certificates",
        percentage=100,
    )
    return Response(
        content=archive.content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{archive.filename}"',
            "Cache-Control": "no-cache",
        },
    )


# ── Single certificate ───────────────────────────────────────────────


@router.get("/{certificate_pk}", response_model=CertificateOut)
async def get_one_certificate(
    certificate_pk: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    return await _owned_certificate(db, certificate_pk, current_admin)


@router.get("/{certificate_pk}/download/{fmt}")
async def download_certificate(
    certificate_pk: uuid.UUID,
    fmt: str,
    db: AsyncSession = Depends(get_db),
    generator: CertificateGenerator = Depends(get_generator),
    current_admin: Admin = Depends(get_current_admin),
):
    if fmt not in ("pdf", "png"):
        raise HTTPException(status_code=400, detail="Invalid format. Supported formats: pdf, png")
    certificate = await _owned_certificate(db, certificate_pk, current_admin, active_only=True)
    if certificate.status != CertificateStatus.GENERATED:
        raise HTTPException(status_code=400, detail="Certificate has not been generated successfully")

    info = generator.file_info(certificate.certificate_id, fmt)
    if not info.exists:
        raise HTTPException(status_code=404, detail="Certificate file not found on server")

    await record_download(db, certificate)
    return FileResponse(
        info.path,
        media_type="application/pdf" if fmt == "pdf" else "image/png",
        filename=info.filename,
    )


@router.put("/{certificate_pk}", response_model=CertificateOut)
async def update_one_certificate(
    certificate_pk: uuid.UUID,
    data: CertificateUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    certificate = await _owned_certificate(db, certificate_pk, current_admin, active_only=True)
    return await update_certificate(db, certificate, data)


@router.delete("/{certificate_pk}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_certificate(
    certificate_pk: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    """Archive a certificate: it disappears from listings but stays stored."""
    certificate = await _owned_certificate(db, certificate_pk, current_admin, active_only=True)
    await archive_certificate(db, certificate)
