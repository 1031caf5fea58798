import asyncio
import logging
import math
import time
import uuid
from collections import Counter
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.certificates.models import Certificate, CertificateStatus
from certgen.certificates.schemas import BULK_DELETE_CONFIRMATION, CertificateCreate, CertificateUpdate
from certgen.certificates.sequence import next_certificate_id
from certgen.rendering.errors import RenderError
from certgen.rendering.generator import CertificateGenerator
from certgen.templates.models import Template
from certgen.templates.schemas import missing_placeholder_types
from certgen.templates.service import get_template, increment_usage

logger = logging.getLogger(__name__)


class CertificateNotFoundError(Exception):
    pass


class TemplateNotReadyError(ValueError):
    """The template's placeholder layout cannot produce a certificate."""


class CertificateIdConflictError(Exception):
    pass


class InvalidConfirmationError(ValueError):
    pass


_SORT_COLUMNS = {
    "created_at": Certificate.created_at,
    "createdAt": Certificate.created_at,
    "participant_name": Certificate.participant_name,
    "participantName": Certificate.participant_name,
    "certificate_id": Certificate.certificate_id,
    "certificateId": Certificate.certificate_id,
    "status": Certificate.status,
    "download_count": Certificate.download_count,
    "downloadCount": Certificate.download_count,
    "issued_date": Certificate.issued_date,
    "issuedDate": Certificate.issued_date,
}


def template_snapshot(template: Template) -> dict:
    return {
        "name": template.name,
        "filename": template.filename,
        "mime_type": template.mime_type,
        "placeholders": list(template.placeholders or []),
        "dimensions": template.dimensions,
    }


def placeholder_values(data: CertificateCreate, certificate_id: str) -> dict[str, str | None]:
    """Values keyed by placeholder type.

    Explicit values from the request win; otherwise the participant name and
    the assigned certificate ID fill the two placeholder kinds.
    """
    values: dict[str, str | None] = {"name": data.participant_name, "id": certificate_id}
    for key in ("name", "id"):
        if key in data.placeholder_values:
            value = data.placeholder_values[key]
            values[key] = value.strip() if value else value
    return values


def ensure_template_ready(template: Template) -> None:
    if not template.placeholders:
        raise TemplateNotReadyError(
            "Template must have placeholders configured before generating certificates"
        )
    if missing_placeholder_types(template.placeholders):
        raise TemplateNotReadyError("Template must have both name and ID placeholders configured")


def _files_metadata(certificate: Certificate, files: dict) -> dict:
    return {
        fmt: {
            "filename": f.filename,
            "path": f.path,
            "size": f.size,
            "url": f"/api/certificates/{certificate.id}/download/{fmt}",
        }
        for fmt, f in files.items()
    }


async def generate_certificate(
    db: AsyncSession,
    admin_id: uuid.UUID,
    data: CertificateCreate,
    generator: CertificateGenerator,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Certificate:
    """Create a certificate record and render its PDF and PNG.

    The template is validated before any ID is allocated. The record is saved
    as pending first; a rendering failure leaves it ``failed`` without files
    instead of raising.
    """
    started = time.perf_counter()
    template = await get_template(db, data.template_id, admin_id, active_only=True)
    ensure_template_ready(template)

    certificate_id = await next_certificate_id(db)
    certificate = Certificate(
        certificate_id=certificate_id,
        participant_name=data.participant_name,
        template_id=template.id,
        template_snapshot=template_snapshot(template),
        status=CertificateStatus.PENDING,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500] or None,
        created_by=admin_id,
        notes=data.notes.strip() if data.notes else None,
        tags=data.tags,
        expiry_date=data.expiry_date,
    )
    if data.issued_date is not None:
        certificate.issued_date = data.issued_date
    db.add(certificate)
    try:
        # The usage update autoflushes the new row, so a duplicate ID can surface here
        await increment_usage(db, template.id)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.error("Certificate ID collision on %s: %s", certificate_id, exc)
        raise CertificateIdConflictError("Certificate ID already exists. Please try again.") from exc

    snapshot = certificate.template_snapshot
    try:
        files = await asyncio.to_thread(
            generator.generate,
            certificate_id=certificate_id,
            template_path=template.file_path,
            mime_type=snapshot["mime_type"],
            width=snapshot["dimensions"]["width"],
            height=snapshot["dimensions"]["height"],
            placeholders=snapshot["placeholders"],
            values=placeholder_values(data, certificate_id),
            container=data.container_dimensions.model_dump() if data.container_dimensions else None,
        )
    except RenderError:
        logger.exception("Certificate %s generation failed", certificate_id)
        certificate.status = CertificateStatus.FAILED
        certificate.generated_files = None
    else:
        certificate.status = CertificateStatus.GENERATED
        certificate.generated_files = _files_metadata(certificate, files)
        logger.info("Certificate %s generated", certificate_id)

    certificate.generation_time_ms = int((time.perf_counter() - started) * 1000)
    await db.commit()
    await db.refresh(certificate)
    return certificate


async def get_certificate(
    db: AsyncSession, certificate_pk: uuid.UUID, admin_id: uuid.UUID, active_only: bool = False
) -> Certificate:
    query = select(Certificate).where(
        Certificate.id == certificate_pk, Certificate.created_by == admin_id
    )
    if active_only:
        query = query.where(Certificate.is_active.is_(True))
    result = await db.execute(query)
    certificate = result.scalar_one_or_none()
    if certificate is None:
        raise CertificateNotFoundError("Certificate not found or access denied")
    return certificate


async def list_certificates(
    db: AsyncSession,
    admin_id: uuid.UUID,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    status: CertificateStatus | None = None,
    template_id: uuid.UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Certificate], int, int]:
    """Return (certificates, total, pages) of the admin's active certificates."""
    filters = [Certificate.created_by == admin_id, Certificate.is_active.is_(True)]
    if status is not None:
        filters.append(Certificate.status == status)
    if template_id is not None:
        filters.append(Certificate.template_id == template_id)
    if start_date is not None:
        filters.append(Certificate.created_at >= start_date)
    if end_date is not None:
        filters.append(Certificate.created_at <= end_date)
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(
            Certificate.participant_name.ilike(pattern),
            Certificate.certificate_id.ilike(pattern),
            Certificate.notes.ilike(pattern),
        ))

    column = _SORT_COLUMNS.get(sort_by, Certificate.created_at)
    order = column.asc() if sort_order == "asc" else column.desc()

    total = (await db.execute(select(func.count()).select_from(Certificate).where(*filters))).scalar_one()
    result = await db.execute(
        select(Certificate).where(*filters).order_by(order).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total, math.ceil(total / limit) if limit else 0


async def update_certificate(db: AsyncSession, certificate: Certificate, data: CertificateUpdate) -> Certificate:
    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "notes" and value is not None:
            value = value.strip()
        if field == "tags" and value is None:
            continue
        setattr(certificate, field, value)
    await db.commit()
    await db.refresh(certificate)
    return certificate


async def archive_certificate(db: AsyncSession, certificate: Certificate) -> None:
    """Hide a certificate from listings; the row and its files are kept."""
    certificate.status = CertificateStatus.ARCHIVED
    certificate.is_active = False
    await db.commit()
    logger.info("Certificate archived: %s", certificate.certificate_id)


async def bulk_delete(
    db: AsyncSession, admin_id: uuid.UUID, confirm_text: str, generator: CertificateGenerator
) -> tuple[int, int]:
    """Permanently delete all active certificates of an admin and their files.

    Returns (deleted records, deleted files). Nothing happens unless
    ``confirm_text`` is exactly the confirmation phrase.
    """
    if confirm_text != BULK_DELETE_CONFIRMATION:
        raise InvalidConfirmationError(
            f'Invalid confirmation text. Please type "{BULK_DELETE_CONFIRMATION}" to confirm.'
        )

    filters = (Certificate.created_by == admin_id, Certificate.is_active.is_(True))
    result = await db.execute(select(Certificate.id, Certificate.certificate_id).where(*filters))
    rows = result.all()
    if not rows:
        return 0, 0

    files_deleted = 0
    for _, certificate_id in rows:
        files_deleted += generator.delete_files(certificate_id)

    await db.execute(
        delete(Certificate)
        .where(Certificate.id.in_([pk for pk, _ in rows]))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.warning(
        "Bulk delete by admin %s: %d certificates, %d files", admin_id, len(rows), files_deleted
    )
    return len(rows), files_deleted


async def record_download(db: AsyncSession, certificate: Certificate) -> None:
    await record_downloads(db, [certificate.id])


async def record_downloads(db: AsyncSession, certificate_pks: list[uuid.UUID]) -> None:
    if not certificate_pks:
        return
    await db.execute(
        update(Certificate)
        .where(Certificate.id.in_(certificate_pks))
        .values(
            download_count=Certificate.download_count + 1,
            last_downloaded_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def certificates_for_download(
    db: AsyncSession, admin_id: uuid.UUID, certificate_pks: list[uuid.UUID]
) -> list[Certificate]:
    result = await db.execute(
        select(Certificate)
        .where(
            Certificate.id.in_(certificate_pks),
            Certificate.created_by == admin_id,
            Certificate.is_active.is_(True),
        )
        .order_by(Certificate.created_at)
    )
    return list(result.scalars().all())


def _months_back(now: datetime, months: int) -> datetime:
    month_index = now.year * 12 + (now.month - 1) - months
    return now.replace(year=month_index // 12, month=month_index % 12 + 1, day=1,
                       hour=0, minute=0, second=0, microsecond=0)


async def dashboard_stats(db: AsyncSession, admin_id: uuid.UUID) -> dict:
    filters = (Certificate.created_by == admin_id, Certificate.is_active.is_(True))

    total, downloads = (await db.execute(
        select(func.count(), func.coalesce(func.sum(Certificate.download_count), 0)).where(*filters)
    )).one()

    recent = (await db.execute(
        select(Certificate).where(*filters).order_by(Certificate.created_at.desc()).limit(5)
    )).scalars().all()

    status_rows = (await db.execute(
        select(Certificate.status, func.count()).where(*filters).group_by(Certificate.status)
    )).all()

    since = _months_back(datetime.now(timezone.utc), 6)
    created = (await db.execute(
        select(Certificate.created_at).where(*filters, Certificate.created_at >= since)
    )).scalars().all()
    per_month = Counter((c.year, c.month) for c in created)

    return {
        "total_certificates": total,
        "total_downloads": downloads,
        "recent_certificates": list(recent),
        "status_breakdown": {status.value: count for status, count in status_rows},
        "monthly_trend": [
            {"year": year, "month": month, "count": count}
            for (year, month), count in sorted(per_month.items())
        ],
    }
