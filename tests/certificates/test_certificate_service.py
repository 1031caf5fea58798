"""Service-level tests for certificate generation and lifecycle."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select

from certgen.certificates.models import Certificate, CertificateStatus
from certgen.certificates.schemas import CertificateCreate
from certgen.certificates.service import (
    InvalidConfirmationError,
    TemplateNotReadyError,
    archive_certificate,
    bulk_delete,
    dashboard_stats,
    generate_certificate,
    list_certificates,
    placeholder_values,
)
from certgen.rendering.errors import RenderError
from certgen.templates.models import Template
from certgen.templates.service import TemplateNotFoundError


def _request(template, **overrides) -> CertificateCreate:
    data = {
        "templateId": str(template.id),
        "participantName": "Jane Doe",
        "containerDimensions": {"width": 800, "height": 480},
    }
    data.update(overrides)
    return CertificateCreate.model_validate(data)


@pytest.mark.unit
class TestPlaceholderValues:
    def test_defaults_to_participant_and_certificate_id(self, ready_template):
        values = placeholder_values(_request(ready_template), "CERT-2025-001")
        assert values == {"name": "Jane Doe", "id": "CERT-2025-001"}

    def test_explicit_values_win(self, ready_template):
        data = _request(ready_template, placeholderValues={"name": "  Dr. Jane Doe ", "id": ""})
        values = placeholder_values(data, "CERT-2025-001")
        assert values == {"name": "Dr. Jane Doe", "id": ""}


@pytest.mark.integration
class TestGenerateCertificate:
    async def test_generates_both_files(self, db_session, admin, ready_template, generator):
        certificate = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        year = datetime.now(timezone.utc).year
        assert certificate.certificate_id == f"CERT-{year}-001"
        assert certificate.status == CertificateStatus.GENERATED
        assert set(certificate.generated_files) == {"pdf", "png"}
        assert all(f["size"] > 0 for f in certificate.generated_files.values())
        assert certificate.template_snapshot["dimensions"] == {"width": 1000, "height": 600}
        assert certificate.generation_time_ms is not None

    async def test_ids_increase(self, db_session, admin, ready_template, generator):
        first = await generate_certificate(db_session, admin.id, _request(ready_template), generator)
        second = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        year = datetime.now(timezone.utc).year
        assert (first.certificate_id, second.certificate_id) == (f"CERT-{year}-001", f"CERT-{year}-002")

    async def test_usage_count_increments(self, db_session, admin, ready_template, generator):
        await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        usage = (await db_session.execute(
            select(Template.usage_count).where(Template.id == ready_template.id)
        )).scalar_one()
        assert usage == 1

    async def test_render_failure_marks_record_failed(self, db_session, admin, ready_template, generator):
        with patch.object(generator, "generate", side_effect=RenderError("decode failed")):
            certificate = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        assert certificate.status == CertificateStatus.FAILED
        assert certificate.generated_files is None
        assert certificate.download_urls is None

    async def test_unexpected_renderer_error_marks_record_failed(self, db_session, admin, ready_template, generator):
        with patch("certgen.rendering.generator.render_png", side_effect=RuntimeError("font cache corrupted")):
            certificate = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        assert certificate.status == CertificateStatus.FAILED
        assert certificate.generated_files is None
        assert not generator.file_info(certificate.certificate_id, "png").exists

    async def test_oversized_template_marks_record_failed(self, db_session, admin, ready_template, generator):
        with patch("PIL.Image.MAX_IMAGE_PIXELS", 1000):
            certificate = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        statuses = (await db_session.execute(select(Certificate.status))).scalars().all()
        assert statuses == [CertificateStatus.FAILED]
        assert certificate.generated_files is None

    async def test_template_without_placeholders_is_rejected(self, db_session, admin, ready_template, generator):
        template = await db_session.get(Template, ready_template.id)
        template.placeholders = [p for p in template.placeholders if p["type"] == "name"]
        await db_session.commit()

        with pytest.raises(TemplateNotReadyError):
            await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        count = (await db_session.execute(select(Certificate.id))).all()
        assert count == []

    async def test_inactive_template_is_not_found(self, db_session, admin, ready_template, generator):
        template = await db_session.get(Template, ready_template.id)
        template.is_active = False
        await db_session.commit()

        with pytest.raises(TemplateNotFoundError):
            await generate_certificate(db_session, admin.id, _request(ready_template), generator)


@pytest.mark.integration
class TestLifecycle:
    async def test_archive_hides_from_listing_but_keeps_row(self, db_session, admin, ready_template, generator):
        certificate = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        await archive_certificate(db_session, certificate)

        items, total, _ = await list_certificates(db_session, admin.id)
        assert (items, total) == ([], 0)
        stored = await db_session.get(Certificate, certificate.id)
        assert stored.status == CertificateStatus.ARCHIVED
        assert stored.is_active is False

    async def test_bulk_delete_requires_exact_phrase(self, db_session, admin, ready_template, generator):
        await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        with pytest.raises(InvalidConfirmationError):
            await bulk_delete(db_session, admin.id, "delete all certificates", generator)

        _, total, _ = await list_certificates(db_session, admin.id)
        assert total == 1

    async def test_bulk_delete_removes_rows_and_files(self, db_session, admin, ready_template, generator):
        certificate = await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        deleted, files = await bulk_delete(db_session, admin.id, "DELETE ALL CERTIFICATES", generator)

        assert (deleted, files) == (1, 2)
        assert not generator.file_info(certificate.certificate_id, "pdf").exists
        assert (await db_session.execute(select(Certificate.id))).all() == []

    async def test_search_and_status_filters(self, db_session, admin, ready_template, generator):
        await generate_certificate(db_session, admin.id, _request(ready_template), generator)
        await generate_certificate(
            db_session, admin.id, _request(ready_template, participantName="John Roe"), generator
        )

        items, total, pages = await list_certificates(db_session, admin.id, search="roe")
        assert total == 1 and pages == 1
        assert items[0].participant_name == "John Roe"

        _, failed_total, _ = await list_certificates(db_session, admin.id, status=CertificateStatus.FAILED)
        assert failed_total == 0

    async def test_dashboard_stats(self, db_session, admin, ready_template, generator):
        await generate_certificate(db_session, admin.id, _request(ready_template), generator)

        stats = await dashboard_stats(db_session, admin.id)

        assert stats["total_certificates"] == 1
        assert stats["total_downloads"] == 0
        assert stats["status_breakdown"] == {"generated": 1}
        assert len(stats["recent_certificates"]) == 1
        assert sum(m["count"] for m in stats["monthly_trend"]) == 1
