"""Tests for per-year certificate ID allocation."""

import pytest
from sqlalchemy import select

from certgen.certificates.models import Certificate, CertificateSequence, CertificateStatus
from certgen.certificates.sequence import CERTIFICATE_ID_PATTERN, format_certificate_id, next_certificate_id


@pytest.mark.unit
class TestFormat:
    def test_zero_pads_to_three_digits(self):
        assert format_certificate_id(2025, 1) == "CERT-2025-001"
        assert format_certificate_id(2025, 42) == "CERT-2025-042"

    def test_grows_past_three_digits(self):
        assert format_certificate_id(2025, 1234) == "CERT-2025-1234"
        assert CERTIFICATE_ID_PATTERN.match("CERT-2025-1234")


@pytest.mark.integration
class TestNextCertificateId:
    async def test_sequential_within_a_year(self, db_session):
        first = await next_certificate_id(db_session, 2025)
        second = await next_certificate_id(db_session, 2025)
        await db_session.commit()

        assert (first, second) == ("CERT-2025-001", "CERT-2025-002")

    async def test_years_are_independent(self, db_session):
        assert await next_certificate_id(db_session, 2024) == "CERT-2024-001"
        assert await next_certificate_id(db_session, 2025) == "CERT-2025-001"
        assert await next_certificate_id(db_session, 2024) == "CERT-2024-002"

    async def test_counter_is_persisted(self, db_session, session_factory):
        await next_certificate_id(db_session, 2025)
        await db_session.commit()

        async with session_factory() as other:
            row = (await other.execute(
                select(CertificateSequence).where(CertificateSequence.year == 2025)
            )).scalar_one()
            assert row.last_value == 1
            assert await next_certificate_id(other, 2025) == "CERT-2025-002"

    async def test_seeded_from_existing_certificates(self, db_session, ready_template, admin):
        for certificate_id in ("CERT-2025-003", "CERT-2025-011", "CERT-2024-050", "legacy-id"):
            db_session.add(Certificate(
                certificate_id=certificate_id,
                participant_name="Legacy Person",
                template_id=ready_template.id,
                template_snapshot={},
                status=CertificateStatus.GENERATED,
                created_by=admin.id,
            ))
        await db_session.commit()

        assert await next_certificate_id(db_session, 2025) == "CERT-2025-012"
