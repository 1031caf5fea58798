"""Certificate ID allocation.

IDs look like ``CERT-2025-001``: the calendar year plus a per-year sequence,
zero-padded to at least three digits. Each year has one row in
``certificate_sequences`` that is bumped with a single
``UPDATE ... RETURNING`` so concurrent requests never receive the same value.
"""

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.certificates.models import Certificate, CertificateSequence

logger = logging.getLogger(__name__)

CERTIFICATE_ID_PATTERN = re.compile(r"^CERT-(\d{4})-(\d{3,})$")


def format_certificate_id(year: int, value: int) -> str:
    return f"CERT-{year}-{value:03d}"


async def _increment(db: AsyncSession, year: int) -> int | None:
    result = await db.execute(
        update(CertificateSequence)
        .where(CertificateSequence.year == year)
        .values(last_value=CertificateSequence.last_value + 1)
        .returning(CertificateSequence.last_value)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none()


async def _highest_issued(db: AsyncSession, year: int) -> int:
    """Largest sequence already used in ``year`` by existing certificates."""
    result = await db.execute(
        select(Certificate.certificate_id).where(Certificate.certificate_id.like(f"CERT-{year}-%"))
    )
    highest = 0
    for certificate_id in result.scalars():
        match = CERTIFICATE_ID_PATTERN.match(certificate_id)
        if match:
            highest = max(highest, int(match.group(2)))
    return highest


async def next_certificate_id(db: AsyncSession, year: int | None = None) -> str:
    """Reserve the next ID for ``year`` (current UTC year by default).

    The reservation becomes durable with the caller's commit. The first ID of
    a year creates the counter row, seeded from certificates issued before
    the counter existed.
    """
    year = year or datetime.now(timezone.utc).year
    value = await _increment(db, year)
    if value is None:
        value = await _highest_issued(db, year) + 1
        try:
            async with db.begin_nested():
                db.add(CertificateSequence(year=year, last_value=value))
        except IntegrityError:
            # Another request created the row first
            value = await _increment(db, year)
        else:
            logger.info("Started certificate sequence for %s at %d", year, value)
    return format_certificate_id(year, value)
