"""Bundle generated certificate files into a single ZIP download."""

import asyncio
import io
import logging
import re
import uuid
import zipfile
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from certgen.certificates.models import Certificate
from certgen.rendering.generator import CertificateGenerator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[..., Awaitable[None]]

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\s_-]")


def entry_name(participant_name: str, certificate_id: str, fmt: str) -> str:
    return f"{_UNSAFE_NAME_CHARS.sub('', participant_name)}_{certificate_id}.{fmt}"


def archive_name(fmt: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat().replace(":", "-").replace(".", "-")
    return f"certificates-{fmt}-{stamp}.zip"


@dataclass
class BulkArchive:
    filename: str
    content: bytes
    total: int
    processed: int
    added_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def added(self) -> int:
        return len(self.added_ids)


async def _noop(**_progress) -> None:
    return None


async def build_archive(
    certificates: Sequence[Certificate],
    fmt: str,
    generator: CertificateGenerator,
    on_progress: ProgressCallback = _noop,
) -> BulkArchive:
    """Write the ``fmt`` file of every certificate that has one into a ZIP.

    Certificates without a file on disk are counted as processed but left out.
    Progress goes through ``on_progress`` as keyword arguments: started, one
    processing event per added file, then finalizing.
    """
    total = len(certificates)
    archive = BulkArchive(filename=archive_name(fmt), content=b"", total=total, processed=0)
    await on_progress(
        status="started", total=total, processed=0, added=0,
        message="Starting bulk download preparation...",
    )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for certificate in certificates:
            archive.processed += 1
            info = generator.file_info(certificate.certificate_id, fmt)
            if not info.exists:
                logger.info("No %s file for %s, skipping", fmt, certificate.certificate_id)
                continue
            name = entry_name(certificate.participant_name, certificate.certificate_id, fmt)
            await asyncio.to_thread(zf.write, info.path, name)
            archive.added_ids.append(certificate.id)
            await on_progress(
                status="processing",
                total=total,
                processed=archive.processed,
                added=archive.added,
                currentFile=name,
                message=f"Processing {archive.processed}/{total} certificates...",
                percentage=round(archive.processed / total * 100),
            )

        if archive.added:
            await on_progress(
                status="finalizing",
                total=total,
                processed=archive.processed,
                added=archive.added,
                message="Finalizing ZIP archive...",
                percentage=95,
            )

    archive.content = buffer.getvalue()
    logger.info(
        "Bulk archive %s: %d of %d certificates (%d bytes)",
        archive.filename, archive.added, total, len(archive.content),
    )
    return archive
