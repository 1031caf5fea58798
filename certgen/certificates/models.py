import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from certgen.database import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class CertificateStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATED = "generated"
    FAILED = "failed"
    ARCHIVED = "archived"


class CertificateSequence(Base):
    """Per-year counter behind the ``CERT-<year>-<seq>`` identifiers."""

    __tablename__ = "certificate_sequences"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Certificate(Base):
    __tablename__ = "certificates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    certificate_id: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    participant_name: Mapped[str] = mapped_column(String(100), nullable=False)
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("templates.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    # Copy of the template at generation time: name, filename, mime_type,
    # placeholders and dimensions
    template_snapshot: Mapped[dict] = mapped_column(JSONType, nullable=False)
    # {"pdf": {filename, path, size, url}, "png": {...}} once generated
    generated_files: Mapped[dict | None] = mapped_column(JSONType)
    status: Mapped[CertificateStatus] = mapped_column(
        Enum(CertificateStatus), nullable=False, default=CertificateStatus.PENDING, index=True
    )
    generation_time_ms: Mapped[int | None] = mapped_column(Integer)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(500))
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_downloaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    issued_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("admins.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    template = relationship("Template", foreign_keys=[template_id])

    @property
    def formatted_id(self) -> str:
        return self.certificate_id.upper()

    @property
    def download_urls(self) -> dict[str, str] | None:
        if not self.generated_files:
            return None
        return {
            fmt: f"/api/certificates/{self.id}/download/{fmt}"
            for fmt in self.generated_files
        }
