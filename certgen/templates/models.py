import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from certgen.database import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class Template(Base):
    """Uploaded certificate background plus its placeholder layout."""

    __tablename__ = "templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    # True pixel dimensions of the asset; authoritative for rendering
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    placeholders: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("admins.id", ondelete="CASCADE"), nullable=False, index=True
    )
    last_modified_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("admins.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    creator = relationship("Admin", foreign_keys=[created_by])

    @property
    def file_url(self) -> str:
        return f"/api/templates/{self.id}/file"

    @property
    def formatted_file_size(self) -> str:
        size = float(self.file_size or 0)
        for unit in ("Bytes", "KB", "MB"):
            if size < 1024:
                return f"{round(size, 2):g} {unit}"
            size /= 1024
        return f"{round(size, 2):g} GB"

    @property
    def dimensions(self) -> dict:
        return {"width": self.width, "height": self.height}

    def has_required_placeholders(self) -> bool:
        types = {p.get("type") for p in self.placeholders or []}
        return {"name", "id"} <= types
