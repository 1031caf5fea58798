import re
import uuid
from datetime import datetime
from typing import Literal

from pydantic import AliasGenerator, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from certgen.certificates.models import CertificateStatus

# The web client posts camelCase keys; snake_case is accepted as well
_CAMEL_INPUT = {
    "alias_generator": AliasGenerator(validation_alias=to_camel),
    "populate_by_name": True,
}

_PARTICIPANT_NAME = re.compile(r"^[a-zA-Z\s.'-]+$")

BULK_DELETE_CONFIRMATION = "DELETE ALL CERTIFICATES"


def _clean_tags(v: list[str] | None) -> list[str] | None:
    if v is None:
        return v
    tags = [t.strip() for t in v if t and t.strip()]
    if any(len(t) > 30 for t in tags):
        raise ValueError("Tags must be at most 30 characters")
    return tags


class ContainerDimensions(BaseModel):
    """Size of the editor preview the placeholder positions were captured in."""

    width: float | None = None
    height: float | None = None


class CertificateCreate(BaseModel):
    template_id: uuid.UUID
    participant_name: str
    placeholder_values: dict[str, str | None] = Field(default_factory=dict)
    container_dimensions: ContainerDimensions | None = None
    notes: str | None = Field(default=None, max_length=1000)
    tags: list[str] = Field(default_factory=list)
    issued_date: datetime | None = None
    expiry_date: datetime | None = None

    model_config = _CAMEL_INPUT

    @field_validator("participant_name")
    @classmethod
    def validate_participant_name(cls, v: str) -> str:
        v = v.strip()
        if not 2 <= len(v) <= 100:
            raise ValueError("Participant name must be between 2 and 100 characters")
        if not _PARTICIPANT_NAME.match(v):
            raise ValueError(
                "Participant name can only contain letters, spaces, dots, apostrophes, and hyphens"
            )
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        return _clean_tags(v)


class CertificateUpdate(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)
    tags: list[str] | None = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        return _clean_tags(v)


class BulkDeleteRequest(BaseModel):
    confirm_text: str

    model_config = _CAMEL_INPUT


class BulkDeleteResult(BaseModel):
    deleted_count: int
    files_deleted: int


class BulkDownloadRequest(BaseModel):
    certificate_ids: list[uuid.UUID] = Field(min_length=1)
    format: Literal["pdf", "png"] = "pdf"

    model_config = _CAMEL_INPUT


class GeneratedFileOut(BaseModel):
    filename: str
    size: int
    url: str


class CertificateOut(BaseModel):
    id: uuid.UUID
    certificate_id: str
    formatted_id: str
    participant_name: str
    template_id: uuid.UUID
    template_snapshot: dict
    generated_files: dict[str, GeneratedFileOut] | None
    download_urls: dict[str, str] | None
    status: CertificateStatus
    generation_time_ms: int | None
    download_count: int
    last_downloaded_at: datetime | None
    issued_date: datetime
    expiry_date: datetime | None
    tags: list[str]
    notes: str | None
    is_active: bool
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CertificateListOut(BaseModel):
    items: list[CertificateOut]
    total: int
    page: int
    limit: int
    pages: int


class MonthlyCount(BaseModel):
    year: int
    month: int
    count: int


class DashboardStats(BaseModel):
    total_certificates: int
    total_downloads: int
    recent_certificates: list[CertificateOut]
    status_breakdown: dict[str, int]
    monthly_trend: list[MonthlyCount]
