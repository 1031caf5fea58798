import uuid
from datetime import datetime
from typing import Literal

from pydantic import AliasGenerator, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# The editor posts camelCase keys; snake_case is accepted as well
_CAMEL_INPUT = {
    "alias_generator": AliasGenerator(validation_alias=to_camel),
    "populate_by_name": True,
}

_HEX_COLOR = r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$"
_NUMERIC_WEIGHTS = {str(w) for w in range(100, 1000, 100)}

REQUIRED_PLACEHOLDER_TYPES = ("name", "id")


class Placeholder(BaseModel):
    type: Literal["name", "id"]
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    font_size: float = Field(default=24, ge=8, le=200)
    font_family: str = Field(default="Arial", max_length=50)
    color: str = Field(default="#000000", pattern=_HEX_COLOR)
    font_weight: str = "normal"
    font_style: Literal["normal", "italic", "oblique"] = "normal"
    text_align: Literal["left", "center", "right"] = "left"
    # Stored for the editor; renderers do not rotate text
    rotation: float = Field(default=0, ge=-360, le=360)
    width: float | None = Field(default=None, ge=1)
    height: float | None = Field(default=None, ge=1)

    model_config = _CAMEL_INPUT

    @field_validator("font_weight", mode="before")
    @classmethod
    def validate_font_weight(cls, v) -> str:
        value = str(v).strip().lower()
        if value not in ("normal", "bold") and value not in _NUMERIC_WEIGHTS:
            raise ValueError("Font weight must be normal, bold or a multiple of 100 from 100 to 900")
        return value


def missing_placeholder_types(placeholders: list) -> list[str]:
    present = {p.type if isinstance(p, Placeholder) else p.get("type") for p in placeholders}
    return [t for t in REQUIRED_PLACEHOLDER_TYPES if t not in present]


class TemplateDimensions(BaseModel):
    width: int = Field(ge=1)
    height: int = Field(ge=1)


class PlaceholderLayout(BaseModel):
    placeholders: list[Placeholder]
    dimensions: TemplateDimensions | None = None

    @model_validator(mode="after")
    def require_name_and_id(self) -> "PlaceholderLayout":
        if self.placeholders:
            missing = missing_placeholder_types(self.placeholders)
            if missing:
                raise ValueError(
                    "Template must have both name and id placeholders "
                    f"(missing: {', '.join(missing)})"
                )
        return self


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = None
    is_active: bool | None = None

    model_config = _CAMEL_INPUT

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Template name must be at least 2 characters")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        tags = [t.strip() for t in v if t and t.strip()]
        if any(len(t) > 30 for t in tags):
            raise ValueError("Tags must be at most 30 characters")
        return tags


class TemplateOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    filename: str
    original_name: str
    file_size: int
    formatted_file_size: str
    file_url: str
    mime_type: str
    width: int
    height: int
    placeholders: list[dict]
    tags: list[str]
    is_active: bool
    usage_count: int
    created_by: uuid.UUID
    last_modified_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TemplateListOut(BaseModel):
    items: list[TemplateOut]
    total: int
    page: int
    limit: int
    pages: int


class FontChoice(BaseModel):
    family: str
    category: str
