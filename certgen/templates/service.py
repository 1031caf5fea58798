import logging
import math
import uuid

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.templates.models import Template
from certgen.templates.schemas import PlaceholderLayout, TemplateUpdate

logger = logging.getLogger(__name__)


class TemplateNotFoundError(Exception):
    pass


class DuplicateTemplateNameError(ValueError):
    def __init__(self, name: str):
        super().__init__(f"A template named '{name}' already exists")


async def name_taken(
    db: AsyncSession, admin_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None
) -> bool:
    """Names are unique per admin among active templates."""
    query = select(Template.id).where(
        Template.created_by == admin_id,
        Template.is_active.is_(True),
        Template.name == name,
    )
    if exclude_id is not None:
        query = query.where(Template.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def create_template(
    db: AsyncSession,
    admin_id: uuid.UUID,
    *,
    name: str,
    description: str | None,
    filename: str,
    original_name: str,
    file_path: str,
    file_size: int,
    mime_type: str,
    width: int,
    height: int,
) -> Template:
    if await name_taken(db, admin_id, name):
        raise DuplicateTemplateNameError(name)
    template = Template(
        name=name,
        description=description,
        filename=filename,
        original_name=original_name,
        file_path=file_path,
        file_size=file_size,
        mime_type=mime_type,
        width=width,
        height=height,
        placeholders=[],
        tags=[],
        created_by=admin_id,
        last_modified_by=admin_id,
    )
    db.add(template)
    await db.commit()
    await db.refresh(template)
    logger.info("Template uploaded: id=%s %sx%s %s", template.id, width, height, mime_type)
    return template


async def get_template(
    db: AsyncSession, template_id: uuid.UUID, admin_id: uuid.UUID, active_only: bool = False
) -> Template:
    query = select(Template).where(Template.id == template_id, Template.created_by == admin_id)
    if active_only:
        query = query.where(Template.is_active.is_(True))
    result = await db.execute(query)
    template = result.scalar_one_or_none()
    if template is None:
        raise TemplateNotFoundError("Template not found or access denied")
    return template


async def list_templates(
    db: AsyncSession,
    admin_id: uuid.UUID,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    status: str | None = None,
) -> tuple[list[Template], int, int]:
    """Return (templates, total, pages), newest first."""
    filters = [Template.created_by == admin_id]
    if status == "active":
        filters.append(Template.is_active.is_(True))
    elif status == "inactive":
        filters.append(Template.is_active.is_(False))
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Template.name.ilike(pattern), Template.description.ilike(pattern)))

    total = (await db.execute(select(func.count()).select_from(Template).where(*filters))).scalar_one()
    result = await db.execute(
        select(Template)
        .where(*filters)
        .order_by(Template.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total, math.ceil(total / limit) if limit else 0


async def save_placeholders(
    db: AsyncSession, template: Template, layout: PlaceholderLayout, admin_id: uuid.UUID
) -> Template:
    template.placeholders = [p.model_dump() for p in layout.placeholders]
    if layout.dimensions is not None:
        template.width = layout.dimensions.width
        template.height = layout.dimensions.height
    template.last_modified_by = admin_id
    await db.commit()
    await db.refresh(template)
    logger.info("Saved %d placeholders on template %s", len(template.placeholders), template.id)
    return template


async def update_template(
    db: AsyncSession, template: Template, data: TemplateUpdate, admin_id: uuid.UUID
) -> Template:
    update_data = data.model_dump(exclude_unset=True)
    new_name = update_data.get("name")
    if new_name and new_name != template.name and await name_taken(db, admin_id, new_name, template.id):
        raise DuplicateTemplateNameError(new_name)
    # Reactivating must not produce two active templates with the same name
    if update_data.get("is_active") and not template.is_active:
        if await name_taken(db, admin_id, new_name or template.name, template.id):
            raise DuplicateTemplateNameError(new_name or template.name)
    for field, value in update_data.items():
        if value is not None:
            setattr(template, field, value)
    template.last_modified_by = admin_id
    await db.commit()
    await db.refresh(template)
    return template


async def deactivate_template(db: AsyncSession, template: Template, admin_id: uuid.UUID) -> None:
    template.is_active = False
    template.last_modified_by = admin_id
    await db.commit()
    logger.info("Template deactivated: id=%s", template.id)


async def increment_usage(db: AsyncSession, template_id: uuid.UUID) -> None:
    await db.execute(
        update(Template)
        .where(Template.id == template_id)
        .values(usage_count=Template.usage_count + 1)
    )
