import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.admins.models import Admin, AdminRole
from certgen.admins.schemas import AdminCreate
from certgen.auth.utils import get_password_hash
from certgen.config import settings

logger = logging.getLogger(__name__)


async def count_admins(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(Admin))
    return result.scalar_one()


async def create_admin(db: AsyncSession, data: AdminCreate, role: AdminRole | None = None) -> Admin:
    """Create an admin. The very first account becomes the super admin."""
    if role is None:
        role = AdminRole.SUPER_ADMIN if await count_admins(db) == 0 else AdminRole.ADMIN
    admin = Admin(
        email=data.email.lower(),
        hashed_password=get_password_hash(data.password),
        name=data.name,
        role=role,
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    logger.info("Admin created: id=%s role=%s", admin.id, admin.role.value)
    return admin


async def get_admin_by_email(db: AsyncSession, email: str) -> Admin | None:
    result = await db.execute(select(Admin).where(Admin.email == email.lower()))
    return result.scalar_one_or_none()


async def get_admin_by_id(db: AsyncSession, admin_id: uuid.UUID) -> Admin | None:
    result = await db.execute(select(Admin).where(Admin.id == admin_id))
    return result.scalar_one_or_none()


async def update_profile(db: AsyncSession, admin: Admin, name: str) -> Admin:
    admin.name = name
    await db.commit()
    await db.refresh(admin)
    return admin


async def register_failed_login(db: AsyncSession, admin: Admin) -> None:
    """Count a failed password and lock the account once the limit is reached."""
    admin.failed_login_attempts += 1
    if admin.failed_login_attempts >= settings.max_failed_logins:
        admin.locked_until = datetime.now(timezone.utc) + timedelta(minutes=settings.lockout_minutes)
        admin.failed_login_attempts = 0
        logger.warning("Admin locked after repeated failed logins: id=%s", admin.id)
    await db.commit()


async def register_successful_login(db: AsyncSession, admin: Admin) -> None:
    admin.failed_login_attempts = 0
    admin.locked_until = None
    admin.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(admin)
