"""Startup script: create tables, storage directories and the seed admin."""

import asyncio
import logging
import os
import secrets

from sqlalchemy import func, select

from certgen.admins.models import Admin, AdminRole
from certgen.auth.utils import get_password_hash
from certgen.config import settings
from certgen.database import Base, async_session, engine

# Import all models so Base.metadata knows about them
from certgen.certificates.models import Certificate, CertificateSequence  # noqa: F401
from certgen.templates.models import Template  # noqa: F401

logger = logging.getLogger(__name__)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified.")


def ensure_storage_dirs():
    for path in (settings.template_upload_dir, settings.generated_dir):
        os.makedirs(path, exist_ok=True)
    logger.info(
        "Storage ready: uploads=%s generated=%s", settings.template_upload_dir, settings.generated_dir
    )


async def seed_admin():
    if not settings.admin_seed_email:
        return

    async with async_session() as db:
        existing = (await db.execute(select(func.count()).select_from(Admin))).scalar_one()
        if existing:
            logger.info("Admins already exist, skipping seed.")
            return

        password = settings.admin_seed_password
        if not password:
            password = secrets.token_urlsafe(20)
            logger.warning(
                "ADMIN_SEED_PASSWORD is not set. A random password was generated; "
                "set ADMIN_SEED_PASSWORD in .env to control the admin password."
            )

        email = settings.admin_seed_email.lower()
        db.add(Admin(
            email=email,
            hashed_password=get_password_hash(password),
            name="Super Admin",
            role=AdminRole.SUPER_ADMIN,
        ))
        await db.commit()
        # Never log the actual password
        logger.info("Seeded super admin: %s", email)


async def startup():
    await init_db()
    ensure_storage_dirs()
    await seed_admin()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(startup())
