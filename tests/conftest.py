"""Pytest configuration and shared fixtures.

This module provides:
- An in-memory SQLite database (aiosqlite) with the full schema per test
- Async session fixtures for service tests
- FastAPI test client for route tests, with storage redirected to tmp_path
- Auth fixtures (a super admin and its bearer header)
- Redis mocking for the token blacklist
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_SECRET_KEY", "test-app-secret-key-that-is-long-enough")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-that-is-long-enough")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from certgen.admins.models import Admin, AdminRole
from certgen.auth.service import create_access_token
from certgen.auth.utils import get_password_hash
from certgen.config import settings
from certgen.database import Base, get_db
from certgen.ratelimit import generate_limiter, login_limiter, upload_limiter
from certgen.rendering.generator import CertificateGenerator, get_generator
from certgen.templates.models import Template

# Import remaining models so Base.metadata knows every table
from certgen.certificates.models import Certificate, CertificateSequence  # noqa: F401

ADMIN_PASSWORD = "Sup3rSecret!"

READY_PLACEHOLDERS = [
    {
        "type": "name", "x": 100, "y": 50, "font_size": 24, "font_family": "Arial",
        "color": "#000000", "font_weight": "normal", "font_style": "normal",
        "text_align": "left", "rotation": 0,
    },
    {
        "type": "id", "x": 400, "y": 300, "font_size": 16, "font_family": "Georgia",
        "color": "#333333", "font_weight": "bold", "font_style": "normal",
        "text_align": "center", "rotation": 0,
    },
]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database per test; one shared connection via StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy drive BEGIN so SAVEPOINTs behave on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def storage_dirs(tmp_path, monkeypatch) -> dict[str, str]:
    """Point uploads and generated files at a per-test directory."""
    upload_dir = tmp_path / "uploads"
    generated_dir = tmp_path / "generated"
    upload_dir.mkdir()
    generated_dir.mkdir()
    monkeypatch.setattr(settings, "upload_dir", str(upload_dir))
    monkeypatch.setattr(settings, "generated_dir", str(generated_dir))
    return {"upload": str(upload_dir), "generated": str(generated_dir)}


@pytest.fixture
def generator(storage_dirs) -> CertificateGenerator:
    return CertificateGenerator(output_dir=storage_dirs["generated"])


@pytest.fixture
def template_png(tmp_path) -> str:
    """A plain 1000x600 PNG background."""
    path = tmp_path / "background.png"
    Image.new("RGB", (1000, 600), "white").save(path, format="PNG")
    return str(path)


# =============================================================================
# Auth / External Service Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis() -> Generator[dict[str, AsyncMock]]:
    """Keep the token blacklist away from a real Redis."""
    with (
        patch("certgen.auth.dependencies.is_token_revoked", new=AsyncMock(return_value=False)) as revoked,
        patch("certgen.auth.router.revoke_token", new=AsyncMock()) as revoke,
    ):
        yield {"is_token_revoked": revoked, "revoke_token": revoke}


@pytest.fixture(autouse=True)
def reset_rate_limiters() -> Generator[None]:
    for limiter in (login_limiter, upload_limiter, generate_limiter):
        limiter.reset()
    yield
    for limiter in (login_limiter, upload_limiter, generate_limiter):
        limiter.reset()


@pytest_asyncio.fixture
async def admin(session_factory) -> Admin:
    async with session_factory() as session:
        user = Admin(
            email="admin@example.com",
            hashed_password=get_password_hash(ADMIN_PASSWORD),
            name="Test Admin",
            role=AdminRole.SUPER_ADMIN,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest.fixture
def auth_headers(admin: Admin) -> dict[str, str]:
    token = create_access_token(subject=str(admin.id), role=admin.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def ready_template(session_factory, admin: Admin, template_png: str) -> Template:
    """An active 1000x600 PNG template with name and id placeholders."""
    async with session_factory() as session:
        template = Template(
            name="Course Completion",
            description="Default layout",
            filename="background.png",
            original_name="background.png",
            file_path=template_png,
            file_size=os.path.getsize(template_png),
            mime_type="image/png",
            width=1000,
            height=600,
            placeholders=[dict(p) for p in READY_PLACEHOLDERS],
            tags=[],
            created_by=admin.id,
            last_modified_by=admin.id,
        )
        session.add(template)
        await session.commit()
        await session.refresh(template)
        return template


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(session_factory, generator: CertificateGenerator) -> AsyncGenerator[FastAPI]:
    from certgen.main import app as fastapi_app

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _get_test_db
    fastapi_app.dependency_overrides[get_generator] = lambda: generator

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def auth_client(app: FastAPI, auth_headers: dict[str, str]) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=auth_headers,
    ) as ac:
        yield ac
