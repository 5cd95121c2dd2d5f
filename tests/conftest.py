import os

# Настройки должны быть выставлены до импорта приложения
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("VALIDATE_CONFIG_ON_IMPORT", "false")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from edu_admin.core.database import Base, get_session
from edu_admin.core.permissions import Actor
from edu_admin.core.security import jwt_manager
from edu_admin.main import app
from edu_admin.students.models.students import Student, StudentStatus


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_student(session_factory):
    """Вставка записи ученика; по умолчанию активный, без договора"""

    async def _make(**fields) -> Student:
        values = {
            "status": StudentStatus.ACTIVE,
            "freeze_days": 30,
            "standard_months": 9,
            "study_start_date": date.today() - timedelta(days=30),
            "study_end_date": date.today() + timedelta(days=240),
        }
        values.update(fields)
        if values["status"] == StudentStatus.FROZEN and "freeze_end_date" not in values:
            values["freeze_end_date"] = date.today() + timedelta(days=7)

        async with session_factory() as session:
            student = Student(**values)
            session.add(student)
            await session.commit()
            return student

    return _make


@pytest.fixture
def actor_for():
    def _actor(role: str, actor_id: str = "staff-1") -> Actor:
        return Actor.from_role(actor_id, role)

    return _actor


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(role: str, user_id: str = "staff-1") -> dict:
        token = jwt_manager.create_access_token(user_id, role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {os.environ['CRON_SECRET']}"}
