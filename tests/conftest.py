import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

os.environ.setdefault("ADMIN_API_KEY", "test-admin-key-for-unit-tests-0123456789")
os.environ["SENTRY_DSN"] = ""  # Never report from tests

import pytest
import pytest_asyncio
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import bazaar_jobs.models  # noqa: F401  registers every table on Base.metadata
from bazaar_jobs.database import Base
from bazaar_jobs.models.enums import CollaboratorRole
from bazaar_jobs.models.project import Collaborator, Project
from bazaar_jobs.models.user import User

ADMIN_KEY = os.environ["ADMIN_API_KEY"]


def utc_ago(**kwargs) -> datetime:
    return datetime.now(timezone.utc) - timedelta(**kwargs)


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed SQLite so every session gets its own connection
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def logger():
    return structlog.get_logger()


def make_user(**kwargs) -> User:
    user_id = kwargs.pop("id", None) or uuid.uuid4()
    defaults = {
        "email": f"user-{user_id.hex[:8]}@example.com",
        "name": "Test User",
        "karma": 0,
    }
    defaults.update(kwargs)
    return User(id=user_id, **defaults)


def make_project(**kwargs) -> Project:
    defaults = {"title": "Project", "upvote_count": 0, "is_featured": False}
    defaults.update(kwargs)
    return Project(id=uuid.uuid4(), **defaults)


def collaborate(user: User, project: Project, role: CollaboratorRole) -> Collaborator:
    return Collaborator(id=uuid.uuid4(), user_id=user.id, project_id=project.id, role=role)
