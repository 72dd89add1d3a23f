import os

os.environ.setdefault("ABG_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ABG_AUTH_MODE", "dev")
os.environ.setdefault("ABG_ENABLE_SCHEDULER", "false")
os.environ.setdefault("ABG_ADMIN_EMAILS", "")

import itertools
from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.datetime_utils import utc_now_naive
from app.core.roles import Role
from app.db.base import Base
from app.models.cycle import RecCycle
from app.schemas.user import UserContext


@pytest.fixture()
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture()
async def client(session_factory):
    from app.main import app

    # ASGITransport does not run startup handlers.
    app.state.session_factory = session_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.session_factory = None


def make_user(email: str = "applicant@umich.edu", *roles: Role, name: str | None = None) -> UserContext:
    return UserContext(user_id=email, email=email, roles=list(roles) or [Role.USER], full_name=name or email.split("@")[0])


def admin_user(email: str = "admin@umich.edu") -> UserContext:
    return make_user(email, Role.ADMIN, name="Admin")


def dev_headers(email: str = "applicant@umich.edu", roles: str = "USER") -> dict[str, str]:
    return {"X-User-Email": email, "X-User-Roles": roles}


_cycle_numbers = itertools.count(1)


async def make_cycle(session: AsyncSession, **overrides) -> RecCycle:
    now = utc_now_naive()
    values = dict(
        slug=f"cycle-{next(_cycle_numbers)}",
        name="Fall Recruitment",
        is_active=True,
        portal_open_at=now - timedelta(days=1),
        portal_close_at=now + timedelta(days=30),
        application_due_at=now + timedelta(days=14),
        settings_json=None,
    )
    values.update(overrides)
    cycle = RecCycle(**values)
    session.add(cycle)
    await session.commit()
    return cycle
