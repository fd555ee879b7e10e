"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (leave, cover, reaper, notifications, API).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test secrets before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SESSION_ISSUER_SECRET", "test-issuer-secret")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.auth.service import issue_session
from leavedesk.common.constants import (
    AdminType,
    CoverRequestStatus,
    LeaveCategory,
    LeaveStatus,
    UserRole,
)
from leavedesk.database import Base, get_db
from leavedesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveRequest, Notification, etc.)
import leavedesk.auth.models  # noqa: F401
import leavedesk.common.audit  # noqa: F401
import leavedesk.employees.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401
import leavedesk.notifications.models  # noqa: F401

from leavedesk.employees.models import Employee
from leavedesk.leave.cover import cover_expiry
from leavedesk.leave.models import CoverRequest, LeaveRequest

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f"),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavedesk.common.rate_limit import limiter
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Clock ───────────────────────────────────────────────────────────

# Fixed reference instant; tests move time by passing now=T0 + delta
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    role: UserRole = UserRole.employee,
    admin_type: Optional[AdminType] = None,
    is_probation: bool = False,
    date_of_confirmation: Optional[date] = None,
    department: str = "Engineering",
    is_active: bool = True,
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"LD-{code}",
        first_name=first_name,
        last_name=last_name,
        display_name=f"{first_name} {last_name}",
        email=email or f"{first_name.lower()}.{code.lower()}@leavedesk.test",
        department=department,
        designation="Associate",
        role=role,
        admin_type=admin_type,
        is_probation=is_probation,
        date_of_confirmation=date_of_confirmation,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def _seed_md(db: AsyncSession, first_name: str = "Maya") -> Employee:
    return await _seed_employee(
        db,
        first_name=first_name,
        last_name="Director",
        role=UserRole.admin,
        admin_type=AdminType.managing_director,
        department="Management",
    )


async def _seed_hr_head(db: AsyncSession, first_name: str = "Hana") -> Employee:
    return await _seed_employee(
        db,
        first_name=first_name,
        last_name="People",
        role=UserRole.admin,
        admin_type=AdminType.hr_head,
        department="Human Resources",
    )


async def _seed_leave(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start: date,
    end: date,
    *,
    status: LeaveStatus = LeaveStatus.approved,
    category: LeaveCategory = LeaveCategory.casual,
    cover_employee_id: Optional[uuid.UUID] = None,
    cover_status: Optional[CoverRequestStatus] = None,
    cover_created_at: datetime = T0,
) -> LeaveRequest:
    """Insert a leave directly, optionally with its cover request."""
    leave = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee_id,
        category=category,
        start_date=start,
        end_date=end,
        total_days=Decimal((end - start).days + 1),
        reason="Seeded leave",
        cover_employee_id=cover_employee_id,
        status=status,
        is_cancelled=status == LeaveStatus.cancelled,
        is_paid=True,
        created_at=cover_created_at,
        updated_at=cover_created_at,
    )
    db.add(leave)
    await db.flush()
    if cover_status is not None:
        db.add(
            CoverRequest(
                id=uuid.uuid4(),
                leave_id=leave.id,
                cover_employee_id=cover_employee_id,
                status=cover_status,
                created_at=cover_created_at,
                expires_at=cover_expiry(cover_created_at),
            )
        )
        await db.flush()
    return leave


@pytest.fixture
async def staff(db) -> dict[str, Employee]:
    """A small office: two employees, a spare, a managing director and an HR head."""
    people = {
        "ann": await _seed_employee(db, first_name="Ann", last_name="Applicant"),
        "bob": await _seed_employee(db, first_name="Bob", last_name="Backup"),
        "cat": await _seed_employee(db, first_name="Cat", last_name="Cover"),
        "md": await _seed_md(db),
        "hr": await _seed_hr_head(db),
    }
    return people


# ── Auth helpers ────────────────────────────────────────────────────

async def auth_headers_for(db: AsyncSession, employee: Employee) -> dict[str, str]:
    """Return Bearer auth headers with a valid session persisted in the DB."""
    token, _ = await issue_session(db, employee)
    await db.commit()
    return {"Authorization": f"Bearer {token}"}


CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}
ISSUER_HEADERS = {"Authorization": "Bearer test-issuer-secret"}


def later(hours: float = 0, days: int = 0) -> datetime:
    return T0 + timedelta(hours=hours, days=days)
