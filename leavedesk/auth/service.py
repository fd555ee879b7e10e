"""Auth service — JWT issuing and session lifecycle.

Identity proofing (SSO, passwords) lives with the upstream identity
provider; this module only turns an already-identified employee into a
verifiable, revocable bearer token.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.models import UserSession
from leavedesk.common.exceptions import NotFoundException
from leavedesk.common.constants import UserRole
from leavedesk.config import settings
from leavedesk.employees.models import Employee


# ── JWT helpers ─────────────────────────────────────────────────────

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def create_access_token(employee_id: uuid.UUID, role: UserRole) -> tuple[str, int]:
    """Return (encoded_jwt, expires_in_seconds)."""
    expires_in = settings.JWT_EXPIRY_HOURS * 3600
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_in


# ── Employee lookup ─────────────────────────────────────────────────

async def get_employee_by_email(db: AsyncSession, email: str) -> Employee:
    """Return an active employee by email, or raise 404."""
    result = await db.execute(
        select(Employee).where(
            Employee.email == email.strip().lower(), Employee.is_active.is_(True),
        ),
    )
    employee = result.scalars().first()
    if employee is None:
        raise NotFoundException("Employee", email)
    return employee


# ── Session management ──────────────────────────────────────────────

async def issue_session(
    db: AsyncSession,
    employee: Employee,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[str, int]:
    """Create an access token for *employee* and persist its session."""
    access_token, expires_in = create_access_token(employee.id, employee.role)

    session = UserSession(
        employee_id=employee.id,
        token_hash=hash_token(access_token),
        ip_address=ip,
        user_agent=user_agent,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    )
    db.add(session)
    await db.flush()

    return access_token, expires_in


async def revoke_session(db: AsyncSession, token_hash: str) -> None:
    """Mark a session as revoked by its token hash."""
    result = await db.execute(
        select(UserSession).where(UserSession.token_hash == token_hash),
    )
    session = result.scalars().first()
    if session:
        session.is_revoked = True
        await db.flush()
