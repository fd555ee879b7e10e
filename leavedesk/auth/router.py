"""Auth router — session issuing, logout and current user profile."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user
from leavedesk.auth.schemas import SessionIssueRequest, TokenResponse
from leavedesk.auth.service import (
    get_employee_by_email,
    hash_token,
    issue_session,
    revoke_session,
)
from leavedesk.common.audit import create_audit_entry
from leavedesk.common.rate_limit import limiter
from leavedesk.config import settings
from leavedesk.database import get_db
from leavedesk.employees.models import Employee
from leavedesk.employees.schemas import EmployeeIdentity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["auth"])


def _check_issuer_secret(request: Request) -> None:
    expected = settings.SESSION_ISSUER_SECRET
    header = request.headers.get("Authorization", "")
    supplied = header[7:] if header.startswith("Bearer ") else ""
    if not expected or not secrets.compare_digest(supplied, expected):
        logger.warning(
            "Rejected session issue call from %s",
            request.client.host if request.client else "?",
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# ── POST /session — Exchange a verified email for a session ────────

@router.post("/session", response_model=TokenResponse)
@limiter.limit("10/minute")
async def issue_employee_session(
    request: Request,
    body: SessionIssueRequest,
    db: AsyncSession = Depends(get_db),
):
    """Called by the identity provider once it has verified *email*."""
    _check_issuer_secret(request)

    employee = await get_employee_by_email(db, body.email)

    ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    access_token, expires_in = await issue_session(db, employee, ip, user_agent)

    await create_audit_entry(
        db,
        action="login",
        entity_type="user_session",
        entity_id=employee.id,
        actor_id=employee.id,
        new_values={"ip": ip, "user_agent": user_agent},
    )

    return TokenResponse(
        access_token=access_token,
        expires_in=expires_in,
        user=EmployeeIdentity.model_validate(employee),
    )


# ── POST /logout — Revoke current session ──────────────────────────

@router.post("/logout")
async def logout(
    request: Request,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    token = request.headers.get("Authorization", "").removeprefix("Bearer ")
    await revoke_session(db, hash_token(token))

    await create_audit_entry(
        db,
        action="logout",
        entity_type="user_session",
        entity_id=employee.id,
        actor_id=employee.id,
    )

    return {"message": "Logged out successfully"}


# ── GET /me — Current user profile ─────────────────────────────────

@router.get("/me", response_model=EmployeeIdentity)
async def me(employee: Employee = Depends(get_current_user)):
    return EmployeeIdentity.model_validate(employee)
