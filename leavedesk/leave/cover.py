"""Cover request orchestrator — the single cover obligation on a leave.

Owns creation, the one-shot response, and the expiry contract. Authority
checks and leave-status changes belong to :mod:`leavedesk.leave.service`.

Expiry is fixed at creation (``created_at + COVER_RESPONSE_WINDOW_HOURS``)
and never recalculated. A request is expired when ``now > expires_at``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.clock import as_utc, resolve_now
from leavedesk.common.constants import CoverRequestStatus
from leavedesk.common.exceptions import InvalidStateException
from leavedesk.config import settings
from leavedesk.leave.models import CoverRequest, LeaveRequest

ACCEPTED_MESSAGE = "Cover request accepted"


def cover_expiry(created_at: datetime) -> datetime:
    return as_utc(created_at) + timedelta(hours=settings.COVER_RESPONSE_WINDOW_HOURS)


def is_expired(cover: CoverRequest, now: Optional[datetime] = None) -> bool:
    return resolve_now(now) > as_utc(cover.expires_at)


async def open_cover_request(
    db: AsyncSession,
    leave: LeaveRequest,
    now: Optional[datetime] = None,
) -> CoverRequest:
    """Create the pending cover request for a freshly created leave."""
    if leave.cover_employee_id is None:
        raise InvalidStateException("A cover request needs a cover employee.")
    created_at = resolve_now(now)
    cover = CoverRequest(
        leave_id=leave.id,
        cover_employee_id=leave.cover_employee_id,
        status=CoverRequestStatus.pending,
        created_at=created_at,
        expires_at=cover_expiry(created_at),
    )
    db.add(cover)
    await db.flush()
    return cover


async def get_cover_request(
    db: AsyncSession,
    leave_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[CoverRequest]:
    query = select(CoverRequest).where(CoverRequest.leave_id == leave_id)
    if for_update:
        query = query.with_for_update()
    return (await db.execute(query)).scalars().first()


def record_cover_response(
    cover: CoverRequest,
    accepted: bool,
    message: Optional[str],
    now: Optional[datetime] = None,
) -> CoverRequest:
    """Apply the single allowed status transition on *cover*."""
    if cover.status != CoverRequestStatus.pending:
        raise InvalidStateException(
            f"Cover request has already been {cover.status.value}."
        )
    cover.status = CoverRequestStatus.accepted if accepted else CoverRequestStatus.declined
    cover.responded_at = resolve_now(now)
    cover.response_message = ACCEPTED_MESSAGE if accepted else message
    return cover


def retarget_pending_cover(cover: CoverRequest, employee_id: uuid.UUID) -> CoverRequest:
    """Point a still-pending request at a new cover employee; expiry is kept."""
    if cover.status != CoverRequestStatus.pending:
        raise InvalidStateException(
            f"Cover request has already been {cover.status.value}."
        )
    cover.cover_employee_id = employee_id
    return cover


def expired_pending_clause(now: datetime):
    return (
        (CoverRequest.status == CoverRequestStatus.pending)
        & (CoverRequest.expires_at < now)
    )


async def has_expired_pending(db: AsyncSession, now: Optional[datetime] = None) -> bool:
    """Cheap existence check used by the lazy reaper path."""
    result = await db.execute(
        select(CoverRequest.id).where(expired_pending_clause(resolve_now(now))).limit(1)
    )
    return result.first() is not None
