"""Availability calculator — who is free to cover a date range.

An employee is unavailable for ``[start, end]`` when either:

  (a) they hold an approved leave overlapping the range, or
  (b) they are the target of a pending, unexpired cover request whose
      leave overlaps the range.

The workload score only ranks candidates; it never excludes anyone.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.clock import resolve_now
from leavedesk.common.constants import (
    COVERING_DUTY_WEIGHT,
    ON_LEAVE_PENALTY,
    CoverRequestStatus,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import ValidationException
from leavedesk.employees.models import Employee
from leavedesk.leave.models import CoverRequest, LeaveRequest
from leavedesk.leave.reaper import reconcile_if_needed
from leavedesk.leave.schemas import AvailableEmployeeOut, AvailableEmployeesOut

logger = logging.getLogger(__name__)


# ── Overlap ─────────────────────────────────────────────────────────

def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive overlap of ``[a_start, a_end]`` with ``[b_start, b_end]``."""
    starts_within = b_start <= a_start <= b_end
    ends_within = b_start <= a_end <= b_end
    spans = a_start <= b_start and a_end >= b_end
    return starts_within or ends_within or spans


def overlaps_clause(start: date, end: date):
    """SQL form of :func:`ranges_overlap` against a leave's own range."""
    return or_(
        LeaveRequest.start_date.between(start, end),
        LeaveRequest.end_date.between(start, end),
        and_(LeaveRequest.start_date <= start, LeaveRequest.end_date >= end),
    )


def _pending_cover_clause(now: datetime):
    # Unexpired means "not now > expires_at"
    return and_(
        CoverRequest.status == CoverRequestStatus.pending,
        CoverRequest.expires_at >= now,
    )


# ── Single-employee check ───────────────────────────────────────────

async def approved_leave_overlap(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start: date,
    end: date,
) -> Optional[str]:
    """Reason *employee_id* is on approved leave during ``[start, end]``, if any."""
    on_leave = await db.execute(
        select(LeaveRequest.start_date, LeaveRequest.end_date)
        .where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == LeaveStatus.approved,
            overlaps_clause(start, end),
        )
        .limit(1)
    )
    row = on_leave.first()
    if row is None:
        return None
    return f"Employee is on approved leave from {row.start_date} to {row.end_date}."


async def find_conflicts(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start: date,
    end: date,
    now: Optional[datetime] = None,
    *,
    exclude_leave_id: Optional[uuid.UUID] = None,
) -> list[str]:
    """Reasons *employee_id* cannot cover ``[start, end]``; empty when free."""
    now = resolve_now(now)
    reasons: list[str] = []

    on_leave = await approved_leave_overlap(db, employee_id, start, end)
    if on_leave is not None:
        reasons.append(on_leave)

    pending_q = (
        select(func.count())
        .select_from(CoverRequest)
        .join(LeaveRequest, CoverRequest.leave_id == LeaveRequest.id)
        .where(
            CoverRequest.cover_employee_id == employee_id,
            _pending_cover_clause(now),
            overlaps_clause(start, end),
        )
    )
    if exclude_leave_id is not None:
        pending_q = pending_q.where(CoverRequest.leave_id != exclude_leave_id)
    pending = (await db.execute(pending_q)).scalar_one()
    if pending:
        reasons.append(
            f"Employee already has {pending} pending cover request(s) for overlapping dates."
        )

    return reasons


# ── Ranked listing ──────────────────────────────────────────────────

def _rank_key(candidate: AvailableEmployeeOut) -> tuple:
    return (
        not candidate.available,
        candidate.workload_score,
        candidate.name.casefold(),
        candidate.name,
    )


async def list_available_employees(
    db: AsyncSession,
    start: date,
    end: date,
    exclude_employee_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> AvailableEmployeesOut:
    """Rank every active employee as a cover candidate for ``[start, end]``."""
    if start > end:
        raise ValidationException({"end_date": ["end_date must be on or after start_date."]})
    now = resolve_now(now)

    # Expired obligations must not keep anyone busy
    await reconcile_if_needed(db, now=now)

    query = select(Employee).where(
        Employee.role == UserRole.employee,
        Employee.is_active.is_(True),
    )
    if exclude_employee_id is not None:
        query = query.where(Employee.id != exclude_employee_id)
    candidates = (await db.execute(query)).scalars().all()

    on_leave_ids = set(
        (
            await db.execute(
                select(LeaveRequest.employee_id)
                .where(
                    LeaveRequest.status == LeaveStatus.approved,
                    overlaps_clause(start, end),
                )
                .distinct()
            )
        ).scalars().all()
    )

    covering_counts: dict[uuid.UUID, int] = dict(
        (
            await db.execute(
                select(LeaveRequest.cover_employee_id, func.count(LeaveRequest.id))
                .where(
                    LeaveRequest.cover_employee_id.is_not(None),
                    LeaveRequest.status == LeaveStatus.approved,
                    overlaps_clause(start, end),
                )
                .group_by(LeaveRequest.cover_employee_id)
            )
        ).all()
    )

    pending_counts: dict[uuid.UUID, int] = dict(
        (
            await db.execute(
                select(CoverRequest.cover_employee_id, func.count(CoverRequest.id))
                .join(LeaveRequest, CoverRequest.leave_id == LeaveRequest.id)
                .where(_pending_cover_clause(now), overlaps_clause(start, end))
                .group_by(CoverRequest.cover_employee_id)
            )
        ).all()
    )

    ranked: list[AvailableEmployeeOut] = []
    for emp in candidates:
        on_leave = emp.id in on_leave_ids
        covering = covering_counts.get(emp.id, 0)
        pending = pending_counts.get(emp.id, 0)
        ranked.append(
            AvailableEmployeeOut(
                id=emp.id,
                employee_code=emp.employee_code,
                name=emp.full_name,
                email=emp.email,
                department=emp.department,
                designation=emp.designation,
                on_leave=on_leave,
                pending_cover_count=pending,
                covering_count=covering,
                workload_score=covering * COVERING_DUTY_WEIGHT + (ON_LEAVE_PENALTY if on_leave else 0),
                available=not on_leave and pending == 0,
            )
        )
    ranked.sort(key=_rank_key)

    available_count = sum(1 for c in ranked if c.available)
    logger.debug(
        "Availability %s..%s: %d candidate(s), %d available",
        start, end, len(ranked), available_count,
    )
    return AvailableEmployeesOut(
        employees=ranked,
        total=len(ranked),
        available_count=available_count,
    )
