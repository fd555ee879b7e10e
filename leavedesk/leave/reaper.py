"""Expiration reaper — removes leaves whose cover request went unanswered.

One routine, three callers: the hourly scheduler job, the cron HTTP
endpoint, and read paths that call :func:`reconcile_if_needed` before
answering. Every record is re-checked under a row lock inside its own
SAVEPOINT, so concurrent runs and late cover responses cannot both win.
A record that disappeared between selection and processing was handled
by someone else and is not an error.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.audit import AuditTrail, create_audit_entry
from leavedesk.common.clock import resolve_now
from leavedesk.common.constants import LeaveStatus
from leavedesk.leave.cover import expired_pending_clause, has_expired_pending
from leavedesk.leave.models import CoverRequest, LeaveRequest
from leavedesk.leave.schemas import ReconciliationSummary
from leavedesk.notifications.service import NotificationService, leave_expired

logger = logging.getLogger(__name__)


async def _expire_one(db: AsyncSession, leave_id: uuid.UUID, now: datetime) -> bool:
    """Expire a single leave. Returns False if it was already handled."""
    result = await db.execute(
        select(LeaveRequest)
        .join(CoverRequest, CoverRequest.leave_id == LeaveRequest.id)
        .where(
            LeaveRequest.id == leave_id,
            LeaveRequest.status == LeaveStatus.pending_cover,
            expired_pending_clause(now),
        )
        .options(
            selectinload(LeaveRequest.cover_request),
            selectinload(LeaveRequest.cover_employee),
        )
        .with_for_update(of=LeaveRequest)
        .execution_options(populate_existing=True)
    )
    leave = result.scalars().first()
    if leave is None:
        return False

    await NotificationService.dispatch(db, [leave_expired(leave, leave.cover_employee)])
    await create_audit_entry(
        db,
        action="expire",
        entity_type="leave_request",
        entity_id=leave.id,
        old_values={
            "status": leave.status.value,
            "cover_employee_id": str(leave.cover_employee_id),
            "start_date": leave.start_date.isoformat(),
            "end_date": leave.end_date.isoformat(),
        },
        new_values={"deleted": True, "reason": "cover request expired"},
    )

    # cover_request is loaded, so the ORM cascade removes it with the leave
    await db.delete(leave)
    await db.flush()
    return True


async def reconcile_expired_cover_requests(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> ReconciliationSummary:
    """Expire every pending cover request past its deadline.

    Safe to re-run: with nothing expired it is a no-op reporting zero.
    Per-record failures are rolled back to that record's savepoint,
    collected in the summary, and do not stop the batch.
    """
    now = resolve_now(now)
    expired = (
        await db.execute(
            select(CoverRequest.id, CoverRequest.leave_id)
            .where(expired_pending_clause(now))
            .order_by(CoverRequest.expires_at)
        )
    ).all()

    summary = ReconciliationSummary(total_expired=len(expired))
    if not expired:
        return summary

    logger.info("Reaper found %d expired cover request(s)", len(expired))
    for cover_id, leave_id in expired:
        try:
            async with db.begin_nested():
                handled = await _expire_one(db, leave_id, now)
        except Exception as exc:
            logger.exception(
                "Failed to expire cover request %s (leave %s)", cover_id, leave_id,
            )
            summary.errors += 1
            summary.error_details.append(
                f"cover_request={cover_id} leave={leave_id}: {exc}"
            )
            continue

        if handled:
            summary.cleaned += 1
            summary.notifications_sent += 1
        else:
            logger.info("Leave %s already handled by a concurrent run", leave_id)

    logger.info(
        "Reaper finished: found=%d cleaned=%d errors=%d",
        summary.total_expired, summary.cleaned, summary.errors,
    )
    return summary


async def reconcile_if_needed(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> Optional[ReconciliationSummary]:
    """Lazy path: run the reaper only when something has actually expired."""
    now = resolve_now(now)
    if not await has_expired_pending(db, now):
        return None
    return await reconcile_expired_cover_requests(db, now=now)


async def was_expired(db: AsyncSession, leave_id: uuid.UUID) -> bool:
    """True if the reaper already removed *leave_id*."""
    result = await db.execute(
        select(func.count())
        .select_from(AuditTrail)
        .where(
            AuditTrail.entity_type == "leave_request",
            AuditTrail.entity_id == leave_id,
            AuditTrail.action == "expire",
        )
    )
    return result.scalar_one() > 0
