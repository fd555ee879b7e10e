"""Cover-duty reassignment — HR hands a broken cover duty to someone else.

Reassignments are opened by :meth:`LeaveService.decide_leave` when an
approved leave takes a cover employee away from duties they accepted.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.audit import create_audit_entry
from leavedesk.common.clock import resolve_now
from leavedesk.common.constants import (
    OPEN_COVER_STATUSES,
    AdminType,
    CoverRequestStatus,
    ReassignmentStatus,
)
from leavedesk.common.exceptions import (
    ConflictError,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leavedesk.leave import cover as cover_requests
from leavedesk.leave.availability import find_conflicts
from leavedesk.leave.models import CoverDutyReassignment, LeaveRequest
from leavedesk.leave.schemas import LeaveRequestOut, LeaveRequestUpdate, ReassignmentOut
from leavedesk.leave.service import LeaveService, apply_patch
from leavedesk.notifications.service import (
    NotificationService,
    admins_of_type,
    cover_reassigned,
)

logger = logging.getLogger(__name__)


async def assign_new_cover(
    db: AsyncSession,
    reassignment_id: uuid.UUID,
    new_cover_employee_id: uuid.UUID,
    hr_approver_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> LeaveRequestOut:
    """Point the affected leave at a new cover employee.

    A cover request that is still pending is retargeted and keeps its
    original expiry; an accepted one stays accepted.
    """
    now = resolve_now(now)
    hr_head = await LeaveService._require_admin(
        db, hr_approver_id, AdminType.hr_head, "reassign cover duties",
    )

    reassignment = (
        await db.execute(
            select(CoverDutyReassignment)
            .where(CoverDutyReassignment.id == reassignment_id)
            .with_for_update()
        )
    ).scalars().first()
    if reassignment is None:
        raise NotFoundException("CoverDutyReassignment", str(reassignment_id))
    if reassignment.status != ReassignmentStatus.pending:
        raise InvalidStateException(
            f"Reassignment is already {reassignment.status.value}."
        )

    leave = await LeaveService.load_leave(db, reassignment.original_leave_id, for_update=True)
    if leave.status not in OPEN_COVER_STATUSES:
        raise InvalidStateException(
            f"Leave request is {leave.status.value}; its cover can no longer be reassigned."
        )

    new_cover = await LeaveService._get_employee(db, new_cover_employee_id)
    if new_cover is None or not new_cover.is_active:
        raise NotFoundException("Employee", str(new_cover_employee_id))
    if new_cover.id == leave.employee_id:
        raise ValidationException(
            {"new_cover_employee_id": ["An employee cannot cover their own leave."]}
        )

    reasons = await find_conflicts(
        db, new_cover.id, leave.start_date, leave.end_date, now,
        exclude_leave_id=leave.id,
    )
    if reasons:
        raise ConflictError(
            f"{new_cover.full_name} is not available for the leave period.",
            {"new_cover_employee_id": reasons},
        )

    previous_cover_id = leave.cover_employee_id
    patch = LeaveRequestUpdate(cover_employee_id=new_cover.id, updated_at=now)
    old = apply_patch(leave, patch)

    cover = leave.cover_request
    if cover is not None and cover.status == CoverRequestStatus.pending:
        cover_requests.retarget_pending_cover(cover, new_cover.id)

    reassignment.new_cover_employee_id = new_cover.id
    reassignment.reassigned_by = hr_head.id
    reassignment.status = ReassignmentStatus.reassigned
    reassignment.updated_at = now
    await db.flush()

    await create_audit_entry(
        db,
        action="reassign_cover",
        entity_type="leave_request",
        entity_id=leave.id,
        actor_id=hr_head.id,
        old_values=old,
        new_values={
            "cover_employee_id": str(new_cover.id),
            "reassignment_id": str(reassignment.id),
        },
    )

    requester = leave.employee
    recipients = [new_cover.id, requester.id]
    recipients += [md.id for md in await admins_of_type(db, AdminType.managing_director)]
    await NotificationService.dispatch(
        db,
        [cover_reassigned(leave, r, hr_head, new_cover, requester) for r in recipients],
    )

    logger.info(
        "Cover for leave %s reassigned from %s to %s by %s",
        leave.id, previous_cover_id, new_cover.id, hr_head.id,
    )
    return await LeaveService.get_leave_out(db, leave.id)


async def list_pending_reassignments(
    db: AsyncSession,
    hr_approver_id: uuid.UUID,
) -> list[ReassignmentOut]:
    await LeaveService._require_admin(
        db, hr_approver_id, AdminType.hr_head, "view cover reassignments",
    )
    result = await db.execute(
        select(CoverDutyReassignment)
        .join(LeaveRequest, CoverDutyReassignment.original_leave_id == LeaveRequest.id)
        .where(
            CoverDutyReassignment.status == ReassignmentStatus.pending,
            LeaveRequest.status.in_(OPEN_COVER_STATUSES),
        )
        .options(
            selectinload(CoverDutyReassignment.original_leave).options(*LeaveService._LEAVE_LOAD),
        )
        .order_by(CoverDutyReassignment.created_at)
    )
    out: list[ReassignmentOut] = []
    for reassignment in result.scalars().all():
        leave = reassignment.original_leave
        item = ReassignmentOut(
            id=reassignment.id,
            original_leave_id=reassignment.original_leave_id,
            cover_employee_leave_id=reassignment.cover_employee_leave_id,
            original_cover_employee_id=reassignment.original_cover_employee_id,
            new_cover_employee_id=reassignment.new_cover_employee_id,
            reassigned_by=reassignment.reassigned_by,
            status=reassignment.status,
            created_at=reassignment.created_at,
            updated_at=reassignment.updated_at,
            original_leave=LeaveService.build_response(leave) if leave is not None else None,
        )
        out.append(item)
    return out
