"""Cover-duty reassignment tests — trigger on approval, HR hand-off, guards.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import (
    CoverRequestStatus,
    LeaveCategory,
    LeaveStatus,
    NotificationType,
    ReassignmentStatus,
)
from leavedesk.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leavedesk.leave.models import CoverDutyReassignment, CoverRequest
from leavedesk.leave.reassignment import assign_new_cover, list_pending_reassignments
from leavedesk.leave.schemas import LeaveRequestCreate
from leavedesk.leave.service import LeaveService
from leavedesk.notifications.models import Notification
from tests.conftest import T0, _seed_employee, _seed_leave, later


def _request(cover_id: uuid.UUID, start: date, end: date) -> LeaveRequestCreate:
    return LeaveRequestCreate(
        category=LeaveCategory.casual,
        start_date=start,
        end_date=end,
        reason="Personal",
        cover_employee_id=cover_id,
    )


async def _reassignments(db: AsyncSession) -> list[CoverDutyReassignment]:
    result = await db.execute(
        select(CoverDutyReassignment).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _broken_cover_duty(db: AsyncSession, staff):
    """Scenario D setup: Cat accepted Ann's cover, then Cat's own leave is approved.

    Returns (ann's leave, cat's leave).
    """
    ann, bob, cat, md = staff["ann"], staff["bob"], staff["cat"], staff["md"]

    cats = await LeaveService.apply_leave(
        db, cat.id, _request(bob.id, date(2026, 3, 11), date(2026, 3, 11)), now=T0,
    )
    anns = await LeaveService.apply_leave(
        db, ann.id, _request(cat.id, date(2026, 3, 10), date(2026, 3, 12)), now=T0,
    )
    await LeaveService.respond_to_cover(db, anns.id, cat.id, True, now=later(1))
    await LeaveService.respond_to_cover(db, cats.id, bob.id, True, now=later(1))
    await LeaveService.decide_leave(db, cats.id, md.id, True, now=later(2))
    return anns, cats


async def _unanswered_cover_duty(db: AsyncSession, staff):
    """Cat's own leave is approved while Ann's request to Cat is still unanswered.

    Returns (ann's leave, cat's leave).
    """
    ann, bob, cat, md = staff["ann"], staff["bob"], staff["cat"], staff["md"]

    anns = await LeaveService.apply_leave(
        db, ann.id, _request(cat.id, date(2026, 3, 10), date(2026, 3, 12)), now=T0,
    )
    cats = await LeaveService.apply_leave(
        db, cat.id, _request(bob.id, date(2026, 3, 11), date(2026, 3, 11)), now=T0,
    )
    await LeaveService.respond_to_cover(db, cats.id, bob.id, True, now=later(1))
    await LeaveService.decide_leave(db, cats.id, md.id, True, now=later(2))
    return anns, cats


@pytest.fixture
async def dan(db):
    return await _seed_employee(db, first_name="Dan", last_name="Deputy")


class TestReassignmentTrigger:

    async def test_approval_opens_reassignment(self, db: AsyncSession, staff):
        anns, cats = await _broken_cover_duty(db, staff)

        rows = await _reassignments(db)

        assert len(rows) == 1
        assert rows[0].original_leave_id == anns.id
        assert rows[0].cover_employee_leave_id == cats.id
        assert rows[0].original_cover_employee_id == staff["cat"].id
        assert rows[0].status == ReassignmentStatus.pending

    async def test_hr_head_notified(self, db: AsyncSession, staff):
        await _broken_cover_duty(db, staff)

        notes = (
            await db.execute(
                select(Notification).where(Notification.recipient_id == staff["hr"].id)
            )
        ).scalars().all()
        assert [n.title for n in notes] == ["Cover Reassignment Needed"]
        assert notes[0].entity_type == "cover_duty_reassignment"
        assert notes[0].entity_id == (await _reassignments(db))[0].id

    async def test_unanswered_duty_flagged(self, db: AsyncSession, staff):
        anns, cats = await _unanswered_cover_duty(db, staff)

        rows = await _reassignments(db)

        assert [r.original_leave_id for r in rows] == [anns.id]
        assert rows[0].cover_employee_leave_id == cats.id

    async def test_cover_on_approved_leave_cannot_accept(self, db: AsyncSession, staff):
        anns, _ = await _unanswered_cover_duty(db, staff)

        with pytest.raises(ConflictError) as exc_info:
            await LeaveService.respond_to_cover(
                db, anns.id, staff["cat"].id, True, now=later(3),
            )

        assert "cover_employee_id" in exc_info.value.errors
        leave = await LeaveService.get_leave_out(db, anns.id)
        assert leave.status == LeaveStatus.pending_cover
        assert leave.cover_request.status == CoverRequestStatus.pending

    async def test_cover_on_approved_leave_can_still_decline(self, db: AsyncSession, staff):
        anns, _ = await _unanswered_cover_duty(db, staff)

        result = await LeaveService.respond_to_cover(
            db, anns.id, staff["cat"].id, False, "On leave myself", now=later(3),
        )

        assert result.status == LeaveStatus.declined

    async def test_non_overlapping_duty_not_flagged(self, db: AsyncSession, staff):
        ann, bob, cat, md = staff["ann"], staff["bob"], staff["cat"], staff["md"]
        await _seed_leave(
            db, ann.id, date(2026, 3, 20), date(2026, 3, 21),
            status=LeaveStatus.approved,
            cover_employee_id=cat.id,
            cover_status=CoverRequestStatus.accepted,
        )
        cats = await LeaveService.apply_leave(
            db, cat.id, _request(bob.id, date(2026, 3, 11), date(2026, 3, 11)), now=T0,
        )
        await LeaveService.respond_to_cover(db, cats.id, bob.id, True, now=later(1))
        await LeaveService.decide_leave(db, cats.id, md.id, True, now=later(2))

        assert await _reassignments(db) == []


class TestAssignNewCover:

    async def test_hand_off_to_new_cover(self, db: AsyncSession, staff, dan):
        """Scenario D: HR moves Ann's cover from Cat to Dan."""
        anns, _ = await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]

        out = await assign_new_cover(
            db, reassignment.id, dan.id, staff["hr"].id, now=later(3),
        )

        assert out.cover_employee_id == dan.id
        assert out.status == LeaveStatus.pending_admin
        row = (await _reassignments(db))[0]
        assert row.status == ReassignmentStatus.reassigned
        assert row.new_cover_employee_id == dan.id
        assert row.reassigned_by == staff["hr"].id

    async def test_hand_off_notifies_everyone(self, db: AsyncSession, staff, dan):
        await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]

        await assign_new_cover(db, reassignment.id, dan.id, staff["hr"].id, now=later(3))

        result = await db.execute(
            select(Notification.recipient_id).where(
                Notification.type == NotificationType.cover_reassigned,
            )
        )
        recipients = set(result.scalars().all())
        assert recipients == {dan.id, staff["ann"].id, staff["md"].id}

    async def test_pending_cover_request_retargeted(self, db: AsyncSession, staff, dan):
        """An unanswered request moves to the new cover with its original deadline."""
        anns, _ = await _unanswered_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]

        await assign_new_cover(db, reassignment.id, dan.id, staff["hr"].id, now=later(3))

        cover = (
            await db.execute(
                select(CoverRequest)
                .where(CoverRequest.leave_id == anns.id)
                .execution_options(populate_existing=True)
            )
        ).scalars().one()
        assert cover.cover_employee_id == dan.id
        assert cover.status == CoverRequestStatus.pending
        assert cover.expires_at.replace(tzinfo=None) == later(24).replace(tzinfo=None)

        result = await LeaveService.respond_to_cover(db, anns.id, dan.id, True, now=later(4))
        assert result.status == LeaveStatus.pending_admin

    async def test_only_hr_head(self, db: AsyncSession, staff, dan):
        await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]

        for outsider in (staff["md"], staff["bob"]):
            with pytest.raises(ForbiddenException):
                await assign_new_cover(db, reassignment.id, dan.id, outsider.id, now=later(3))

    async def test_unknown_reassignment(self, db: AsyncSession, staff, dan):
        with pytest.raises(NotFoundException):
            await assign_new_cover(db, uuid.uuid4(), dan.id, staff["hr"].id, now=later(3))

    async def test_already_reassigned(self, db: AsyncSession, staff, dan):
        await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]
        await assign_new_cover(db, reassignment.id, dan.id, staff["hr"].id, now=later(3))

        with pytest.raises(InvalidStateException):
            await assign_new_cover(
                db, reassignment.id, staff["bob"].id, staff["hr"].id, now=later(4),
            )

    async def test_unknown_new_cover(self, db: AsyncSession, staff):
        await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]

        with pytest.raises(NotFoundException):
            await assign_new_cover(
                db, reassignment.id, uuid.uuid4(), staff["hr"].id, now=later(3),
            )

    async def test_owner_cannot_cover_self(self, db: AsyncSession, staff):
        await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]

        with pytest.raises(ValidationException):
            await assign_new_cover(
                db, reassignment.id, staff["ann"].id, staff["hr"].id, now=later(3),
            )

    async def test_busy_new_cover_conflicts(self, db: AsyncSession, staff, dan):
        await _broken_cover_duty(db, staff)
        await _seed_leave(db, dan.id, date(2026, 3, 12), date(2026, 3, 12))
        reassignment = (await _reassignments(db))[0]

        with pytest.raises(ConflictError):
            await assign_new_cover(db, reassignment.id, dan.id, staff["hr"].id, now=later(3))

    async def test_cancelled_leave_cannot_be_reassigned(self, db: AsyncSession, staff, dan):
        anns, _ = await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]
        await LeaveService.cancel_leave(
            db, anns.id, staff["ann"].id, "Trip called off", now=later(3),
        )

        with pytest.raises(InvalidStateException):
            await assign_new_cover(db, reassignment.id, dan.id, staff["hr"].id, now=later(4))

        row = (await _reassignments(db))[0]
        assert row.status == ReassignmentStatus.pending
        notified = (
            await db.execute(
                select(Notification).where(Notification.recipient_id == dan.id)
            )
        ).scalars().all()
        assert notified == []

    async def test_declined_leave_cannot_be_reassigned(self, db: AsyncSession, staff, dan):
        anns, _ = await _broken_cover_duty(db, staff)
        reassignment = (await _reassignments(db))[0]
        await LeaveService.decide_leave(
            db, anns.id, staff["md"].id, False, "No cover available", now=later(3),
        )

        with pytest.raises(InvalidStateException):
            await assign_new_cover(db, reassignment.id, dan.id, staff["hr"].id, now=later(4))


class TestListPendingReassignments:

    async def test_hr_sees_pending(self, db: AsyncSession, staff):
        anns, _ = await _broken_cover_duty(db, staff)

        pending = await list_pending_reassignments(db, staff["hr"].id)

        assert len(pending) == 1
        assert pending[0].original_leave.id == anns.id
        assert pending[0].original_leave.employee.display_name == "Ann Applicant"

    async def test_closed_leaves_drop_out(self, db: AsyncSession, staff):
        anns, _ = await _unanswered_cover_duty(db, staff)
        await LeaveService.respond_to_cover(
            db, anns.id, staff["cat"].id, False, "On leave myself", now=later(3),
        )

        assert await list_pending_reassignments(db, staff["hr"].id) == []

    async def test_others_forbidden(self, db: AsyncSession, staff):
        with pytest.raises(ForbiddenException):
            await list_pending_reassignments(db, staff["md"].id)
