"""Availability calculator tests — overlap rule, conflicts, ranked candidate list.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import CoverRequestStatus, LeaveStatus
from leavedesk.common.exceptions import ValidationException
from leavedesk.leave.availability import (
    find_conflicts,
    list_available_employees,
    ranges_overlap,
)
from leavedesk.leave.models import LeaveRequest
from tests.conftest import _seed_employee, _seed_leave, later

WINDOW = (date(2026, 3, 10), date(2026, 3, 12))


# ═════════════════════════════════════════════════════════════════════
# 1. ranges_overlap — pure logic tests (no DB)
# ═════════════════════════════════════════════════════════════════════


class TestRangesOverlap:

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            # starts within
            ((date(2026, 3, 11), date(2026, 3, 20)), WINDOW, True),
            # ends within
            ((date(2026, 3, 1), date(2026, 3, 10)), WINDOW, True),
            # spans entirely
            ((date(2026, 3, 1), date(2026, 3, 31)), WINDOW, True),
            # contained
            ((date(2026, 3, 11), date(2026, 3, 11)), WINDOW, True),
            # touching the last day
            ((date(2026, 3, 12), date(2026, 3, 14)), WINDOW, True),
            # entirely before / after
            ((date(2026, 3, 1), date(2026, 3, 9)), WINDOW, False),
            ((date(2026, 3, 13), date(2026, 3, 14)), WINDOW, False),
        ],
    )
    def test_overlap_cases(self, a, b, expected):
        assert ranges_overlap(*a, *b) is expected

    def test_symmetric(self):
        a = (date(2026, 3, 1), date(2026, 3, 31))
        assert ranges_overlap(*a, *WINDOW) == ranges_overlap(*WINDOW, *a)


# ═════════════════════════════════════════════════════════════════════
# 2. find_conflicts
# ═════════════════════════════════════════════════════════════════════


class TestFindConflicts:

    async def test_free_employee_has_no_conflicts(self, db: AsyncSession, staff):
        assert await find_conflicts(db, staff["cat"].id, *WINDOW, later(1)) == []

    async def test_approved_leave_blocks(self, db: AsyncSession, staff):
        await _seed_leave(db, staff["cat"].id, date(2026, 3, 9), date(2026, 3, 10))

        reasons = await find_conflicts(db, staff["cat"].id, *WINDOW, later(1))

        assert len(reasons) == 1
        assert "approved leave" in reasons[0]

    async def test_non_overlapping_leave_ignored(self, db: AsyncSession, staff):
        await _seed_leave(db, staff["cat"].id, date(2026, 3, 2), date(2026, 3, 6))

        assert await find_conflicts(db, staff["cat"].id, *WINDOW, later(1)) == []

    async def test_pending_cover_request_blocks(self, db: AsyncSession, staff):
        await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_cover,
            cover_employee_id=staff["cat"].id,
            cover_status=CoverRequestStatus.pending,
        )

        reasons = await find_conflicts(db, staff["cat"].id, *WINDOW, later(1))

        assert len(reasons) == 1
        assert "pending cover request" in reasons[0]

    async def test_expired_cover_request_does_not_block(self, db: AsyncSession, staff):
        await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_cover,
            cover_employee_id=staff["cat"].id,
            cover_status=CoverRequestStatus.pending,
        )

        assert await find_conflicts(db, staff["cat"].id, *WINDOW, later(25)) == []

    async def test_expiry_boundary_still_blocks(self, db: AsyncSession, staff):
        """Exactly at expires_at the request is still live."""
        await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_cover,
            cover_employee_id=staff["cat"].id,
            cover_status=CoverRequestStatus.pending,
        )

        assert await find_conflicts(db, staff["cat"].id, *WINDOW, later(24)) != []

    async def test_excluded_leave_ignored(self, db: AsyncSession, staff):
        leave = await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_cover,
            cover_employee_id=staff["cat"].id,
            cover_status=CoverRequestStatus.pending,
        )

        reasons = await find_conflicts(
            db, staff["cat"].id, *WINDOW, later(1), exclude_leave_id=leave.id,
        )
        assert reasons == []


# ═════════════════════════════════════════════════════════════════════
# 3. list_available_employees
# ═════════════════════════════════════════════════════════════════════


class TestListAvailableEmployees:

    async def test_everyone_free_sorted_by_name(self, db: AsyncSession, staff):
        out = await list_available_employees(db, *WINDOW, now=later(1))

        names = [c.name for c in out.employees]
        assert names == ["Ann Applicant", "Bob Backup", "Cat Cover"]
        assert out.total == 3
        assert out.available_count == 3

    async def test_admins_and_excluded_employee_not_listed(self, db: AsyncSession, staff):
        out = await list_available_employees(
            db, *WINDOW, exclude_employee_id=staff["ann"].id, now=later(1),
        )

        ids = {c.id for c in out.employees}
        assert staff["ann"].id not in ids
        assert staff["md"].id not in ids
        assert staff["hr"].id not in ids

    async def test_inactive_employee_not_listed(self, db: AsyncSession, staff):
        gone = await _seed_employee(db, first_name="Gus", last_name="Gone", is_active=False)

        out = await list_available_employees(db, *WINDOW, now=later(1))

        assert gone.id not in {c.id for c in out.employees}

    async def test_on_leave_ranked_last_with_penalty(self, db: AsyncSession, staff):
        await _seed_leave(db, staff["ann"].id, *WINDOW)

        out = await list_available_employees(db, *WINDOW, now=later(1))

        last = out.employees[-1]
        assert last.id == staff["ann"].id
        assert last.on_leave is True
        assert last.available is False
        assert last.workload_score == 10
        assert out.available_count == 2

    async def test_covering_duties_raise_workload_but_stay_available(
        self, db: AsyncSession, staff,
    ):
        # Ann covers two approved leaves in the window
        for owner in (staff["bob"], staff["cat"]):
            await _seed_leave(
                db, owner.id, date(2026, 3, 11), date(2026, 3, 11),
                cover_employee_id=staff["ann"].id,
                cover_status=CoverRequestStatus.accepted,
            )

        out = await list_available_employees(db, *WINDOW, now=later(1))

        ann = next(c for c in out.employees if c.id == staff["ann"].id)
        assert ann.covering_count == 2
        assert ann.workload_score == 4
        assert ann.available is True
        # Bob and Cat are on approved leave; Ann still ranks first
        assert out.employees[0].id == staff["ann"].id

    async def test_lower_workload_ranks_first(self, db: AsyncSession, staff):
        await _seed_leave(
            db, staff["cat"].id, date(2026, 3, 11), date(2026, 3, 11),
            cover_employee_id=staff["ann"].id,
            cover_status=CoverRequestStatus.accepted,
        )

        out = await list_available_employees(
            db, *WINDOW, exclude_employee_id=staff["cat"].id, now=later(1),
        )

        assert [c.name for c in out.employees] == ["Bob Backup", "Ann Applicant"]

    async def test_pending_cover_makes_unavailable(self, db: AsyncSession, staff):
        await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_cover,
            cover_employee_id=staff["bob"].id,
            cover_status=CoverRequestStatus.pending,
        )

        out = await list_available_employees(
            db, *WINDOW, exclude_employee_id=staff["ann"].id, now=later(1),
        )

        bob = next(c for c in out.employees if c.id == staff["bob"].id)
        assert bob.pending_cover_count == 1
        assert bob.available is False
        assert bob.workload_score == 0
        assert out.employees[-1].id == staff["bob"].id

    async def test_expired_request_reaped_before_ranking(self, db: AsyncSession, staff):
        leave = await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_cover,
            cover_employee_id=staff["bob"].id,
            cover_status=CoverRequestStatus.pending,
        )
        leave_id = leave.id

        out = await list_available_employees(
            db, *WINDOW, exclude_employee_id=staff["ann"].id, now=later(25),
        )

        assert out.available_count == 2
        assert await db.get(LeaveRequest, leave_id) is None

    async def test_case_insensitive_name_ordering(self, db: AsyncSession, staff):
        await _seed_employee(db, first_name="aaron", last_name="lower")

        out = await list_available_employees(db, *WINDOW, now=later(1))

        assert out.employees[0].name == "aaron lower"

    async def test_ranking_is_deterministic(self, db: AsyncSession, staff):
        await _seed_leave(db, staff["bob"].id, *WINDOW)

        first = await list_available_employees(db, *WINDOW, now=later(1))
        second = await list_available_employees(db, *WINDOW, now=later(1))

        assert [c.id for c in first.employees] == [c.id for c in second.employees]

    async def test_inverted_range_rejected(self, db: AsyncSession, staff):
        with pytest.raises(ValidationException):
            await list_available_employees(
                db, date(2026, 3, 12), date(2026, 3, 10), now=later(1),
            )
