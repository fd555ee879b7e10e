"""Expiration reaper tests — expiry, idempotency, per-record isolation, scheduler job.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import AuditTrail
from leavedesk.common.constants import CoverRequestStatus, LeaveStatus, NotificationType
from leavedesk.leave import reaper
from leavedesk.leave.cover import has_expired_pending
from leavedesk.leave.models import CoverRequest, LeaveRequest
from leavedesk.leave.reaper import reconcile_expired_cover_requests, reconcile_if_needed
from leavedesk.notifications.models import Notification
from leavedesk.scheduler import configure_scheduler, expire_cover_requests_job
from tests.conftest import TestSessionFactory, _seed_leave, later

WINDOW = (date(2026, 3, 10), date(2026, 3, 12))


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _pending_leave(db: AsyncSession, owner, cover, **kwargs) -> LeaveRequest:
    return await _seed_leave(
        db, owner.id, *WINDOW,
        status=LeaveStatus.pending_cover,
        cover_employee_id=cover.id,
        cover_status=CoverRequestStatus.pending,
        **kwargs,
    )


class TestReconcile:

    async def test_expired_leave_removed_and_owner_notified(self, db: AsyncSession, staff):
        """Scenario B: nobody answers within the window."""
        await _pending_leave(db, staff["ann"], staff["cat"])

        summary = await reconcile_expired_cover_requests(db, now=later(25))

        assert summary.total_expired == 1
        assert summary.cleaned == 1
        assert summary.notifications_sent == 1
        assert summary.errors == 0
        assert await _count(db, LeaveRequest) == 0
        assert await _count(db, CoverRequest) == 0

        notes = (
            await db.execute(
                select(Notification).where(Notification.recipient_id == staff["ann"].id)
            )
        ).scalars().all()
        assert len(notes) == 1
        assert notes[0].type == NotificationType.leave_expired
        assert notes[0].title == "Leave Request Expired"
        assert notes[0].is_pinned is True

    async def test_expiry_is_audited(self, db: AsyncSession, staff):
        leave = await _pending_leave(db, staff["ann"], staff["cat"])
        leave_id = leave.id

        await reconcile_expired_cover_requests(db, now=later(25))

        entry = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "expire"))
        ).scalars().one()
        assert entry.entity_id == leave_id
        assert entry.old_values["status"] == "pending_cover"

    async def test_rerun_is_a_noop(self, db: AsyncSession, staff):
        await _pending_leave(db, staff["ann"], staff["cat"])

        await reconcile_expired_cover_requests(db, now=later(25))
        second = await reconcile_expired_cover_requests(db, now=later(26))

        assert second.total_expired == 0
        assert second.cleaned == 0
        assert await _count(db, Notification) == 1

    async def test_unexpired_requests_untouched(self, db: AsyncSession, staff):
        await _pending_leave(db, staff["ann"], staff["cat"])

        summary = await reconcile_expired_cover_requests(db, now=later(24))

        assert summary.total_expired == 0
        assert await _count(db, LeaveRequest) == 1

    async def test_answered_requests_never_expire(self, db: AsyncSession, staff):
        await _seed_leave(
            db, staff["ann"].id, *WINDOW,
            status=LeaveStatus.pending_admin,
            cover_employee_id=staff["cat"].id,
            cover_status=CoverRequestStatus.accepted,
        )

        summary = await reconcile_expired_cover_requests(db, now=later(days=30))

        assert summary.total_expired == 0
        assert await _count(db, LeaveRequest) == 1

    async def test_vanished_record_counted_as_handled(self, db: AsyncSession, staff, monkeypatch):
        await _pending_leave(db, staff["ann"], staff["cat"])

        async def _already_gone(session, leave_id, now):
            return False

        monkeypatch.setattr(reaper, "_expire_one", _already_gone)
        summary = await reconcile_expired_cover_requests(db, now=later(25))

        assert summary.total_expired == 1
        assert summary.cleaned == 0
        assert summary.errors == 0

    async def test_one_failure_does_not_stop_the_batch(self, db: AsyncSession, staff, monkeypatch):
        broken = await _pending_leave(db, staff["ann"], staff["cat"])
        await _pending_leave(db, staff["bob"], staff["cat"], cover_created_at=later(1))
        broken_id = broken.id
        original = reaper._expire_one

        async def _flaky(session, leave_id, now):
            if leave_id == broken_id:
                raise RuntimeError("lock timeout")
            return await original(session, leave_id, now)

        monkeypatch.setattr(reaper, "_expire_one", _flaky)
        summary = await reconcile_expired_cover_requests(db, now=later(30))

        assert summary.total_expired == 2
        assert summary.cleaned == 1
        assert summary.errors == 1
        assert str(broken_id) in summary.error_details[0]
        assert "lock timeout" in summary.error_details[0]
        remaining = (await db.execute(select(LeaveRequest.id))).scalars().all()
        assert remaining == [broken_id]


class TestLazyPath:

    async def test_nothing_to_do_returns_none(self, db: AsyncSession, staff):
        await _pending_leave(db, staff["ann"], staff["cat"])

        assert await reconcile_if_needed(db, now=later(1)) is None
        assert await has_expired_pending(db, now=later(1)) is False

    async def test_runs_when_something_expired(self, db: AsyncSession, staff):
        await _pending_leave(db, staff["ann"], staff["cat"])

        assert await has_expired_pending(db, now=later(25)) is True
        summary = await reconcile_if_needed(db, now=later(25))

        assert summary.cleaned == 1


class TestScheduledJob:

    async def test_job_commits_in_own_session(self, db: AsyncSession, staff):
        # Seeded at T0, which is long past in wall-clock time
        await _pending_leave(db, staff["ann"], staff["cat"])
        await db.commit()

        summary = await expire_cover_requests_job(session_factory=TestSessionFactory)

        assert summary.cleaned == 1
        async with TestSessionFactory() as fresh:
            assert await _count(fresh, LeaveRequest) == 0

    def test_job_registered_once(self):
        scheduler = configure_scheduler()
        configure_scheduler()

        jobs = [j for j in scheduler.get_jobs() if j.id == "expire_cover_requests"]
        assert len(jobs) == 1
