"""Notification service — inbox operations and the transition fan-out.

Leave operations never write notifications inline. Each one returns a list
of :class:`NotificationIntent` and hands it to
:meth:`NotificationService.dispatch`, which persists the whole batch inside
the caller's transaction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import AdminType, NotificationType, UserRole
from leavedesk.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.pagination import PaginationParams, build_meta
from leavedesk.employees.models import Employee
from leavedesk.notifications.models import Notification
from leavedesk.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationIntent:
    """One ``(recipient, event)`` pair produced by a state transition."""

    recipient_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    sender_id: Optional[uuid.UUID] = None
    entity_type: Optional[str] = "leave_request"
    entity_id: Optional[uuid.UUID] = None
    action_url: Optional[str] = None
    is_pinned: bool = False


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def dispatch(
        db: AsyncSession,
        intents: Iterable[NotificationIntent],
    ) -> list[Notification]:
        """Persist every intent in the current transaction, in order."""
        rows: list[Notification] = []
        now = datetime.now(timezone.utc)
        for intent in intents:
            rows.append(
                Notification(
                    recipient_id=intent.recipient_id,
                    sender_id=intent.sender_id,
                    type=intent.type,
                    title=intent.title,
                    message=intent.message,
                    action_url=intent.action_url,
                    entity_type=intent.entity_type,
                    entity_id=intent.entity_id,
                    is_pinned=intent.is_pinned,
                    is_read=False,
                    created_at=now,
                )
            )
        if rows:
            db.add_all(rows)
            await db.flush()
            logger.debug("Dispatched %d notification(s)", len(rows))
        return rows

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        notification_type: Optional[NotificationType] = None,
    ) -> NotificationListResponse:
        """Return paginated notifications for an employee, pinned first then newest."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == employee_id)
            .order_by(Notification.is_pinned.desc(), Notification.created_at.desc())
        )

        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
        if notification_type is not None:
            query = query.where(Notification.type == notification_type)

        count_q = query.with_only_columns(
            func.count(), maintain_column_froms=True,
        ).order_by(None)
        total: int = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.offset(pagination.offset).limit(pagination.page_size)
            )
        ).scalars().all()

        # Unread count is never filtered; it feeds the badge
        unread = await NotificationService.get_unread_count(db, employee_id)
        meta = build_meta(pagination.page, pagination.page_size, total)

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=NotificationListMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def _get_owned(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalars().first()

        if notification is None:
            raise NotFoundException("Notification", notification_id)

        if notification.recipient_id != employee_id:
            raise ForbiddenException("You can only manage your own notifications.")
        return notification

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await NotificationService._get_owned(db, notification_id, employee_id)
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
        return notification

    @staticmethod
    async def toggle_pin(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        """Flip the pinned flag. Only read notifications can be pinned."""
        notification = await NotificationService._get_owned(db, notification_id, employee_id)
        if not notification.is_read and not notification.is_pinned:
            raise ValidationException(
                {"notification_id": ["Only read notifications can be pinned."]}
            )
        notification.is_pinned = not notification.is_pinned
        await db.flush()
        return notification

    @staticmethod
    async def clear(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> None:
        """Delete a single notification from the owner's inbox."""
        notification = await NotificationService._get_owned(db, notification_id, employee_id)
        await db.delete(notification)
        await db.flush()

    @staticmethod
    async def clear_all(db: AsyncSession, employee_id: uuid.UUID) -> int:
        """Delete every notification addressed to *employee_id*."""
        result = await db.execute(
            delete(Notification).where(Notification.recipient_id == employee_id)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Return the number of unread notifications for an employee."""
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()


# ── Recipient lookup ────────────────────────────────────────────────


async def admins_of_type(db: AsyncSession, admin_type: AdminType) -> Sequence[Employee]:
    """Active admins holding *admin_type*, ordered for stable fan-out."""
    result = await db.execute(
        select(Employee)
        .where(
            Employee.role == UserRole.admin,
            Employee.admin_type == admin_type,
            Employee.is_active.is_(True),
        )
        .order_by(Employee.first_name, Employee.last_name)
    )
    return result.scalars().all()


# ── Cross-module intent builders ────────────────────────────────────
# Imported by the leave services. They accept ORM objects directly to
# avoid tight schema coupling.


def _period(leave) -> str:
    if leave.start_date == leave.end_date:
        return f"{leave.start_date}"
    return f"{leave.start_date} to {leave.end_date}"


def _leave_url(leave) -> str:
    return f"/leave/requests/{leave.id}"


def cover_requested(leave, requester: Employee) -> NotificationIntent:
    """Ask the nominated cover employee to accept the duty."""
    return NotificationIntent(
        recipient_id=leave.cover_employee_id,
        sender_id=requester.id,
        type=NotificationType.cover_request,
        title="Cover Request",
        message=(
            f"{requester.full_name} has requested you to cover their duties "
            f"during {leave.category.value} leave ({_period(leave)}). "
            f"Please respond within 24 hours."
        ),
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def awaiting_decision(leave, requester: Employee, approver: Employee) -> NotificationIntent:
    """Tell the approving authority a leave is ready for a decision."""
    return NotificationIntent(
        recipient_id=approver.id,
        sender_id=requester.id,
        type=NotificationType.system_alert,
        title="Leave Awaiting Approval",
        message=(
            f"{requester.full_name}'s {leave.category.value} leave "
            f"({_period(leave)}, {leave.total_days} day(s)) requires your approval."
        ),
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def cover_accepted(leave, cover: Employee) -> NotificationIntent:
    return NotificationIntent(
        recipient_id=leave.employee_id,
        sender_id=cover.id,
        type=NotificationType.cover_accepted,
        title="Cover Request Accepted",
        message=(
            f"{cover.full_name} accepted your cover request for {_period(leave)}. "
            f"Your leave is now awaiting admin approval."
        ),
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def cover_declined(leave, cover: Employee, reason: str) -> NotificationIntent:
    return NotificationIntent(
        recipient_id=leave.employee_id,
        sender_id=cover.id,
        type=NotificationType.cover_declined,
        title="Cover Request Declined",
        message=(
            f"{cover.full_name} declined your cover request for {_period(leave)}. "
            f"Reason: {reason}"
        ),
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def leave_decided(leave, approver: Employee, approved: bool, response: Optional[str]) -> NotificationIntent:
    """Notify the requester of the administrative decision."""
    verdict = "approved" if approved else "declined"
    message = f"Your {leave.category.value} leave ({_period(leave)}) has been {verdict}."
    if response:
        message += f" Response: {response}"
    return NotificationIntent(
        recipient_id=leave.employee_id,
        sender_id=approver.id,
        type=NotificationType.leave_approved if approved else NotificationType.leave_declined,
        title=f"Leave Request {verdict.capitalize()}",
        message=message,
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def decision_recorded(leave, approver: Employee, requester: Employee, approved: bool) -> NotificationIntent:
    """Confirmation copy for the approver."""
    verdict = "approved" if approved else "declined"
    return NotificationIntent(
        recipient_id=approver.id,
        type=NotificationType.leave_approved if approved else NotificationType.leave_declined,
        title=f"Leave {verdict.capitalize()}",
        message=f"You {verdict} {requester.full_name}'s leave for {_period(leave)}.",
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def cover_duty_confirmed(leave, approver: Employee, requester: Employee) -> NotificationIntent:
    """Remind the cover employee that the duty is now final."""
    return NotificationIntent(
        recipient_id=leave.cover_employee_id,
        sender_id=approver.id,
        type=NotificationType.leave_approved,
        title="Cover Duty Confirmed",
        message=(
            f"{requester.full_name}'s leave ({_period(leave)}) was approved. "
            f"You are covering their duties for this period."
        ),
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def leave_cancelled(leave, requester: Employee, reason: str) -> NotificationIntent:
    return NotificationIntent(
        recipient_id=leave.cover_employee_id,
        sender_id=requester.id,
        type=NotificationType.leave_cancelled,
        title="Leave Cancelled",
        message=(
            f"{requester.full_name} cancelled their leave for {_period(leave)}. "
            f"You are no longer required to cover. Reason: {reason}"
        ),
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )


def leave_expired(leave, cover: Optional[Employee] = None) -> NotificationIntent:
    """Pinned notice to the requester that the cover window lapsed."""
    who = cover.full_name if cover is not None else "the cover employee"
    return NotificationIntent(
        recipient_id=leave.employee_id,
        type=NotificationType.leave_expired,
        title="Leave Request Expired",
        message=(
            f"Your {leave.category.value} leave request for {_period(leave)} has "
            f"expired because {who} did not respond within 24 hours. "
            f"Please reapply if you still need this leave."
        ),
        entity_id=leave.id,
        is_pinned=True,
    )


def reassignment_needed(
    reassignment, leave, hr_head: Employee, cover: Employee,
) -> NotificationIntent:
    """Ask HR to find a replacement for a cover employee who is now on leave."""
    return NotificationIntent(
        recipient_id=hr_head.id,
        sender_id=cover.id,
        type=NotificationType.system_alert,
        title="Cover Reassignment Needed",
        message=(
            f"{cover.full_name} is on approved leave and can no longer cover "
            f"leave {leave.id} ({_period(leave)}). Please assign a new cover employee."
        ),
        entity_type="cover_duty_reassignment",
        entity_id=reassignment.id,
    )


def cover_reassigned(
    leave,
    recipient_id: uuid.UUID,
    hr_head: Employee,
    new_cover: Employee,
    requester: Employee,
) -> NotificationIntent:
    """Announce a completed hand-off of cover duty."""
    if recipient_id == new_cover.id:
        message = (
            f"You have been assigned to cover {requester.full_name}'s leave "
            f"({_period(leave)})."
        )
    elif recipient_id == requester.id:
        message = (
            f"{new_cover.full_name} is now covering your leave ({_period(leave)})."
        )
    else:
        message = (
            f"{hr_head.full_name} reassigned cover for {requester.full_name}'s leave "
            f"({_period(leave)}) to {new_cover.full_name}."
        )
    return NotificationIntent(
        recipient_id=recipient_id,
        sender_id=hr_head.id,
        type=NotificationType.cover_reassigned,
        title="Cover Duty Reassigned",
        message=message,
        entity_id=leave.id,
        action_url=_leave_url(leave),
    )
