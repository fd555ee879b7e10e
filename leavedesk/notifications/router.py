"""Notification endpoints — list, mark read, pin, clear, unread count."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user
from leavedesk.common.constants import NotificationType
from leavedesk.common.pagination import PaginationParams
from leavedesk.database import get_db
from leavedesk.employees.models import Employee
from leavedesk.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)
from leavedesk.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    type: Optional[NotificationType] = Query(
        default=None, alias="type", description="Filter by notification type"
    ),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List notifications for the authenticated user (pinned first, paginated)."""
    return await NotificationService.get_notifications(
        db,
        employee_id=employee.id,
        pagination=pagination,
        is_read=is_read,
        notification_type=type,
    )


# ── GET /unread-count — badge count ─────────────────────────────────
# Registered before /{notification_id}/... so "unread-count" is not parsed as a UUID.

@router.get("/unread-count")
async def unread_count(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return the number of unread notifications (for header badge)."""
    count = await NotificationService.get_unread_count(db, employee.id)
    return {"data": {"count": count}}


# ── PUT /read-all — bulk mark all as read ───────────────────────────

@router.put("/read-all")
async def mark_all_read(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark all unread notifications as read for the authenticated user."""
    count = await NotificationService.mark_all_read(db, employee.id)
    return {"message": "All notifications marked as read", "data": {"count": count}}


# ── DELETE /clear-all — empty the inbox ─────────────────────────────

@router.delete("/clear-all")
async def clear_all(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.clear_all(db, employee.id)
    return {"message": "All notifications cleared", "data": {"count": count}}


# ── PUT /{notification_id}/read — mark single as read ───────────────

@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark a single notification as read."""
    notification = await NotificationService.mark_read(db, notification_id, employee.id)
    return {
        "message": "Notification marked as read",
        "data": NotificationResponse.model_validate(notification),
    }


# ── PUT /{notification_id}/pin — toggle pinned ──────────────────────

@router.put("/{notification_id}/pin")
async def toggle_pin(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.toggle_pin(db, notification_id, employee.id)
    return {
        "message": "Notification pinned" if notification.is_pinned else "Notification unpinned",
        "data": NotificationResponse.model_validate(notification),
    }


# ── DELETE /{notification_id} — clear single ────────────────────────

@router.delete("/{notification_id}")
async def clear_notification(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.clear(db, notification_id, employee.id)
    return {"message": "Notification cleared"}
