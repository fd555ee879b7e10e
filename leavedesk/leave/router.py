"""Leave router — apply, cover responses, decisions, cancel, availability, reassignment.

All endpoints require authentication except the cron endpoint, which is
guarded by ``CRON_SECRET``. Authority checks live in the service layer so
the same rules hold for the scheduler and scripts.
"""


import logging
import secrets
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_admin_type, require_role
from leavedesk.common.clock import utcnow
from leavedesk.common.constants import AdminType, LeaveCategory, LeaveStatus, UserRole
from leavedesk.common.rate_limit import limiter
from leavedesk.config import settings
from leavedesk.database import get_db
from leavedesk.employees.models import Employee
from leavedesk.leave import reassignment as reassignments
from leavedesk.leave.availability import list_available_employees
from leavedesk.leave.ledger import get_balance
from leavedesk.leave.reaper import reconcile_expired_cover_requests
from leavedesk.leave.schemas import (
    AvailableEmployeesOut,
    CoverResponseOut,
    CoverResponseRequest,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    ReassignCoverRequest,
    ReassignmentOut,
    ReconciliationSummary,
)
from leavedesk.leave.service import LeaveService
from leavedesk.notifications.email import send_leave_decision_emails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["leave"])
cron_router = APIRouter(prefix="", tags=["cron"])


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveRequestOut, status_code=201)
async def apply_leave(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Validates dates, cover employee availability and overlaps."""
    return await LeaveService.apply_leave(db, employee.id, body)


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves")
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    category: Optional[LeaveCategory] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's leave requests with pagination."""
    return await LeaveService.get_leave_requests(
        db,
        employee,
        scope="my",
        status=status,
        category=category,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )


# ── GET /covering ───────────────────────────────────────────────────

@router.get("/covering")
async def covering_leaves(
    status: Optional[LeaveStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave requests naming the authenticated user as cover employee."""
    return await LeaveService.get_leave_requests(
        db,
        employee,
        scope="covering",
        status=status,
        page=page,
        page_size=page_size,
    )


# ── GET /all (admin) ────────────────────────────────────────────────

@router.get("/all")
async def all_leaves(
    status: Optional[LeaveStatus] = Query(None),
    category: Optional[LeaveCategory] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Every leave request (admins only)."""
    return await LeaveService.get_leave_requests(
        db,
        employee,
        scope="all",
        employee_id=employee_id,
        status=status,
        category=category,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=LeaveBalanceOut)
async def balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remaining leave days for a year (defaults to the current year)."""
    return await get_balance(db, employee.id, year or utcnow().year)


# ── GET /cover-requests ─────────────────────────────────────────────

@router.get("/cover-requests", response_model=list[LeaveRequestOut])
async def pending_cover_requests(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Unexpired cover requests waiting on the authenticated user."""
    return await LeaveService.get_pending_cover_requests(db, employee.id)


# ── GET /available-employees ────────────────────────────────────────

@router.get("/available-employees", response_model=AvailableEmployeesOut)
async def available_employees(
    start_date: date = Query(...),
    end_date: date = Query(...),
    exclude_employee_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rank cover candidates for a date range; defaults to excluding the caller."""
    return await list_available_employees(
        db, start_date, end_date, exclude_employee_id or employee.id,
    )


# ── Reassignments (HR head) ─────────────────────────────────────────

@router.get("/reassignments", response_model=list[ReassignmentOut])
async def pending_reassignments(
    employee: Employee = Depends(require_admin_type(AdminType.hr_head)),
    db: AsyncSession = Depends(get_db),
):
    """Cover duties waiting for HR to pick a new cover employee."""
    return await reassignments.list_pending_reassignments(db, employee.id)


@router.post("/reassignments/{reassignment_id}/assign", response_model=LeaveRequestOut)
async def assign_new_cover(
    reassignment_id: uuid.UUID,
    body: ReassignCoverRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Assign a new cover employee to a broken cover duty."""
    return await reassignments.assign_new_cover(
        db, reassignment_id, body.new_cover_employee_id, employee.id,
    )


# ── GET /{leave_id} ─────────────────────────────────────────────────

@router.get("/{leave_id}", response_model=LeaveRequestOut)
async def get_leave(
    leave_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, leave_id, employee)


# ── POST /{leave_id}/cover-response ─────────────────────────────────

@router.post("/{leave_id}/cover-response", response_model=CoverResponseOut)
async def cover_response(
    leave_id: uuid.UUID,
    body: CoverResponseRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept or decline a cover request addressed to the authenticated user."""
    return await LeaveService.respond_to_cover(
        db, leave_id, employee.id, body.approve, body.reason,
    )


# ── PUT /{leave_id}/approve | /decline ──────────────────────────────

@router.put("/{leave_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    leave_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    body: Optional[LeaveDecisionRequest] = None,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a leave awaiting the managing director."""
    out = await LeaveService.decide_leave(
        db, leave_id, employee.id, True, body.response if body else None,
    )
    background_tasks.add_task(send_leave_decision_emails, LeaveService.decision_email(out, employee))
    return out


@router.put("/{leave_id}/decline", response_model=LeaveRequestOut)
async def decline_leave(
    leave_id: uuid.UUID,
    body: LeaveDecisionRequest,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Decline a leave awaiting the managing director; a response is required."""
    out = await LeaveService.decide_leave(
        db, leave_id, employee.id, False, body.response,
    )
    background_tasks.add_task(send_leave_decision_emails, LeaveService.decision_email(out, employee))
    return out


# ── POST /{leave_id}/cancel ─────────────────────────────────────────

@router.post("/{leave_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    leave_id: uuid.UUID,
    body: LeaveCancelRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel one of your own pending leave requests."""
    return await LeaveService.cancel_leave(db, leave_id, employee.id, body.reason)


# ═════════════════════════════════════════════════════════════════════
# Cron
# ═════════════════════════════════════════════════════════════════════


def _check_cron_secret(request: Request) -> None:
    expected = settings.CRON_SECRET
    header = request.headers.get("Authorization", "")
    supplied = header[7:] if header.startswith("Bearer ") else ""
    if not expected or not secrets.compare_digest(supplied, expected):
        logger.warning("Rejected cron call from %s", request.client.host if request.client else "?")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@cron_router.post("/cleanup-expired-covers", response_model=ReconciliationSummary)
@limiter.limit("10/minute")
async def cleanup_expired_covers(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Expire unanswered cover requests. Called by an external scheduler."""
    _check_cron_secret(request)
    return await reconcile_expired_cover_requests(db)
