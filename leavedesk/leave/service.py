"""Leave service layer — the leave approval state machine.

States::

    pending_cover ──accept──▶ pending_admin ──approve──▶ approved
         │                        │
         ├──decline─▶ declined ◀──┘ decline
         │
         └──(either pending state)──cancel──▶ cancelled

Cover-exempt categories start at ``pending_admin``. ``approved``,
``declined`` and ``cancelled`` are terminal.

Every operation:
  - re-reads the leave ``FOR UPDATE`` before deciding anything
  - applies its change through a typed :class:`LeaveRequestUpdate` patch
  - writes an audit entry
  - returns its notification fan-out as intents, persisted in the same
    transaction by :meth:`NotificationService.dispatch`

Services flush but never commit; the request's ``get_db`` owns the
transaction.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.audit import create_audit_entry
from leavedesk.common.clock import resolve_now
from leavedesk.common.constants import (
    BACKDATE_LIMIT_DAYS,
    COVER_EXEMPT_CATEGORIES,
    HALF_DAY,
    MAX_DAYS_PER_REQUEST,
    MAX_LEAVE_SPAN_DAYS,
    OFFICIAL_LEAD_DAYS,
    OPEN_COVER_STATUSES,
    PENDING_LEAVE_STATUSES,
    AdminType,
    CoverRequestStatus,
    LeaveCategory,
    LeaveStatus,
    ReassignmentStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    ConflictError,
    CoverExpiredException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.pagination import PaginatedResponse, paginate
from leavedesk.employees.models import Employee
from leavedesk.leave import cover as cover_requests
from leavedesk.leave.availability import (
    approved_leave_overlap,
    find_conflicts,
    overlaps_clause,
)
from leavedesk.leave.ledger import deduct_for_leave
from leavedesk.leave.models import CoverDutyReassignment, CoverRequest, LeaveRequest
from leavedesk.leave.reaper import reconcile_if_needed, was_expired
from leavedesk.leave.schemas import (
    CoverResponseOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
)
from leavedesk.notifications.email import LeaveDecisionEmail
from leavedesk.notifications.service import (
    NotificationIntent,
    NotificationService,
    admins_of_type,
    awaiting_decision,
    cover_accepted,
    cover_declined,
    cover_duty_confirmed,
    cover_requested,
    decision_recorded,
    leave_cancelled,
    leave_decided,
    reassignment_needed,
)

logger = logging.getLogger(__name__)

# Accepted cover duties: the cover employee has committed to these
_COMMITTED_COVER_STATUSES = (LeaveStatus.pending_admin, LeaveStatus.approved)


# ── Pure helpers ────────────────────────────────────────────────────

def chargeable_days(start: date, end: date, half_day: Any = None) -> Decimal:
    """Calendar days in ``[start, end]``, or 0.5 for a half-day."""
    if half_day is not None:
        return HALF_DAY
    return Decimal((end - start).days + 1)


def apply_patch(leave: LeaveRequest, patch: LeaveRequestUpdate) -> dict[str, Any]:
    """Apply the set fields of *patch*; return the previous values as JSON."""
    old: dict[str, Any] = {}
    for field, value in patch.model_dump(exclude_unset=True).items():
        previous = getattr(leave, field)
        old[field] = _jsonable(previous)
        setattr(leave, field, value)
    return old


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _patch_json(patch: LeaveRequestUpdate) -> dict[str, Any]:
    return {k: _jsonable(v) for k, v in patch.model_dump(exclude_unset=True).items()}


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, cover response, decision, cancel, reads."""

    _LEAVE_LOAD = (
        selectinload(LeaveRequest.employee),
        selectinload(LeaveRequest.cover_employee),
        selectinload(LeaveRequest.cover_request),
    )

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def load_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> LeaveRequest:
        """Fetch a leave with employee, cover employee and cover request loaded."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == leave_id)
            .options(*LeaveService._LEAVE_LOAD)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=LeaveRequest)
        leave = (await db.execute(query)).scalars().first()
        if leave is None:
            raise NotFoundException("LeaveRequest", str(leave_id))
        return leave

    @staticmethod
    async def get_leave_out(db: AsyncSession, leave_id: uuid.UUID) -> LeaveRequestOut:
        leave = await LeaveService.load_leave(db, leave_id)
        return LeaveService.build_response(leave)

    @staticmethod
    def build_response(leave: LeaveRequest) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(leave)

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Optional[Employee]:
        return await db.get(Employee, employee_id)

    @staticmethod
    async def _require_admin(
        db: AsyncSession,
        employee_id: uuid.UUID,
        admin_type: AdminType,
        action: str,
    ) -> Employee:
        employee = await LeaveService._get_employee(db, employee_id)
        if (
            employee is None
            or not employee.is_active
            or employee.role != UserRole.admin
            or employee.admin_type != admin_type
        ):
            raise ForbiddenException(
                f"Only the {admin_type.value.replace('_', ' ')} can {action}."
            )
        return employee

    @staticmethod
    async def _approver_intents(
        db: AsyncSession,
        leave: LeaveRequest,
        requester: Employee,
    ) -> list[NotificationIntent]:
        approvers = await admins_of_type(db, AdminType.managing_director)
        return [awaiting_decision(leave, requester, a) for a in approvers]

    # ─────────────────────────────────────────────────────────────────
    # Apply Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _validate_application(
        db: AsyncSession,
        employee: Optional[Employee],
        data: LeaveRequestCreate,
        now: datetime,
    ) -> tuple[Decimal, Optional[Employee]]:
        """Field-level checks. Returns (chargeable days, cover employee)."""
        errors: dict[str, list[str]] = {}

        if employee is None or not employee.is_active:
            raise ValidationException({"employee_id": ["Employee not found or inactive."]})

        if data.start_date > data.end_date:
            errors.setdefault("end_date", []).append("end_date must be on or after start_date.")
        elif (data.end_date - data.start_date).days > MAX_LEAVE_SPAN_DAYS:
            errors.setdefault("end_date", []).append(
                f"Leave request cannot span more than {MAX_LEAVE_SPAN_DAYS} days."
            )
        if data.half_day is not None and data.start_date != data.end_date:
            errors.setdefault("half_day", []).append(
                "A half-day leave must start and end on the same date."
            )
        if errors:
            raise ValidationException(errors)

        days = chargeable_days(data.start_date, data.end_date, data.half_day)
        if data.total_days is not None and Decimal(data.total_days) != days:
            errors.setdefault("total_days", []).append(
                f"total_days {data.total_days} does not match the {days} chargeable day(s) "
                f"between {data.start_date} and {data.end_date}."
            )

        category = data.category.value
        cap = MAX_DAYS_PER_REQUEST.get(data.category)
        if cap is not None and days > cap:
            errors.setdefault("end_date", []).append(
                f"{category.capitalize()} leave cannot exceed {cap} continuous days per request."
            )

        today = now.date()
        earliest = today - timedelta(days=BACKDATE_LIMIT_DAYS[data.category])
        if data.start_date < earliest:
            errors.setdefault("start_date", []).append(
                f"{category.capitalize()} leave cannot start before {earliest}."
            )
        if data.category == LeaveCategory.official:
            latest = today + timedelta(days=OFFICIAL_LEAD_DAYS)
            if data.start_date > latest:
                errors.setdefault("start_date", []).append(
                    f"Official leave must start within {OFFICIAL_LEAD_DAYS} days of today "
                    f"(by {latest})."
                )

        if employee.is_probation and data.category == LeaveCategory.annual:
            errors.setdefault("category", []).append(
                "Employees on probation cannot apply for annual leave. "
                "You can apply for casual, medical, or official leave."
            )

        if data.category == LeaveCategory.medical and not data.supporting_document_url:
            errors.setdefault("supporting_document_url", []).append(
                "Medical certificate is required for medical leave."
            )

        cover: Optional[Employee] = None
        if data.category not in COVER_EXEMPT_CATEGORIES:
            if data.cover_employee_id is None:
                errors.setdefault("cover_employee_id", []).append(
                    f"A cover employee is required for {data.category.value} leave."
                )
            elif data.cover_employee_id == employee.id:
                errors.setdefault("cover_employee_id", []).append(
                    "You cannot be your own cover employee."
                )
            else:
                cover = await LeaveService._get_employee(db, data.cover_employee_id)
                if cover is None or not cover.is_active:
                    errors.setdefault("cover_employee_id", []).append(
                        "Cover employee not found or inactive."
                    )

        if errors:
            raise ValidationException(errors)
        return days, cover

    @staticmethod
    async def _check_requester_conflicts(
        db: AsyncSession,
        employee: Employee,
        data: LeaveRequestCreate,
    ) -> None:
        own = await db.execute(
            select(LeaveRequest.start_date, LeaveRequest.end_date, LeaveRequest.status)
            .where(
                LeaveRequest.employee_id == employee.id,
                LeaveRequest.status.in_(OPEN_COVER_STATUSES),
                overlaps_clause(data.start_date, data.end_date),
            )
            .limit(1)
        )
        row = own.first()
        if row is not None:
            raise ConflictError(
                "You already have a leave request overlapping these dates.",
                {"dates": [f"{row.start_date} to {row.end_date} ({row.status.value})"]},
            )

        duties = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.cover_employee_id == employee.id,
                LeaveRequest.status.in_(_COMMITTED_COVER_STATUSES),
                overlaps_clause(data.start_date, data.end_date),
            )
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.start_date)
        )
        covering = duties.scalars().all()
        if covering:
            raise ConflictError(
                "You cannot apply for leave during this period because you have "
                "accepted to cover duties for other employees.",
                {
                    "cover_duties": [
                        f"{d.employee.full_name} ({d.start_date} to {d.end_date})"
                        for d in covering
                    ]
                },
            )

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Create a leave request and, unless cover-exempt, its cover request.

        Validation:
          - dates ordered, span limit, half-day only on a single date
          - optional client total_days must equal the computed chargeable days
          - per-category day caps and back-dating windows; official leave
            must start within a few days of today
          - probation excludes annual leave; medical leave needs a document
          - cover employee required (except official), active, not self
        Conflicts:
          - requester already has an overlapping pending/approved leave
          - requester has accepted cover duty overlapping the range
          - cover employee unavailable for the range
        """
        now = resolve_now(now)
        await reconcile_if_needed(db, now=now)

        employee = await LeaveService._get_employee(db, employee_id)
        days, cover = await LeaveService._validate_application(db, employee, data, now)
        await LeaveService._check_requester_conflicts(db, employee, data)

        if cover is not None:
            reasons = await find_conflicts(db, cover.id, data.start_date, data.end_date, now)
            if reasons:
                raise ConflictError(
                    f"{cover.full_name} is not available for the requested dates.",
                    {"cover_employee_id": reasons},
                )

        exempt = data.category in COVER_EXEMPT_CATEGORIES
        leave = LeaveRequest(
            employee_id=employee.id,
            category=data.category,
            start_date=data.start_date,
            end_date=data.end_date,
            half_day=data.half_day,
            total_days=days,
            reason=data.reason,
            supporting_document_url=data.supporting_document_url,
            cover_employee_id=None if exempt else cover.id,
            status=LeaveStatus.pending_admin if exempt else LeaveStatus.pending_cover,
            is_cancelled=False,
            is_paid=data.is_paid,
            created_at=now,
            updated_at=now,
        )
        db.add(leave)
        await db.flush()

        cover_request = None
        if not exempt:
            cover_request = await cover_requests.open_cover_request(db, leave, now)

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=employee.id,
            new_values={
                "category": leave.category.value,
                "start_date": leave.start_date.isoformat(),
                "end_date": leave.end_date.isoformat(),
                "total_days": str(days),
                "status": leave.status.value,
                "cover_employee_id": str(leave.cover_employee_id) if leave.cover_employee_id else None,
                "cover_expires_at": cover_request.expires_at.isoformat() if cover_request else None,
            },
        )

        if exempt:
            intents = await LeaveService._approver_intents(db, leave, employee)
        else:
            intents = [cover_requested(leave, employee)]
        await NotificationService.dispatch(db, intents)

        logger.info(
            "Leave %s created by %s (%s, %s..%s) -> %s",
            leave.id, employee.id, leave.category.value,
            leave.start_date, leave.end_date, leave.status.value,
        )
        return await LeaveService.get_leave_out(db, leave.id)

    # ─────────────────────────────────────────────────────────────────
    # Cover Response
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def respond_to_cover(
        db: AsyncSession,
        leave_id: uuid.UUID,
        cover_employee_id: uuid.UUID,
        approve: bool,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CoverResponseOut:
        """Accept or decline the cover request on a leave.

        The expiry is checked against the locked row inside this
        transaction, so a concurrent reaper run and this call cannot both
        succeed. A leave the reaper has already removed answers as expired,
        not missing.
        """
        now = resolve_now(now)
        try:
            leave = await LeaveService.load_leave(db, leave_id, for_update=True)
        except NotFoundException:
            if await was_expired(db, leave_id):
                raise CoverExpiredException()
            raise

        reason = reason.strip() if reason else None
        if not approve and not reason:
            raise ValidationException(
                {"reason": ["A reason is required when declining a cover request."]}
            )
        if leave.cover_employee_id != cover_employee_id:
            raise ForbiddenException("You are not the cover employee for this leave request.")
        if leave.status != LeaveStatus.pending_cover:
            raise InvalidStateException(
                f"Leave request is {leave.status.value}; cover responses are only "
                f"accepted while it is pending_cover."
            )

        cover = await cover_requests.get_cover_request(db, leave.id, for_update=True)
        if cover is None or cover.status != CoverRequestStatus.pending:
            raise InvalidStateException("This cover request has already been responded to.")
        if cover_requests.is_expired(cover, now):
            raise CoverExpiredException()
        if approve:
            on_leave = await approved_leave_overlap(
                db, cover_employee_id, leave.start_date, leave.end_date,
            )
            if on_leave is not None:
                raise ConflictError(
                    "You cannot accept this cover request while on approved leave "
                    "during the same period.",
                    {"cover_employee_id": [on_leave]},
                )

        cover_employee = leave.cover_employee
        cover_requests.record_cover_response(cover, approve, reason, now)

        if approve:
            patch = LeaveRequestUpdate(status=LeaveStatus.pending_admin, updated_at=now)
        else:
            patch = LeaveRequestUpdate(
                status=LeaveStatus.declined,
                admin_response=f"Cover employee declined: {reason}",
                updated_at=now,
            )
        old = apply_patch(leave, patch)
        await db.flush()

        await create_audit_entry(
            db,
            action="cover_accept" if approve else "cover_decline",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=cover_employee_id,
            old_values=old,
            new_values={**_patch_json(patch), "cover_status": cover.status.value},
        )

        if approve:
            intents = [cover_accepted(leave, cover_employee)]
            intents += await LeaveService._approver_intents(db, leave, leave.employee)
        else:
            intents = [cover_declined(leave, cover_employee, reason)]
        await NotificationService.dispatch(db, intents)

        logger.info(
            "Cover %s on leave %s by %s: %s -> %s",
            cover.status.value, leave.id, cover_employee_id,
            old["status"], leave.status.value,
        )
        return CoverResponseOut(
            leave_id=leave.id,
            status=leave.status,
            cover_status=cover.status,
            message="Cover request accepted" if approve else "Cover request declined",
        )

    # ─────────────────────────────────────────────────────────────────
    # Administrative Decision
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _flag_cover_duties(
        db: AsyncSession,
        approved: LeaveRequest,
        now: datetime,
    ) -> list[NotificationIntent]:
        """Open reassignments for cover duties the newly approved leave breaks.

        Duties still awaiting the cover employee's answer are flagged too;
        the cover employee can no longer accept them.
        """
        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.cover_employee_id == approved.employee_id,
                LeaveRequest.status.in_(OPEN_COVER_STATUSES),
                LeaveRequest.id != approved.id,
                overlaps_clause(approved.start_date, approved.end_date),
            )
            .order_by(LeaveRequest.start_date)
        )
        affected = result.scalars().all()
        if not affected:
            return []

        existing = set(
            (
                await db.execute(
                    select(CoverDutyReassignment.original_leave_id).where(
                        CoverDutyReassignment.original_leave_id.in_([l.id for l in affected]),
                        CoverDutyReassignment.status == ReassignmentStatus.pending,
                    )
                )
            ).scalars().all()
        )

        hr_heads = await admins_of_type(db, AdminType.hr_head)
        intents: list[NotificationIntent] = []
        for duty in affected:
            if duty.id in existing:
                continue
            reassignment = CoverDutyReassignment(
                original_leave_id=duty.id,
                cover_employee_leave_id=approved.id,
                original_cover_employee_id=approved.employee_id,
                status=ReassignmentStatus.pending,
                created_at=now,
                updated_at=now,
            )
            db.add(reassignment)
            await db.flush()
            await create_audit_entry(
                db,
                action="reassignment_opened",
                entity_type="cover_duty_reassignment",
                entity_id=reassignment.id,
                new_values={
                    "original_leave_id": str(duty.id),
                    "cover_employee_leave_id": str(approved.id),
                },
            )
            intents += [
                reassignment_needed(reassignment, duty, hr, approved.employee)
                for hr in hr_heads
            ]
            logger.info(
                "Cover duty on leave %s needs reassignment (cover %s on leave %s)",
                duty.id, approved.employee_id, approved.id,
            )
        return intents

    @staticmethod
    async def decide_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        approver_id: uuid.UUID,
        approve: bool,
        response: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Approve or decline a leave awaiting the approving authority.

        Approval deducts the ledger in the same transaction and opens
        reassignments for any cover duties the approved employee held.
        """
        now = resolve_now(now)
        approver = await LeaveService._require_admin(
            db, approver_id, AdminType.managing_director, "approve or decline leave requests",
        )
        leave = await LeaveService.load_leave(db, leave_id, for_update=True)

        if leave.status != LeaveStatus.pending_admin:
            raise InvalidStateException(
                f"Leave request is {leave.status.value}; only pending_admin "
                f"requests can be approved or declined."
            )
        response = response.strip() if response else None
        if not approve and not response:
            raise ValidationException(
                {"response": ["A response message is required when declining a leave."]}
            )

        patch = LeaveRequestUpdate(
            status=LeaveStatus.approved if approve else LeaveStatus.declined,
            admin_response=response,
            decided_by=approver.id,
            decided_at=now,
            updated_at=now,
        )
        old = apply_patch(leave, patch)
        await db.flush()

        new_values = _patch_json(patch)
        intents: list[NotificationIntent] = [
            leave_decided(leave, approver, approve, response),
            decision_recorded(leave, approver, leave.employee, approve),
        ]
        if approve:
            deduction = await deduct_for_leave(db, leave, leave.employee, actor_id=approver.id)
            if deduction is not None:
                new_values["balance"] = {
                    "year": deduction.year,
                    "before": str(deduction.before),
                    "after": str(deduction.after),
                }
            if leave.cover_employee_id is not None:
                intents.append(cover_duty_confirmed(leave, approver, leave.employee))
            intents += await LeaveService._flag_cover_duties(db, leave, now)

        await create_audit_entry(
            db,
            action="approve" if approve else "decline",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=approver.id,
            old_values=old,
            new_values=new_values,
        )
        await NotificationService.dispatch(db, intents)

        logger.info(
            "Leave %s %s by %s", leave.id, leave.status.value, approver.id,
        )
        return await LeaveService.get_leave_out(db, leave.id)

    @staticmethod
    def decision_email(out: LeaveRequestOut, approver: Employee) -> LeaveDecisionEmail:
        """Snapshot a decided leave for the post-commit email task."""
        employee = out.employee
        cover = out.cover_employee
        return LeaveDecisionEmail(
            approved=out.status == LeaveStatus.approved,
            employee_name=(employee.display_name or employee.employee_code) if employee else "",
            employee_email=employee.email if employee else "",
            category=out.category.value,
            start_date=out.start_date,
            end_date=out.end_date,
            total_days=out.total_days,
            reason=out.reason,
            admin_response=out.admin_response,
            cover_name=cover.display_name if cover else None,
            cover_email=cover.email if cover else None,
            approver_email=approver.email,
        )

    # ─────────────────────────────────────────────────────────────────
    # Cancel Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        employee_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Owner-only cancellation of a pending leave.

        An unanswered cover request is withdrawn with it, which frees the
        cover employee immediately.
        """
        now = resolve_now(now)
        leave = await LeaveService.load_leave(db, leave_id, for_update=True)

        reason = reason.strip() if reason else ""
        if not reason:
            raise ValidationException({"reason": ["A cancellation reason is required."]})
        if leave.employee_id != employee_id:
            raise ForbiddenException("You can only cancel your own leave requests.")
        if leave.status not in PENDING_LEAVE_STATUSES:
            raise InvalidStateException(
                f"Cannot cancel a leave request with status '{leave.status.value}'."
            )

        patch = LeaveRequestUpdate(
            status=LeaveStatus.cancelled,
            is_cancelled=True,
            cancellation_reason=reason,
            cancelled_at=now,
            updated_at=now,
        )
        old = apply_patch(leave, patch)

        withdrawn = False
        if leave.cover_request is not None and leave.cover_request.status == CoverRequestStatus.pending:
            await db.delete(leave.cover_request)
            withdrawn = True
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=employee_id,
            old_values=old,
            new_values={**_patch_json(patch), "cover_request_withdrawn": withdrawn},
        )

        intents: list[NotificationIntent] = []
        if leave.cover_employee_id is not None:
            intents.append(leave_cancelled(leave, leave.employee, reason))
        await NotificationService.dispatch(db, intents)

        logger.info("Leave %s cancelled by %s (was %s)", leave.id, employee_id, old["status"])
        return await LeaveService.get_leave_out(db, leave.id)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        requestor: Employee,
    ) -> LeaveRequestOut:
        """Single leave; visible to its owner, its cover employee and admins."""
        leave = await LeaveService.load_leave(db, leave_id)
        if (
            requestor.role != UserRole.admin
            and requestor.id not in (leave.employee_id, leave.cover_employee_id)
        ):
            raise ForbiddenException("You do not have access to this leave request.")
        return LeaveService.build_response(leave)

    @staticmethod
    async def get_leave_requests(
        db: AsyncSession,
        requestor: Employee,
        *,
        scope: str = "my",
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        category: Optional[LeaveCategory] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
        now: Optional[datetime] = None,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """List leave requests with pagination and filters.

        Scopes:
          - my: own requests only
          - covering: requests naming the requestor as cover employee
          - all: every request (admins only)
        """
        await reconcile_if_needed(db, now=now)

        query = (
            select(LeaveRequest)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
            .execution_options(populate_existing=True)
        )

        if scope == "my":
            query = query.where(LeaveRequest.employee_id == requestor.id)
        elif scope == "covering":
            query = query.where(LeaveRequest.cover_employee_id == requestor.id)
        elif scope == "all":
            if requestor.role != UserRole.admin:
                raise ForbiddenException("Only admins can list all leave requests.")
        else:
            raise ValidationException({"scope": ["scope must be one of: my, covering, all."]})

        if employee_id:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.where(LeaveRequest.status == status)
        if category:
            query = query.where(LeaveRequest.category == category)
        if from_date:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date:
            query = query.where(LeaveRequest.start_date <= to_date)

        rows, meta = await paginate(db, query, page, page_size, *LeaveService._LEAVE_LOAD)
        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveService.build_response(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def get_pending_cover_requests(
        db: AsyncSession,
        cover_employee_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> list[LeaveRequestOut]:
        """Unexpired cover requests still waiting on *cover_employee_id*."""
        now = resolve_now(now)
        await reconcile_if_needed(db, now=now)

        result = await db.execute(
            select(LeaveRequest)
            .join(CoverRequest, CoverRequest.leave_id == LeaveRequest.id)
            .where(
                CoverRequest.cover_employee_id == cover_employee_id,
                CoverRequest.status == CoverRequestStatus.pending,
                CoverRequest.expires_at >= now,
                LeaveRequest.status == LeaveStatus.pending_cover,
            )
            .options(*LeaveService._LEAVE_LOAD)
            .order_by(CoverRequest.expires_at)
            .execution_options(populate_existing=True)
        )
        return [LeaveService.build_response(r) for r in result.scalars().all()]
