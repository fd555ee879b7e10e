"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Response / *Out    → response bodies (read)
  - *Brief              → compact embedded representations
  - *Update             → typed internal patches
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leavedesk.common.constants import (
    MAX_LEAVE_SPAN_DAYS,
    CoverRequestStatus,
    HalfDayType,
    LeaveCategory,
    LeaveStatus,
    ReassignmentStatus,
)
from leavedesk.employees.schemas import EmployeeBrief


# ═════════════════════════════════════════════════════════════════════
# Cover Request
# ═════════════════════════════════════════════════════════════════════


class CoverRequestOut(BaseModel):
    """Cover obligation attached to a leave request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    leave_id: uuid.UUID
    cover_employee_id: uuid.UUID
    status: CoverRequestStatus
    created_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None


class CoverResponseRequest(BaseModel):
    """Payload for the cover employee's accept / decline."""

    approve: bool
    reason: Optional[str] = Field(None, max_length=1000)


class CoverResponseOut(BaseModel):
    leave_id: uuid.UUID
    status: LeaveStatus
    cover_status: CoverRequestStatus
    message: str


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    category: LeaveCategory
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    half_day: Optional[HalfDayType] = Field(
        None, description="Only valid for single-day requests"
    )
    total_days: Optional[Decimal] = Field(
        None,
        description="Optional client-computed chargeable days; must match the server's figure",
    )
    reason: str = Field(..., min_length=1, max_length=1000)
    cover_employee_id: Optional[uuid.UUID] = None
    supporting_document_url: Optional[str] = Field(None, max_length=500)
    is_paid: bool = True

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        if (self.end_date - self.start_date).days > MAX_LEAVE_SPAN_DAYS:
            raise ValueError(
                f"Leave request cannot span more than {MAX_LEAVE_SPAN_DAYS} days."
            )
        if self.half_day is not None and self.start_date != self.end_date:
            raise ValueError("A half-day leave must start and end on the same date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    category: LeaveCategory
    start_date: date
    end_date: date
    half_day: Optional[HalfDayType] = None
    total_days: Decimal
    reason: str
    supporting_document_url: Optional[str] = None
    cover_employee_id: Optional[uuid.UUID] = None
    status: LeaveStatus
    admin_response: Optional[str] = None
    decided_by: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    is_cancelled: bool = False
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    is_paid: bool = True
    created_at: datetime
    updated_at: datetime

    # Enriched by service
    employee: Optional[EmployeeBrief] = None
    cover_employee: Optional[EmployeeBrief] = None
    cover_request: Optional[CoverRequestOut] = None


class LeaveRequestUpdate(BaseModel):
    """Closed set of fields a lifecycle transition may change on a leave.

    Applied with :func:`leavedesk.leave.service.apply_patch`; unset fields
    are left untouched.
    """

    status: Optional[LeaveStatus] = None
    cover_employee_id: Optional[uuid.UUID] = None
    admin_response: Optional[str] = None
    decided_by: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    is_cancelled: Optional[bool] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Decide / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveDecisionRequest(BaseModel):
    """Payload for approve / decline by the approving authority."""

    response: Optional[str] = Field(None, max_length=1000)


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    reason: str = Field(..., min_length=1, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class EntitlementOut(BaseModel):
    annual: Decimal
    casual: Decimal
    medical: Decimal
    official: Decimal


class LeaveBalanceOut(BaseModel):
    """Remaining days for one employee / year, with the computed entitlement."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    year: int
    annual: Decimal
    casual: Decimal
    medical: Decimal
    official: Decimal
    is_probation: bool = False
    entitlement: Optional[EntitlementOut] = None


# ═════════════════════════════════════════════════════════════════════
# Availability
# ═════════════════════════════════════════════════════════════════════


class AvailableEmployeeOut(BaseModel):
    """One ranked cover candidate."""

    id: uuid.UUID
    employee_code: str
    name: str
    email: str
    department: Optional[str] = None
    designation: Optional[str] = None
    on_leave: bool
    pending_cover_count: int
    covering_count: int
    workload_score: int
    available: bool


class AvailableEmployeesOut(BaseModel):
    employees: list[AvailableEmployeeOut]
    total: int
    available_count: int


# ═════════════════════════════════════════════════════════════════════
# Reassignment
# ═════════════════════════════════════════════════════════════════════


class ReassignCoverRequest(BaseModel):
    new_cover_employee_id: uuid.UUID


class ReassignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    original_leave_id: uuid.UUID
    cover_employee_leave_id: Optional[uuid.UUID] = None
    original_cover_employee_id: Optional[uuid.UUID] = None
    new_cover_employee_id: Optional[uuid.UUID] = None
    reassigned_by: Optional[uuid.UUID] = None
    status: ReassignmentStatus
    created_at: datetime
    updated_at: datetime

    original_leave: Optional[LeaveRequestOut] = None


# ═════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════


class ReconciliationSummary(BaseModel):
    """Outcome of one reaper run."""

    total_expired: int = 0
    cleaned: int = 0
    notifications_sent: int = 0
    errors: int = 0
    error_details: list[str] = Field(default_factory=list)
