"""Leave balance ledger — entitlement rules and approval-time deduction.

Entitlement per employee per calendar year:

  ==========================================  ======  ======  =======  ========
  Employee state                              annual  casual  medical  official
  ==========================================  ======  ======  =======  ========
  On probation                                0       7       7        0
  Confirmed, no confirmation date recorded    14      7       7        0
  Confirmed, year of confirmation             0       7       7        0
  Confirmed, year after confirmation          Q*      7       7        0
  Any other year                              14      7       7        0
  ==========================================  ======  ======  =======  ========

``Q*`` is pro-rated by the quarter the confirmation fell in: Q1 → 14,
Q2 → 10, Q3 → 7, Q4 → 4.

Only annual and casual leave are decremented. Deductions are clamped at
zero rather than rejected, and always hit the year of the leave's start
date.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import create_audit_entry
from leavedesk.common.constants import LIMITED_CATEGORIES, LeaveCategory
from leavedesk.common.exceptions import NotFoundException
from leavedesk.employees.models import Employee
from leavedesk.leave.models import LeaveBalance, LeaveRequest
from leavedesk.leave.schemas import EntitlementOut, LeaveBalanceOut

logger = logging.getLogger(__name__)

FULL_ANNUAL = Decimal("14")
CASUAL = Decimal("7")
MEDICAL = Decimal("7")
OFFICIAL = Decimal("0")

# Annual days granted the year after confirmation, by confirmation quarter
_QUARTER_ALLOTMENT: dict[int, Decimal] = {
    1: Decimal("14"),
    2: Decimal("10"),
    3: Decimal("7"),
    4: Decimal("4"),
}


@dataclass(frozen=True)
class Entitlement:
    annual: Decimal
    casual: Decimal
    medical: Decimal
    official: Decimal

    def for_category(self, category: LeaveCategory) -> Decimal:
        return getattr(self, category.value)


@dataclass(frozen=True)
class BalanceDeduction:
    year: int
    category: LeaveCategory
    before: Decimal
    after: Decimal

    @property
    def charged(self) -> Decimal:
        """Days actually taken off the balance after clamping."""
        return self.before - self.after


# ── Pure rules ──────────────────────────────────────────────────────

def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


def annual_allotment_for_confirmation(confirmation_date: date) -> Decimal:
    """Annual days for the calendar year following *confirmation_date*."""
    return _QUARTER_ALLOTMENT[quarter_of(confirmation_date)]


def compute_entitlement(
    is_probation: bool,
    year: int,
    confirmation_date: Optional[date] = None,
) -> Entitlement:
    """Apply the entitlement table for one employee and calendar year."""
    if is_probation:
        annual = Decimal("0")
    elif confirmation_date is None:
        annual = FULL_ANNUAL
    elif year == confirmation_date.year:
        annual = Decimal("0")
    elif year == confirmation_date.year + 1:
        annual = annual_allotment_for_confirmation(confirmation_date)
    else:
        annual = FULL_ANNUAL
    return Entitlement(annual=annual, casual=CASUAL, medical=MEDICAL, official=OFFICIAL)


def clamp_deduction(remaining: Decimal, days: Decimal) -> Decimal:
    """Remaining balance after charging *days*, never below zero."""
    return max(Decimal("0"), remaining - days)


# ── Persistence ─────────────────────────────────────────────────────

async def get_or_create_balance(
    db: AsyncSession,
    employee: Employee,
    year: int,
    *,
    for_update: bool = False,
) -> LeaveBalance:
    """Return the ledger row for *employee* / *year*, creating it on first use."""
    query = select(LeaveBalance).where(
        LeaveBalance.employee_id == employee.id,
        LeaveBalance.year == year,
    )
    if for_update:
        query = query.with_for_update()
    balance = (await db.execute(query)).scalars().first()
    if balance is not None:
        return balance

    entitlement = compute_entitlement(
        employee.is_probation, year, employee.date_of_confirmation,
    )
    now = datetime.now(timezone.utc)
    balance = LeaveBalance(
        employee_id=employee.id,
        year=year,
        annual=entitlement.annual,
        casual=entitlement.casual,
        medical=entitlement.medical,
        official=entitlement.official,
        created_at=now,
        updated_at=now,
    )
    db.add(balance)
    await db.flush()
    logger.info("Created %d leave balance for employee %s", year, employee.id)
    return balance


async def deduct_for_leave(
    db: AsyncSession,
    leave: LeaveRequest,
    employee: Employee,
    *,
    actor_id: Optional[uuid.UUID] = None,
) -> Optional[BalanceDeduction]:
    """Charge an approved leave against its start-date year.

    Returns ``None`` when nothing is deducted: unlimited categories and
    unpaid leave are tracked but never decremented.
    """
    if leave.category not in LIMITED_CATEGORIES or not leave.is_paid:
        return None

    year = leave.start_date.year
    balance = await get_or_create_balance(db, employee, year, for_update=True)
    before = Decimal(balance.remaining(leave.category))
    after = clamp_deduction(before, Decimal(leave.total_days))
    balance.set_remaining(leave.category, after)
    balance.updated_at = datetime.now(timezone.utc)
    await db.flush()

    deduction = BalanceDeduction(year=year, category=leave.category, before=before, after=after)
    if deduction.charged < leave.total_days:
        logger.warning(
            "Leave %s exceeds remaining %s balance (%s < %s); clamped to zero",
            leave.id, leave.category.value, before, leave.total_days,
        )

    await create_audit_entry(
        db,
        action="deduct",
        entity_type="leave_balance",
        entity_id=balance.id,
        actor_id=actor_id,
        old_values={leave.category.value: str(before)},
        new_values={
            leave.category.value: str(after),
            "leave_id": str(leave.id),
            "year": year,
        },
    )
    return deduction


async def get_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
) -> LeaveBalanceOut:
    """Balance for *year*, created lazily, with its computed entitlement."""
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundException("Employee", str(employee_id))

    balance = await get_or_create_balance(db, employee, year)
    entitlement = compute_entitlement(
        employee.is_probation, year, employee.date_of_confirmation,
    )

    out = LeaveBalanceOut.model_validate(balance)
    out.is_probation = employee.is_probation
    out.entitlement = EntitlementOut(
        annual=entitlement.annual,
        casual=entitlement.casual,
        medical=entitlement.medical,
        official=entitlement.official,
    )
    return out
