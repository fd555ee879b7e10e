"""Enums and constants for LeaveDesk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    admin = "admin"


class AdminType(str, enum.Enum):
    hr_head = "hr_head"
    managing_director = "managing_director"
    reserved = "reserved"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveCategory(str, enum.Enum):
    annual = "annual"
    casual = "casual"
    medical = "medical"
    official = "official"


class LeaveStatus(str, enum.Enum):
    pending_cover = "pending_cover"
    pending_admin = "pending_admin"
    approved = "approved"
    declined = "declined"
    cancelled = "cancelled"


class HalfDayType(str, enum.Enum):
    first_half = "first_half"
    second_half = "second_half"


class CoverRequestStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


class ReassignmentStatus(str, enum.Enum):
    pending = "pending"
    reassigned = "reassigned"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    cover_request = "cover_request"
    cover_accepted = "cover_accepted"
    cover_declined = "cover_declined"
    leave_approved = "leave_approved"
    leave_declined = "leave_declined"
    leave_cancelled = "leave_cancelled"
    leave_expired = "leave_expired"
    cover_reassigned = "cover_reassigned"
    system_alert = "system_alert"


# ── Lifecycle groupings ─────────────────────────────────────────────

# Leave categories that never need a cover employee
COVER_EXEMPT_CATEGORIES: frozenset[LeaveCategory] = frozenset({LeaveCategory.official})

# Categories decremented on approval; the rest are tracked, not capped
LIMITED_CATEGORIES: frozenset[LeaveCategory] = frozenset(
    {LeaveCategory.annual, LeaveCategory.casual}
)

PENDING_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.pending_cover, LeaveStatus.pending_admin}
)

TERMINAL_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.approved, LeaveStatus.declined, LeaveStatus.cancelled}
)

# Live leaves: they hold their owner's calendar and any cover duty
OPEN_COVER_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.pending_cover, LeaveStatus.pending_admin, LeaveStatus.approved}
)

# ── Misc constants ──────────────────────────────────────────────────

HALF_DAY = Decimal("0.5")
MAX_LEAVE_SPAN_DAYS = 365
# Per-request day caps
MAX_DAYS_PER_REQUEST: dict[LeaveCategory, int] = {
    LeaveCategory.annual: 3,
    LeaveCategory.official: 3,
}
# How many days before today a leave may start
BACKDATE_LIMIT_DAYS: dict[LeaveCategory, int] = {
    LeaveCategory.annual: 7,
    LeaveCategory.casual: 2,
    LeaveCategory.medical: 4,
    LeaveCategory.official: 3,
}
# Official leave must also start no later than this many days ahead
OFFICIAL_LEAD_DAYS = 3
# Workload scoring for cover candidates
COVERING_DUTY_WEIGHT = 2
ON_LEAVE_PENALTY = 10
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
