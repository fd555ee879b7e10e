"""Common module — shared utilities for LeaveDesk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry
from leavedesk.common.clock import as_utc, resolve_now, utcnow
from leavedesk.common.constants import (
    COVER_EXEMPT_CATEGORIES,
    DEFAULT_PAGE_SIZE,
    LIMITED_CATEGORIES,
    MAX_PAGE_SIZE,
    OPEN_COVER_STATUSES,
    PENDING_LEAVE_STATUSES,
    TERMINAL_LEAVE_STATUSES,
    AdminType,
    CoverRequestStatus,
    HalfDayType,
    LeaveCategory,
    LeaveStatus,
    NotificationType,
    ReassignmentStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ConflictError,
    CoverExpiredException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    build_meta,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Clock
    "as_utc",
    "resolve_now",
    "utcnow",
    # Constants / Enums
    "AdminType",
    "CoverRequestStatus",
    "HalfDayType",
    "LeaveCategory",
    "LeaveStatus",
    "NotificationType",
    "ReassignmentStatus",
    "UserRole",
    "COVER_EXEMPT_CATEGORIES",
    "LIMITED_CATEGORIES",
    "OPEN_COVER_STATUSES",
    "PENDING_LEAVE_STATUSES",
    "TERMINAL_LEAVE_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "CoverExpiredException",
    "ForbiddenException",
    "InvalidStateException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "build_meta",
    "paginate",
]
