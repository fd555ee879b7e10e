"""Employee directory ORM model.

Only the fields the leave workflow reads are modelled here: identity,
role / admin sub-type, and the probation / confirmation data that drives
leave entitlement.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import AdminType, UserRole
from leavedesk.database import Base

if TYPE_CHECKING:
    from leavedesk.auth.models import UserSession
    from leavedesk.leave.models import LeaveBalance, LeaveRequest
    from leavedesk.notifications.models import Notification


class Employee(Base):
    """Employee record — the actor in every leave transition."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )

    # ── Name / contact ──────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(sa.String(255))
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    department: Mapped[Optional[str]] = mapped_column(sa.String(150))
    designation: Mapped[Optional[str]] = mapped_column(sa.String(150))

    # ── Access ──────────────────────────────────────────────────────
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role", create_type=False),
        default=UserRole.employee,
        server_default="employee",
    )
    admin_type: Mapped[Optional[AdminType]] = mapped_column(
        sa.Enum(AdminType, name="admin_type", create_type=False),
    )

    # ── Employment lifecycle ────────────────────────────────────────
    is_probation: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE"),
    )
    date_of_confirmation: Mapped[Optional[date]] = mapped_column(sa.Date)

    # ── Status / Timestamps ─────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    sessions: Mapped[list["UserSession"]] = relationship(
        back_populates="employee",
    )
    leave_balances: Mapped[list["LeaveBalance"]] = relationship(
        back_populates="employee",
    )
    leave_requests: Mapped[list["LeaveRequest"]] = relationship(
        back_populates="employee",
        foreign_keys="LeaveRequest.employee_id",
    )
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="recipient",
        foreign_keys="Notification.recipient_id",
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        """Preferred name for messages and ranking."""
        if self.display_name:
            return self.display_name
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return (
            f"<Employee {self.employee_code} "
            f"{self.first_name} {self.last_name}>"
        )
