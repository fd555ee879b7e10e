"""Leave ORM models: LeaveRequest, CoverRequest, LeaveBalance, CoverDutyReassignment."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import (
    CoverRequestStatus,
    HalfDayType,
    LeaveCategory,
    LeaveStatus,
    ReassignmentStatus,
)
from leavedesk.database import Base


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_date_order"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_cover_status", "cover_employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    category: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category", create_type=False),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    half_day: Mapped[Optional[HalfDayType]] = mapped_column(
        sa.Enum(HalfDayType, name="half_day_type", create_type=False)
    )
    total_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    supporting_document_url: Mapped[Optional[str]] = mapped_column(sa.String(500))
    # Null only for cover-exempt categories
    cover_employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", create_type=False),
        nullable=False,
        default=LeaveStatus.pending_cover,
        server_default="pending_cover",
    )
    admin_response: Mapped[Optional[str]] = mapped_column(sa.Text)
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    is_cancelled: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE")
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    is_paid: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["leavedesk.employees.models.Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    cover_employee: Mapped[Optional["leavedesk.employees.models.Employee"]] = relationship(
        foreign_keys=[cover_employee_id]
    )
    decider: Mapped[Optional["leavedesk.employees.models.Employee"]] = relationship(
        foreign_keys=[decided_by]
    )
    cover_request: Mapped[Optional[CoverRequest]] = relationship(
        back_populates="leave",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.category} "
            f"{self.start_date}..{self.end_date} {self.status}>"
        )


class CoverRequest(Base):
    __tablename__ = "cover_requests"
    __table_args__ = (
        sa.Index("ix_cover_requests_status_expires", "status", "expires_at"),
        sa.Index("ix_cover_requests_cover_employee", "cover_employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    cover_employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    status: Mapped[CoverRequestStatus] = mapped_column(
        sa.Enum(CoverRequestStatus, name="cover_request_status", create_type=False),
        nullable=False,
        default=CoverRequestStatus.pending,
        server_default="pending",
    )
    # Both set once from the same instant at creation
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    response_message: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Relationships
    leave: Mapped[LeaveRequest] = relationship(back_populates="cover_request")
    cover_employee: Mapped["leavedesk.employees.models.Employee"] = relationship(
        foreign_keys=[cover_employee_id]
    )


class LeaveBalance(Base):
    """Remaining days per category for one employee and calendar year."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "year", name="uq_leave_balance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    annual: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    casual: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    medical: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    official: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["leavedesk.employees.models.Employee"] = relationship(
        back_populates="leave_balances"
    )

    def remaining(self, category: LeaveCategory) -> Decimal:
        return getattr(self, category.value)

    def set_remaining(self, category: LeaveCategory, value: Decimal) -> None:
        setattr(self, category.value, value)


class CoverDutyReassignment(Base):
    """A pending or resolved hand-off of cover duty on an accepted leave."""

    __tablename__ = "cover_duty_reassignments"
    __table_args__ = (
        sa.Index("ix_cover_reassignments_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    original_leave_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    # The cover employee's own leave that triggered the hand-off
    cover_employee_leave_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="SET NULL"),
    )
    original_cover_employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    new_cover_employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reassigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    status: Mapped[ReassignmentStatus] = mapped_column(
        sa.Enum(ReassignmentStatus, name="reassignment_status", create_type=False),
        nullable=False,
        default=ReassignmentStatus.pending,
        server_default="pending",
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    original_leave: Mapped[LeaveRequest] = relationship(
        foreign_keys=[original_leave_id]
    )
    cover_employee_leave: Mapped[Optional[LeaveRequest]] = relationship(
        foreign_keys=[cover_employee_leave_id]
    )
