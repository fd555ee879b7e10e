"""Outbound decision emails (aiosmtplib).

Sent from a FastAPI background task after the request transaction has
committed. Failures are logged and swallowed; the leave decision stands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from email.mime.text import MIMEText
from typing import Optional

from aiosmtplib import send

from leavedesk.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaveDecisionEmail:
    """Plain snapshot of a decided leave; safe to use after the session closes."""

    approved: bool
    employee_name: str
    employee_email: str
    category: str
    start_date: date
    end_date: date
    total_days: Decimal
    reason: str
    admin_response: Optional[str] = None
    cover_name: Optional[str] = None
    cover_email: Optional[str] = None
    approver_email: Optional[str] = None


def _message(recipient: str, subject: str, body: str) -> MIMEText:
    message = MIMEText(body)
    message["From"] = settings.SMTP_FROM
    message["To"] = recipient
    message["Subject"] = subject
    return message


def build_decision_messages(data: LeaveDecisionEmail) -> list[MIMEText]:
    """Compose the employee, cover and approver copies of a decision."""
    verdict = "approved" if data.approved else "declined"
    period = (
        f"{data.start_date}"
        if data.start_date == data.end_date
        else f"{data.start_date} to {data.end_date}"
    )
    summary = (
        f"Leave type: {data.category}\n"
        f"Period: {period}\n"
        f"Days: {data.total_days}\n"
        f"Reason: {data.reason}\n"
    )
    if data.admin_response:
        summary += f"Admin response: {data.admin_response}\n"

    messages = [
        _message(
            data.employee_email,
            f"Leave Request {verdict.capitalize()}",
            f"Dear {data.employee_name},\n\nYour leave request has been {verdict}.\n\n{summary}",
        )
    ]
    if data.cover_email:
        if data.approved:
            body = (
                f"Dear {data.cover_name},\n\n{data.employee_name}'s leave has been approved. "
                f"You are covering their duties for this period.\n\n{summary}"
            )
        else:
            body = (
                f"Dear {data.cover_name},\n\n{data.employee_name}'s leave has been declined. "
                f"You are no longer required to cover.\n\n{summary}"
            )
        messages.append(_message(data.cover_email, f"Cover Duty: Leave {verdict.capitalize()}", body))
    if data.approver_email:
        messages.append(
            _message(
                data.approver_email,
                f"Leave {verdict.capitalize()} Confirmation",
                f"You {verdict} {data.employee_name}'s leave.\n\n{summary}",
            )
        )
    return messages


async def send_email_async(message: MIMEText) -> None:
    await send(
        message,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER or None,
        password=settings.SMTP_PASSWORD or None,
        use_tls=settings.SMTP_USE_TLS,
    )


async def send_leave_decision_emails(data: LeaveDecisionEmail) -> int:
    """Send every decision email; returns how many were delivered."""
    if not settings.SMTP_HOST:
        logger.info("SMTP_HOST not configured; skipping decision emails")
        return 0

    sent = 0
    for message in build_decision_messages(data):
        try:
            await send_email_async(message)
            sent += 1
        except Exception:
            logger.warning("Failed to send email to %s", message["To"], exc_info=True)
    return sent
