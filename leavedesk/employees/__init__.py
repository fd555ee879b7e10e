"""Employee directory — the minimal staff record the leave workflow reads."""

from leavedesk.employees.models import Employee

__all__ = ["Employee"]
