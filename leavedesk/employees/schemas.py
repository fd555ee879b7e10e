"""Employee Pydantic v2 schemas embedded in leave and notification responses."""


import uuid
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from leavedesk.common.constants import AdminType, UserRole


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    # full_name falls back to first + last when no display name is stored
    display_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("full_name", "display_name"),
    )
    email: str
    department: Optional[str] = None
    designation: Optional[str] = None


class EmployeeIdentity(EmployeeBrief):
    """The authenticated caller, as returned by ``GET /auth/me``."""

    role: UserRole
    admin_type: Optional[AdminType] = None
    is_probation: bool = False
