"""Auth Pydantic v2 schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from leavedesk.employees.schemas import EmployeeIdentity


class SessionIssueRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: EmployeeIdentity
