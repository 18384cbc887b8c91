"""Module: auth (schemas)."""

from typing import Optional

from pydantic import BaseModel

from medtrack.core.rbac import Role


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    role: Role = Role.REP
    phone: Optional[str] = None


class IdentityPayload(BaseModel):
    user_id: int
    role: Role
    role_description: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[str] = None
    capabilities: dict[str, dict[str, bool]] = {}
