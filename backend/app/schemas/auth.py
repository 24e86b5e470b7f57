"""
PeakSelf Backend — Auth Schemas
=================================

What:  Request bodies and response shapes for /api/auth and the auth guard.

Request fields are optional on purpose: a missing email or password must
produce the API's own 400 "Email and password are required" instead of the
framework's schema error.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Identity
# ══════════════════════════════════════════════════════════════════════════


class CurrentUser(BaseModel):
    """
    What:  The caller identity derived by the auth guard.
    How:   Built from JWT claims (source="jwt") or from the server-side
           session (source="session").
    """
    id: str = Field(description="User ID (JWT subject or session user id)")
    email: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)
    source: str = Field(description="Where the identity came from: jwt or session")


class UserOut(BaseModel):
    id: str
    email: str
    provider: str
    verified: bool
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    email: Optional[str] = Field(default=None, description="Account email (case-insensitive)")
    password: Optional[str] = Field(default=None, description="Plain-text password, hashed with bcrypt")
    name: Optional[str] = Field(default=None, description="Display name")


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class RegisterResponse(BaseModel):
    message: str
    email: str


class LoginResponse(BaseModel):
    message: str
    user: UserOut


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    user: Optional[UserOut] = None


class AdminSection(BaseModel):
    key: str
    label: str


class AdminUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    authSource: str


class AdminHomeResponse(BaseModel):
    message: str
    user: AdminUser
    sections: List[AdminSection]
