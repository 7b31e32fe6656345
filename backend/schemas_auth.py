"""
backend/schemas_auth.py

Pydantic schemas for auth and subscription endpoints.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

try:
    from backend.models import PlanName, UserRole
except ModuleNotFoundError:
    from models import PlanName, UserRole


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email address")
    return v


# ========================================================================
# AUTH SCHEMAS
# ========================================================================

class RegisterRequest(BaseModel):
    """Sign-up form. Password is never echoed back or logged."""
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=128, description="At least 8 characters")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    user_role: UserRole = Field(..., description="deal_sponsor, capital_partner or service_provider")

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)


class EmailRequest(BaseModel):
    """Body for verification resend and forgot-password."""
    email: str = Field(..., max_length=254)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)


class ResetPasswordRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=8, max_length=128, description="At least 8 characters")


class LoginResponse(BaseModel):
    message: str
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


class MessageResponse(BaseModel):
    """Generic acknowledgement. dev_code is only set in dev (no email delivery)."""
    message: str
    dev_code: Optional[str] = None


# ========================================================================
# SUBSCRIPTION SCHEMAS
# ========================================================================

class CheckoutRequest(BaseModel):
    # Plain str so unknown plans get the "Invalid plan ID" message, not a schema error
    plan_id: str = Field(..., min_length=1, max_length=50)


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class SubscriptionResponse(BaseModel):
    plan_id: Optional[PlanName] = None
    status: Optional[str] = None
    is_active: bool = False
    cancel_at_period_end: bool = False
    current_period_end: Optional[str] = None
