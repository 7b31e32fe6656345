"""
backend/routes_auth.py

Credential exchange endpoints: sign-up, sign-in, sign-out, the email
confirmation callback, verification resend and password reset.

Security guarantees:
- Passwords, tokens and one-time codes are never logged
- Unknown emails get the same response as known ones on resend/forgot
- The callback only redirects to local paths
- In dev, issued codes are returned as dev_code (there is no email delivery)
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import RedirectResponse

try:
    from backend.auth_context import get_current_actor, require_actor
    from backend.config import ACCESS_TOKEN_MINUTES, IS_DEV, SESSION_COOKIE_NAME, SITE_URL
    from backend.db import get_db
    from backend.identity import (
        IdentityError,
        exchange_code,
        get_user_by_id,
        request_password_reset,
        resend_verification,
        reset_password,
        sign_in,
        sign_out,
        sign_up,
    )
    from backend.models import ActorContext
    from backend.schemas_auth import (
        EmailRequest,
        LoginRequest,
        LoginResponse,
        MessageResponse,
        RegisterRequest,
        ResetPasswordRequest,
    )
except ModuleNotFoundError:
    from auth_context import get_current_actor, require_actor
    from config import ACCESS_TOKEN_MINUTES, IS_DEV, SESSION_COOKIE_NAME, SITE_URL
    from db import get_db
    from identity import (
        IdentityError,
        exchange_code,
        get_user_by_id,
        request_password_reset,
        resend_verification,
        reset_password,
        sign_in,
        sign_out,
        sign_up,
    )
    from models import ActorContext
    from schemas_auth import (
        EmailRequest,
        LoginRequest,
        LoginResponse,
        MessageResponse,
        RegisterRequest,
        ResetPasswordRequest,
    )


router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)

DEFAULT_NEXT = "/dashboard"
LOGIN_ERROR_PATH = "/auth/login?error=" + quote("Authentication failed")


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=ACCESS_TOKEN_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=not IS_DEV,
    )


def _dev_code(code: Optional[str]) -> Optional[str]:
    return code if IS_DEV else None


def safe_next(next_path: Optional[str]) -> str:
    """Local absolute path or the default; never an off-site URL."""
    if not next_path or not next_path.startswith("/") or next_path.startswith("//") or "\\" in next_path:
        return DEFAULT_NEXT
    return next_path


@router.post("/register", response_model=MessageResponse)
def register(req: RegisterRequest) -> MessageResponse:
    """
    Create an unverified account and issue an email confirmation code.

    Raises:
        HTTPException(400): email already registered
        HTTPException(500): Database error
    """
    conn = get_db()
    try:
        _, code = sign_up(
            conn,
            email=req.email,
            password=req.password,
            first_name=req.first_name,
            last_name=req.last_name,
            role=req.user_role,
        )
    except IdentityError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except sqlite3.Error as e:
        if IS_DEV:
            print(f"[AUTH] DB error on register: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()

    return MessageResponse(
        message="Registration successful. Please check your email to verify your account.",
        dev_code=_dev_code(code),
    )


@router.post("/login", response_model=LoginResponse)
def login(req: LoginRequest, response: Response) -> LoginResponse:
    """
    Exchange email + password for an access token. The token is returned in
    the body and also set as the session cookie.

    Raises:
        HTTPException(400): bad credentials or unverified email
    """
    conn = get_db()
    try:
        user, token = sign_in(conn, req.email, req.password)
    except IdentityError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except sqlite3.Error as e:
        if IS_DEV:
            print(f"[AUTH] DB error on login: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()

    _set_session_cookie(response, token)
    return LoginResponse(message="Login successful", access_token=token, user=user.public_dict())


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, actor: ActorContext = Depends(require_actor)) -> MessageResponse:
    """Revoke the caller's session (idempotent)."""
    conn = get_db()
    try:
        sign_out(conn, actor.session_id)
    finally:
        conn.close()

    response.delete_cookie(SESSION_COOKIE_NAME)
    return MessageResponse(message="Logged out successfully")


@router.get("/callback")
def auth_callback(
    code: Optional[str] = Query(None, max_length=200),
    next: Optional[str] = Query(None, max_length=500),
) -> RedirectResponse:
    """
    Email confirmation link target: exchange the code for a session and
    redirect into the app. Any failure lands on the login page.
    """
    if not code:
        return RedirectResponse(f"{SITE_URL}{LOGIN_ERROR_PATH}", status_code=302)

    conn = get_db()
    try:
        _, token = exchange_code(conn, code)
    except IdentityError:
        return RedirectResponse(f"{SITE_URL}{LOGIN_ERROR_PATH}", status_code=302)
    finally:
        conn.close()

    redirect = RedirectResponse(f"{SITE_URL}{safe_next(next)}", status_code=302)
    _set_session_cookie(redirect, token)
    return redirect


@router.post("/verify-email", response_model=MessageResponse)
def resend_verification_email(req: EmailRequest) -> MessageResponse:
    """Re-issue the confirmation code. Same response whether or not the email exists."""
    conn = get_db()
    try:
        code = resend_verification(conn, req.email)
    finally:
        conn.close()

    return MessageResponse(
        message="If that account needs verification, a new confirmation email has been sent.",
        dev_code=_dev_code(code),
    )


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(req: EmailRequest) -> MessageResponse:
    """Issue a recovery code. Same response whether or not the email exists."""
    conn = get_db()
    try:
        code = request_password_reset(conn, req.email)
    finally:
        conn.close()

    return MessageResponse(
        message="If an account exists for that email, a password reset link has been sent.",
        dev_code=_dev_code(code),
    )


@router.post("/reset-password", response_model=MessageResponse)
def reset_password_route(req: ResetPasswordRequest) -> MessageResponse:
    """
    Set a new password with a recovery code. All open sessions are revoked.

    Raises:
        HTTPException(400): invalid, expired or used code
    """
    conn = get_db()
    try:
        reset_password(conn, req.code, req.password)
    except IdentityError as e:
        raise HTTPException(status_code=400, detail=e.message)
    finally:
        conn.close()

    return MessageResponse(message="Password updated successfully. Please sign in again.")


@router.get("/me")
def me(actor: ActorContext = Depends(get_current_actor)) -> Dict[str, Any]:
    """The current actor; anonymous callers get authenticated=false."""
    if not actor.is_authenticated:
        return {"authenticated": False, "actor_id": None, "role": None, "user": None}

    conn = get_db()
    try:
        user = get_user_by_id(conn, actor.actor_id)
    finally:
        conn.close()

    return {
        "authenticated": True,
        "actor_id": actor.actor_id,
        "role": actor.role.value,
        "user": user.public_dict() if user else None,
    }
