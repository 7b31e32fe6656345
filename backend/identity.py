"""
backend/identity.py

Identity collaborator: credentials, sessions and one-time codes.

- Passwords are stored as salted PBKDF2 hashes.
- Access tokens are HS256 JWTs carrying a session_id; revoking the session
  (sign-out, password reset) invalidates the token server-side.
- One-time codes (email verification, password recovery) are stored as
  SHA-256 hashes and can be used once.

Every function takes an open sqlite3 connection and commits its own writes.
Failures the caller can act on raise IdentityError with a user-facing message.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt

try:
    from backend.config import ACCESS_TOKEN_MINUTES, ALGORITHM, AUTH_CODE_MINUTES, IS_DEV, SECRET_KEY
    from backend.db import now_iso, row_to_dict
    from backend.models import AuthCodePurpose, User, UserRole
except ModuleNotFoundError:
    from config import ACCESS_TOKEN_MINUTES, ALGORITHM, AUTH_CODE_MINUTES, IS_DEV, SECRET_KEY
    from db import now_iso, row_to_dict
    from models import AuthCodePurpose, User, UserRole


PASSWORD_ITERATIONS = 200_000

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_NOT_VERIFIED = "Please verify your email address before logging in"
EMAIL_TAKEN = "An account with this email already exists"
INVALID_CODE = "Invalid or expired code"


class IdentityError(Exception):
    """A credential operation failed in a way the caller should report."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --------------------------------------------------------------------
# Hashing utilities
# --------------------------------------------------------------------

def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PASSWORD_ITERATIONS)
    return f"pbkdf2_sha256${PASSWORD_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def hash_token(token: str) -> str:
    """Hash a one-time code for storage (SHA-256)."""
    return hashlib.sha256(token.encode()).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


# --------------------------------------------------------------------
# Users
# --------------------------------------------------------------------

def get_user_by_id(conn: sqlite3.Connection, user_id: str) -> Optional[User]:
    cur = conn.cursor()
    cur.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    row = cur.fetchone()
    return User(**row_to_dict(row)) if row else None


def get_user_by_email(conn: sqlite3.Connection, email: str) -> Optional[User]:
    cur = conn.cursor()
    cur.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),))
    row = cur.fetchone()
    return User(**row_to_dict(row)) if row else None


def sign_up(
    conn: sqlite3.Connection,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: UserRole,
) -> Tuple[User, str]:
    """
    Create an unverified user and issue a signup code.

    Returns:
        (user, signup_code). The code is delivered out of band.

    Raises:
        IdentityError: if the email is already registered
    """
    email_norm = normalize_email(email)
    user = User(
        id=str(uuid.uuid4()),
        email=email_norm,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        email_verified=False,
    )
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO users (id, email, password_hash, first_name, last_name, role, email_verified, created_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (user.id, user.email, user.password_hash, user.first_name, user.last_name,
             user.role.value, user.created_at.isoformat()),
        )
    except sqlite3.IntegrityError:
        conn.rollback()
        print("[AUTH] Registration rejected: email already registered")
        raise IdentityError(EMAIL_TAKEN)
    conn.commit()

    code = issue_code(conn, user.id, AuthCodePurpose.signup)
    print(f"[AUTH] User registered: user_id={user.id}, role={user.role.value}")
    return user, code


# --------------------------------------------------------------------
# Sessions and tokens
# --------------------------------------------------------------------

def create_access_token(user: User, session_id: str, expires_at: datetime) -> str:
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value,
        "session_id": session_id,
        "exp": expires_at,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_session(conn: sqlite3.Connection, user: User) -> Tuple[str, str]:
    """Open a session and return (access_token, session_id)."""
    session_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=ACCESS_TOKEN_MINUTES)
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO auth_sessions (id, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
        (session_id, user.id, now.isoformat(), expires_at.isoformat()),
    )
    conn.commit()
    return create_access_token(user, session_id, expires_at), session_id


def session_is_active(conn: sqlite3.Connection, session_id: str) -> bool:
    cur = conn.cursor()
    cur.execute("SELECT expires_at, revoked_at FROM auth_sessions WHERE id = ?", (session_id,))
    row = cur.fetchone()
    if not row or row["revoked_at"]:
        return False
    return _parse_ts(row["expires_at"]) > datetime.now(timezone.utc)


def sign_in(conn: sqlite3.Connection, email: str, password: str) -> Tuple[User, str]:
    """
    Check credentials and open a session.

    Raises:
        IdentityError: unknown email, wrong password, or unverified email
    """
    user = get_user_by_email(conn, email)
    if user is None or not verify_password(password, user.password_hash):
        print("[AUTH] Login rejected: invalid credentials")
        raise IdentityError(INVALID_CREDENTIALS)
    if not user.email_verified:
        print(f"[AUTH] Login rejected: email not verified, user_id={user.id}")
        raise IdentityError(EMAIL_NOT_VERIFIED)

    token, session_id = create_session(conn, user)
    print(f"[AUTH] Session created: user_id={user.id}, session_id={session_id}")
    return user, token


def sign_out(conn: sqlite3.Connection, session_id: str) -> None:
    """Revoke a session (idempotent)."""
    cur = conn.cursor()
    cur.execute(
        "UPDATE auth_sessions SET revoked_at = ? WHERE id = ? AND revoked_at IS NULL",
        (now_iso(), session_id),
    )
    conn.commit()
    if IS_DEV:
        print(f"[AUTH] Session revoked: session_id={session_id}")


def revoke_all_sessions(conn: sqlite3.Connection, user_id: str) -> int:
    cur = conn.cursor()
    cur.execute(
        "UPDATE auth_sessions SET revoked_at = ? WHERE user_id = ? AND revoked_at IS NULL",
        (now_iso(), user_id),
    )
    conn.commit()
    return cur.rowcount


# --------------------------------------------------------------------
# One-time codes
# --------------------------------------------------------------------

def issue_code(conn: sqlite3.Connection, user_id: str, purpose: AuthCodePurpose) -> str:
    """Issue a fresh one-time code; earlier unused codes of the same purpose are voided."""
    code = secrets.token_urlsafe(24)
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=AUTH_CODE_MINUTES)
    cur = conn.cursor()
    cur.execute(
        "UPDATE auth_codes SET used_at = ? WHERE user_id = ? AND purpose = ? AND used_at IS NULL",
        (now.isoformat(), user_id, purpose.value),
    )
    cur.execute(
        """
        INSERT INTO auth_codes (code_hash, user_id, purpose, created_at, expires_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (hash_token(code), user_id, purpose.value, now.isoformat(), expires_at.isoformat()),
    )
    conn.commit()
    return code


def consume_code(conn: sqlite3.Connection, code: str, purpose: AuthCodePurpose) -> User:
    """
    Mark a code used and return its user.

    Raises:
        IdentityError: unknown, expired, already used, or wrong purpose
    """
    cur = conn.cursor()
    cur.execute(
        "SELECT user_id, purpose, expires_at, used_at FROM auth_codes WHERE code_hash = ?",
        (hash_token(code),),
    )
    row = cur.fetchone()
    if (
        not row
        or row["used_at"]
        or row["purpose"] != purpose.value
        or _parse_ts(row["expires_at"]) <= datetime.now(timezone.utc)
    ):
        print(f"[AUTH] Code rejected: purpose={purpose.value}")
        raise IdentityError(INVALID_CODE)

    cur.execute("UPDATE auth_codes SET used_at = ? WHERE code_hash = ?", (now_iso(), hash_token(code)))
    conn.commit()

    user = get_user_by_id(conn, row["user_id"])
    if user is None:
        raise IdentityError(INVALID_CODE)
    return user


def _mark_verified(conn: sqlite3.Connection, user: User) -> User:
    if not user.email_verified:
        cur = conn.cursor()
        cur.execute("UPDATE users SET email_verified = 1 WHERE id = ?", (user.id,))
        conn.commit()
        user = user.model_copy(update={"email_verified": True})
    return user


def exchange_code(conn: sqlite3.Connection, code: str) -> Tuple[User, str]:
    """
    Exchange a signup code (email confirmation link) for a session.
    The user's email is marked verified.

    Returns:
        (user, access_token)
    """
    user = _mark_verified(conn, consume_code(conn, code, AuthCodePurpose.signup))
    token, session_id = create_session(conn, user)
    print(f"[AUTH] Code exchanged: user_id={user.id}, session_id={session_id}")
    return user, token


def resend_verification(conn: sqlite3.Connection, email: str) -> Optional[str]:
    """Re-issue a signup code. None if the email is unknown or already verified."""
    user = get_user_by_email(conn, email)
    if user is None or user.email_verified:
        return None
    return issue_code(conn, user.id, AuthCodePurpose.signup)


def request_password_reset(conn: sqlite3.Connection, email: str) -> Optional[str]:
    """Issue a recovery code. None if the email is unknown."""
    user = get_user_by_email(conn, email)
    if user is None:
        return None
    code = issue_code(conn, user.id, AuthCodePurpose.recovery)
    print(f"[AUTH] Recovery code issued: user_id={user.id}")
    return code


def reset_password(conn: sqlite3.Connection, code: str, new_password: str) -> User:
    """
    Set a new password using a recovery code and revoke every open session.
    Holding a recovery code proves the email, so it is marked verified too.
    """
    user = consume_code(conn, code, AuthCodePurpose.recovery)
    cur = conn.cursor()
    cur.execute("UPDATE users SET password_hash = ? WHERE id = ?", (hash_password(new_password), user.id))
    conn.commit()
    user = _mark_verified(conn, user)
    revoked = revoke_all_sessions(conn, user.id)
    print(f"[AUTH] Password reset: user_id={user.id}, sessions_revoked={revoked}")
    return user
