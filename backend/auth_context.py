"""
backend/auth_context.py

Request-scoped identity for FastAPI dependency injection.

Contains:
- verify_token: JWT access token verification
- get_current_actor: ActorContext from a bearer token or the session cookie,
  anonymous when neither is present
- require_actor: same, but 401 for anonymous callers

This module MUST NOT import backend.main to avoid circular dependencies.
"""

from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

try:
    from backend.config import ALGORITHM, IS_DEV, SECRET_KEY, SESSION_COOKIE_NAME
    from backend.db import get_db
    from backend.identity import get_user_by_id, session_is_active
    from backend.models import ActorContext
except ModuleNotFoundError:
    from config import ALGORITHM, IS_DEV, SECRET_KEY, SESSION_COOKIE_NAME
    from db import get_db
    from identity import get_user_by_id, session_is_active
    from models import ActorContext

# Bearer is optional: anonymous callers are allowed through to the policy layer
security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------
# JWT Token Verification
# ---------------------------------------------------------
def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def actor_from_token(token: str) -> ActorContext:
    """
    Resolve a token to an ActorContext. The users table is the source of
    truth for role; the token only names the user and session.

    Raises:
        HTTPException(401): bad token, revoked or expired session, unknown user
    """
    payload = verify_token(token)
    user_id = payload.get("sub")
    session_id = payload.get("session_id")

    if not user_id or not session_id:
        print("[AUTH] Missing sub or session_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    conn = get_db()
    try:
        if not session_is_active(conn, session_id):
            print(f"[AUTH] Inactive session presented: session_id={session_id}")
            raise HTTPException(status_code=401, detail="Session expired or revoked")
        user = get_user_by_id(conn, user_id)
    finally:
        conn.close()

    if user is None:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    actor = ActorContext(actor_id=user.id, role=user.role, email=user.email, session_id=session_id)
    if IS_DEV:
        print(f"[AUTH] Authenticated: actor_id={actor.actor_id}, role={actor.role.value}")
    return actor


def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> ActorContext:
    """
    Current actor, or ActorContext.anonymous() when no credentials were sent.

    The Authorization header wins over the session cookie.
    """
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return ActorContext.anonymous()
    return actor_from_token(token)


def require_actor(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
    """
    Raises:
        HTTPException(401): for anonymous callers
    """
    if not actor.is_authenticated:
        raise HTTPException(status_code=401, detail="Authentication required")
    return actor
