"""
backend/dependencies.py

Reusable FastAPI dependencies for role capability enforcement.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException

try:
    from backend.auth_context import require_actor
    from backend.config import IS_DEV
    from backend.models import ActorContext
    from backend.rbac import has_role_capability
except ModuleNotFoundError:
    from auth_context import require_actor
    from config import IS_DEV
    from models import ActorContext
    from rbac import has_role_capability


def require_capability(capability: str) -> Callable:
    """
    FastAPI dependency factory for role capability authorization.

    Record-level rules (owner-only edits, view variants) are not checked
    here; those go through authz.authorize().

    Usage in routes:
        @router.post("")
        def create(actor: ActorContext = Depends(require_capability("opportunity:create"))):
            ...

    Raises:
        HTTPException(401): If the caller is anonymous
        HTTPException(403): If the caller's role lacks the capability
    """
    def _check_capability(actor: ActorContext = Depends(require_actor)) -> ActorContext:
        if not has_role_capability(actor.role, capability):
            if IS_DEV:
                print(f"[AUTHZ] Capability denied: capability={capability}, "
                      f"actor_id={actor.actor_id}, role={actor.role.value if actor.role else None}")
            raise HTTPException(
                status_code=403,
                detail="Insufficient permissions - your role cannot perform this action",
            )

        if IS_DEV:
            print(f"[AUTHZ] Capability granted: capability={capability}, actor_id={actor.actor_id}")
        return actor

    return _check_capability
