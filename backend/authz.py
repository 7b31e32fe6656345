"""
backend/authz.py

Access Policy Evaluator.

Single source of truth for who may view, edit, or list the documents of an
opportunity, and which presentation variant a viewer receives.
All opportunity route checks must go through authorize().

Precedence (first match wins):
    edit            anonymous -> not_authenticated, owner -> owner, else not_owner
    view            owner -> owner, capital_partner -> investor,
                    other authenticated -> connect, anonymous -> anonymous-prompt
    list_documents  authenticated -> as for view, anonymous -> not_authenticated
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from fastapi import HTTPException

try:
    from backend.models import ActorContext, UserRole
except ModuleNotFoundError:
    from models import ActorContext, UserRole


# ============================================================================
# Decision Types
# ============================================================================

class Action(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    LIST_DOCUMENTS = "list_documents"


class ViewVariant(str, Enum):
    """Presentation variant offered to an allowed actor."""
    OWNER = "owner"
    INVESTOR = "investor"
    CONNECT = "connect"
    ANONYMOUS_PROMPT = "anonymous-prompt"


class DenialReason(str, Enum):
    NOT_OWNER = "not_owner"
    NOT_AUTHENTICATED = "not_authenticated"


@dataclass(frozen=True)
class ResourceRef:
    """The only facts about a record the evaluator looks at."""
    owner_id: str
    public_listing: bool = False

    @classmethod
    def of(cls, record: Any) -> "ResourceRef":
        return cls(owner_id=record.owner_id, public_listing=bool(getattr(record, "public_listing", False)))


@dataclass(frozen=True)
class Decision:
    """Either AllowedAs(variant) or Denied(reason), never both."""
    allowed: bool
    variant: Optional[ViewVariant] = None
    reason: Optional[DenialReason] = None

    @classmethod
    def allowed_as(cls, variant: ViewVariant) -> "Decision":
        return cls(allowed=True, variant=variant)

    @classmethod
    def denied(cls, reason: DenialReason) -> "Decision":
        return cls(allowed=False, reason=reason)


# ============================================================================
# Evaluator
# ============================================================================

def _view_variant(actor: ActorContext, resource: ResourceRef) -> ViewVariant:
    if not actor.is_authenticated:
        return ViewVariant.ANONYMOUS_PROMPT
    if actor.actor_id == resource.owner_id:
        return ViewVariant.OWNER
    if actor.role == UserRole.capital_partner:
        return ViewVariant.INVESTOR
    return ViewVariant.CONNECT


def authorize(actor: ActorContext, resource: ResourceRef, action: Action) -> Decision:
    """
    Decide whether `actor` may perform `action` on `resource`.

    Pure Python logic - reads only actor.actor_id, actor.role and
    resource.owner_id. Never touches storage.
    """
    action = Action(action)

    if action == Action.EDIT:
        if not actor.is_authenticated:
            return Decision.denied(DenialReason.NOT_AUTHENTICATED)
        if actor.actor_id == resource.owner_id:
            return Decision.allowed_as(ViewVariant.OWNER)
        return Decision.denied(DenialReason.NOT_OWNER)

    if action == Action.VIEW:
        return Decision.allowed_as(_view_variant(actor, resource))

    if action == Action.LIST_DOCUMENTS:
        if not actor.is_authenticated:
            return Decision.denied(DenialReason.NOT_AUTHENTICATED)
        return Decision.allowed_as(_view_variant(actor, resource))

    raise ValueError(f"Unhandled action: {action}")


# ============================================================================
# HTTP Boundary
# ============================================================================

DENIAL_STATUS = {
    DenialReason.NOT_AUTHENTICATED: (401, "Authentication required"),
    DenialReason.NOT_OWNER: (403, "Only the owner of this opportunity can do that"),
}


def require_allowed(decision: Decision, *, actor: Optional[ActorContext] = None, action: str = "") -> ViewVariant:
    """
    Turn a Decision into a variant or an HTTPException.

    Raises:
        HTTPException(401): not_authenticated
        HTTPException(403): not_owner
    """
    if decision.allowed:
        return decision.variant

    status_code, detail = DENIAL_STATUS[decision.reason]
    actor_id = actor.actor_id if actor else None
    print(f"[AUTHZ] Denied: action={action}, actor_id={actor_id}, reason={decision.reason.value}")
    raise HTTPException(status_code=status_code, detail=detail)
