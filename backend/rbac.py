"""
backend/rbac.py

Role and view-variant tables.

Two fixed mappings:
- ROLE_CAPABILITIES: what each platform role may do regardless of record
  (only deal sponsors may list new opportunities).
- VARIANT_ACTIONS: the action set each view variant offers on an opportunity
  page.

Pure Python logic - no FastAPI imports, no database access.
"""

from enum import Enum
from typing import Dict, List, Optional, Set

try:
    from backend.authz import ViewVariant
    from backend.models import UserRole
except ModuleNotFoundError:
    from authz import ViewVariant
    from models import UserRole


# ============================================================================
# Role Capabilities
# ============================================================================

class Capability(str, Enum):
    """Record-independent capabilities granted by role."""
    OPPORTUNITY_CREATE = "opportunity:create"
    OPPORTUNITY_VIEW = "opportunity:view"
    SUBSCRIPTION_MANAGE = "subscription:manage"


ROLE_CAPABILITIES: Dict[str, Set[str]] = {
    UserRole.deal_sponsor.value: {
        Capability.OPPORTUNITY_CREATE,
        Capability.OPPORTUNITY_VIEW,
        Capability.SUBSCRIPTION_MANAGE,
    },
    UserRole.capital_partner.value: {
        Capability.OPPORTUNITY_VIEW,
        Capability.SUBSCRIPTION_MANAGE,
    },
    UserRole.service_provider.value: {
        Capability.OPPORTUNITY_VIEW,
        Capability.SUBSCRIPTION_MANAGE,
    },
}


def has_role_capability(role: Optional[str], capability: str) -> bool:
    """
    Check if a role grants a capability.

    Returns False for a missing or unknown role.
    """
    if not role:
        return False
    role_value = role.value if isinstance(role, Enum) else str(role).lower()
    return capability in ROLE_CAPABILITIES.get(role_value, set())


def can_create_opportunity(role: Optional[str]) -> bool:
    return has_role_capability(role, Capability.OPPORTUNITY_CREATE)


# ============================================================================
# View Variant Actions
# ============================================================================

class ViewerAction(str, Enum):
    EDIT_OPPORTUNITY = "edit_opportunity"
    VIEW_INQUIRIES = "view_inquiries"
    EXPRESS_INTEREST = "express_interest"
    REQUEST_INFORMATION = "request_information"
    MESSAGE_SPONSOR = "message_sponsor"
    SIGN_IN = "sign_in"


# Ordered: the frontend renders actions in this order
VARIANT_ACTIONS: Dict[ViewVariant, List[ViewerAction]] = {
    ViewVariant.OWNER: [
        ViewerAction.EDIT_OPPORTUNITY,
        ViewerAction.VIEW_INQUIRIES,
    ],
    ViewVariant.INVESTOR: [
        ViewerAction.EXPRESS_INTEREST,
        ViewerAction.REQUEST_INFORMATION,
        ViewerAction.MESSAGE_SPONSOR,
    ],
    ViewVariant.CONNECT: [
        ViewerAction.MESSAGE_SPONSOR,
    ],
    ViewVariant.ANONYMOUS_PROMPT: [
        ViewerAction.SIGN_IN,
    ],
}


def actions_for(variant: ViewVariant) -> List[str]:
    """Action names offered to a viewer of the given variant."""
    return [action.value for action in VARIANT_ACTIONS[ViewVariant(variant)]]
