"""
backend/test_authz.py

Tests for the access policy evaluator and the role/variant tables.

Run:
    pytest backend/test_authz.py -v
"""

import pytest
from fastapi import HTTPException

from backend.authz import (
    Action,
    Decision,
    DenialReason,
    ResourceRef,
    ViewVariant,
    authorize,
    require_allowed,
)
from backend.models import ActorContext, UserRole
from backend.rbac import Capability, actions_for, can_create_opportunity, has_role_capability

OWNER_ID = "sponsor-1"
RESOURCE = ResourceRef(owner_id=OWNER_ID, public_listing=True)

ANONYMOUS = ActorContext.anonymous()
OWNER = ActorContext(actor_id=OWNER_ID, role=UserRole.deal_sponsor)
OTHER_SPONSOR = ActorContext(actor_id="sponsor-2", role=UserRole.deal_sponsor)
INVESTOR = ActorContext(actor_id="investor-1", role=UserRole.capital_partner)
PROVIDER = ActorContext(actor_id="provider-1", role=UserRole.service_provider)


AUTHORIZATION_MATRIX = [
    # actor, action, expected decision
    (ANONYMOUS, Action.EDIT, Decision.denied(DenialReason.NOT_AUTHENTICATED)),
    (OWNER, Action.EDIT, Decision.allowed_as(ViewVariant.OWNER)),
    (OTHER_SPONSOR, Action.EDIT, Decision.denied(DenialReason.NOT_OWNER)),
    (INVESTOR, Action.EDIT, Decision.denied(DenialReason.NOT_OWNER)),
    (PROVIDER, Action.EDIT, Decision.denied(DenialReason.NOT_OWNER)),
    (ANONYMOUS, Action.VIEW, Decision.allowed_as(ViewVariant.ANONYMOUS_PROMPT)),
    (OWNER, Action.VIEW, Decision.allowed_as(ViewVariant.OWNER)),
    (OTHER_SPONSOR, Action.VIEW, Decision.allowed_as(ViewVariant.CONNECT)),
    (INVESTOR, Action.VIEW, Decision.allowed_as(ViewVariant.INVESTOR)),
    (PROVIDER, Action.VIEW, Decision.allowed_as(ViewVariant.CONNECT)),
    (ANONYMOUS, Action.LIST_DOCUMENTS, Decision.denied(DenialReason.NOT_AUTHENTICATED)),
    (OWNER, Action.LIST_DOCUMENTS, Decision.allowed_as(ViewVariant.OWNER)),
    (INVESTOR, Action.LIST_DOCUMENTS, Decision.allowed_as(ViewVariant.INVESTOR)),
    (PROVIDER, Action.LIST_DOCUMENTS, Decision.allowed_as(ViewVariant.CONNECT)),
]


@pytest.mark.parametrize("actor,action,expected", AUTHORIZATION_MATRIX)
def test_authorization_matrix(actor, action, expected):
    assert authorize(actor, RESOURCE, action) == expected


def test_owner_precedence_beats_role():
    # A capital partner who owns the record still gets the owner variant
    owner_investor = ActorContext(actor_id=OWNER_ID, role=UserRole.capital_partner)

    assert authorize(owner_investor, RESOURCE, Action.VIEW).variant == ViewVariant.OWNER
    assert authorize(owner_investor, RESOURCE, Action.EDIT).allowed


def test_authenticated_actor_without_role_gets_connect():
    actor = ActorContext(actor_id="someone")

    assert authorize(actor, RESOURCE, Action.VIEW).variant == ViewVariant.CONNECT


def test_action_accepts_plain_strings():
    assert authorize(OWNER, RESOURCE, "edit") == Decision.allowed_as(ViewVariant.OWNER)


def test_visibility_flag_does_not_change_decision():
    private = ResourceRef(owner_id=OWNER_ID, public_listing=False)

    for actor, action, expected in AUTHORIZATION_MATRIX:
        assert authorize(actor, private, action) == expected


def test_decision_is_allowed_xor_denied():
    for actor, action, _ in AUTHORIZATION_MATRIX:
        decision = authorize(actor, RESOURCE, action)
        assert (decision.variant is None) != (decision.reason is None)
        assert decision.allowed == (decision.variant is not None)


class TestRequireAllowed:

    def test_allowed_returns_variant(self):
        assert require_allowed(Decision.allowed_as(ViewVariant.INVESTOR)) == ViewVariant.INVESTOR

    def test_not_authenticated_maps_to_401(self):
        with pytest.raises(HTTPException) as exc:
            require_allowed(Decision.denied(DenialReason.NOT_AUTHENTICATED))
        assert exc.value.status_code == 401

    def test_not_owner_maps_to_403(self):
        with pytest.raises(HTTPException) as exc:
            require_allowed(Decision.denied(DenialReason.NOT_OWNER), actor=INVESTOR, action="edit")
        assert exc.value.status_code == 403


class TestRoleTables:

    def test_only_sponsors_create(self):
        assert can_create_opportunity(UserRole.deal_sponsor)
        assert can_create_opportunity("deal_sponsor")
        assert not can_create_opportunity(UserRole.capital_partner)
        assert not can_create_opportunity(UserRole.service_provider)
        assert not can_create_opportunity(None)

    @pytest.mark.parametrize("role", list(UserRole))
    def test_every_role_manages_subscription(self, role):
        assert has_role_capability(role, Capability.SUBSCRIPTION_MANAGE)

    def test_unknown_role_has_no_capabilities(self):
        assert not has_role_capability("admin", Capability.OPPORTUNITY_VIEW)

    @pytest.mark.parametrize("variant,expected", [
        (ViewVariant.OWNER, ["edit_opportunity", "view_inquiries"]),
        (ViewVariant.INVESTOR, ["express_interest", "request_information", "message_sponsor"]),
        (ViewVariant.CONNECT, ["message_sponsor"]),
        (ViewVariant.ANONYMOUS_PROMPT, ["sign_in"]),
    ])
    def test_variant_actions(self, variant, expected):
        assert actions_for(variant) == expected

    def test_variant_accepts_wire_value(self):
        assert actions_for("anonymous-prompt") == ["sign_in"]
