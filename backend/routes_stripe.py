"""
backend/routes_stripe.py

Subscription endpoints backed by a mocked Stripe flow.

- create-checkout returns a local checkout URL and records a pending subscription
- webhook applies checkout/invoice/subscription events to the subscriptions table
- No signature verification: events come from the mock only
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

try:
    from backend.config import IS_DEV
    from backend.db import get_db
    from backend.dependencies import require_capability
    from backend.models import ActorContext
    from backend.rbac import Capability
    from backend.schemas_auth import CheckoutRequest, CheckoutResponse, SubscriptionResponse
    from backend.subscriptions import (
        UnknownPlanError,
        create_checkout_session,
        get_subscription,
        handle_webhook_event,
        request_cancellation,
    )
except ModuleNotFoundError:
    from config import IS_DEV
    from db import get_db
    from dependencies import require_capability
    from models import ActorContext
    from rbac import Capability
    from schemas_auth import CheckoutRequest, CheckoutResponse, SubscriptionResponse
    from subscriptions import (
        UnknownPlanError,
        create_checkout_session,
        get_subscription,
        handle_webhook_event,
        request_cancellation,
    )


router = APIRouter(
    prefix="/api/stripe",
    tags=["stripe"],
)

can_manage_subscription = require_capability(Capability.SUBSCRIPTION_MANAGE)


@router.post("/create-checkout", response_model=CheckoutResponse)
def create_checkout(req: CheckoutRequest, actor: ActorContext = Depends(can_manage_subscription)) -> CheckoutResponse:
    """
    Start checkout for a plan.

    Raises:
        HTTPException(400): Invalid plan ID
        HTTPException(401): anonymous caller
        HTTPException(403): role cannot manage subscriptions
    """
    conn = get_db()
    try:
        session = create_checkout_session(conn, actor.actor_id, req.plan_id)
    except UnknownPlanError:
        raise HTTPException(status_code=400, detail="Invalid plan ID")
    except sqlite3.Error as e:
        if IS_DEV:
            print(f"[STRIPE] DB error on checkout: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    finally:
        conn.close()

    return CheckoutResponse(**session)


@router.get("/subscription", response_model=SubscriptionResponse)
def current_subscription(actor: ActorContext = Depends(can_manage_subscription)) -> SubscriptionResponse:
    """The caller's subscription; all fields empty if they never checked out."""
    conn = get_db()
    try:
        subscription = get_subscription(conn, actor.actor_id)
    finally:
        conn.close()

    if subscription is None:
        return SubscriptionResponse()
    return SubscriptionResponse(
        plan_id=subscription.plan_id,
        status=subscription.status,
        is_active=subscription.is_active,
        cancel_at_period_end=subscription.cancel_at_period_end,
        current_period_end=subscription.current_period_end,
    )


@router.post("/cancel-subscription")
def cancel_subscription(actor: ActorContext = Depends(can_manage_subscription)) -> Dict[str, Any]:
    """
    Cancel at the end of the current period.

    Raises:
        HTTPException(404): no subscription
    """
    conn = get_db()
    try:
        subscription = request_cancellation(conn, actor.actor_id)
    finally:
        conn.close()

    if subscription is None:
        raise HTTPException(status_code=404, detail="No active subscription found")

    return {
        "message": "Subscription will be canceled at the end of the current billing period",
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "current_period_end": subscription.current_period_end,
    }


@router.post("/webhook")
def stripe_webhook(event: Dict[str, Any] = Body(...)) -> Dict[str, bool]:
    """
    Receive a billing event. Unknown event types are acknowledged and logged.

    Raises:
        HTTPException(500): malformed event or storage failure
    """
    conn = get_db()
    try:
        handled = handle_webhook_event(conn, event)
    except (AttributeError, KeyError, TypeError, ValueError, sqlite3.Error) as e:
        print(f"[STRIPE] Webhook processing failed: {type(e).__name__}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    finally:
        conn.close()

    if IS_DEV:
        print(f"[STRIPE] Webhook received: type={event.get('type')}, handled={handled}")
    return {"received": True}
