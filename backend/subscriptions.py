"""
backend/subscriptions.py

Subscription state for the mocked Stripe billing flow.

This module centralizes the logic for:
- Fetching a user's subscription from the database
- Starting a (mock) checkout session for a plan
- Applying webhook events to subscription state
- Cancelling at period end

No Stripe SDK - checkout URLs and ids are generated locally.
Source of truth: subscriptions table in SQLite.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

try:
    from backend.config import IS_DEV, STRIPE_PRICE_IDS, SUBSCRIPTION_PERIOD_DAYS
    from backend.db import now_iso
    from backend.models import PlanName, SubscriptionStatus
except ModuleNotFoundError:
    from config import IS_DEV, STRIPE_PRICE_IDS, SUBSCRIPTION_PERIOD_DAYS
    from db import now_iso
    from models import PlanName, SubscriptionStatus


MOCK_CHECKOUT_URL = "https://checkout.stripe.com/pay/{session_id}"


class UnknownPlanError(ValueError):
    """Raised for a plan id with no configured price."""


# ============================================================================
# Subscription Data Model
# ============================================================================

@dataclass
class Subscription:
    """
    Subscription state from database.
    """
    id: int
    user_id: str
    plan_id: str
    status: str  # "pending", "active", "past_due", "canceled"
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    cancel_at_period_end: bool = False
    current_period_end: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.active.value

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.canceled.value


def _period_end() -> str:
    return (datetime.now(timezone.utc) + timedelta(days=SUBSCRIPTION_PERIOD_DAYS)).isoformat()


def _row_to_subscription(row: sqlite3.Row) -> Subscription:
    return Subscription(
        id=row["id"],
        user_id=row["user_id"],
        plan_id=row["plan_id"],
        status=row["status"] or SubscriptionStatus.pending.value,
        stripe_customer_id=row["stripe_customer_id"],
        stripe_subscription_id=row["stripe_subscription_id"],
        checkout_session_id=row["checkout_session_id"],
        cancel_at_period_end=bool(row["cancel_at_period_end"]),
        current_period_end=row["current_period_end"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ============================================================================
# Subscription Queries
# ============================================================================

def get_subscription(conn: sqlite3.Connection, user_id: str) -> Optional[Subscription]:
    """
    Fetch the subscription for a user, or None if they never checked out.
    """
    cur = conn.cursor()
    cur.execute("SELECT * FROM subscriptions WHERE user_id = ? LIMIT 1", (user_id,))
    row = cur.fetchone()
    return _row_to_subscription(row) if row else None


# ============================================================================
# Checkout
# ============================================================================

def create_checkout_session(conn: sqlite3.Connection, user_id: str, plan_id: str) -> Dict[str, str]:
    """
    Start a mock checkout for a plan and record it as pending.

    Returns:
        {"url": ..., "session_id": ...}

    Raises:
        UnknownPlanError: plan_id is not basic, professional or enterprise
    """
    if plan_id not in STRIPE_PRICE_IDS:
        raise UnknownPlanError(plan_id)
    plan = PlanName(plan_id)

    session_id = f"cs_mock_{uuid.uuid4().hex}"
    now = now_iso()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO subscriptions (user_id, plan_id, status, checkout_session_id, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            plan_id = excluded.plan_id,
            checkout_session_id = excluded.checkout_session_id,
            updated_at = excluded.updated_at
        """,
        (user_id, plan.value, SubscriptionStatus.pending.value, session_id, now, now),
    )
    conn.commit()

    if IS_DEV:
        print(f"[STRIPE] Checkout created: user_id={user_id}, plan={plan.value}, "
              f"price={STRIPE_PRICE_IDS[plan.value]}")
    return {"url": MOCK_CHECKOUT_URL.format(session_id=session_id), "session_id": session_id}


# ============================================================================
# Subscription Management Helpers
# ============================================================================

def activate_from_checkout(conn: sqlite3.Connection, session: Dict[str, Any]) -> bool:
    """
    Apply a completed checkout session. The user is found through
    metadata.user_id, falling back to the stored checkout_session_id.
    """
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    cur = conn.cursor()
    if not user_id and session.get("id"):
        cur.execute("SELECT user_id FROM subscriptions WHERE checkout_session_id = ?", (session["id"],))
        row = cur.fetchone()
        user_id = row["user_id"] if row else None
    if not user_id:
        print("[STRIPE] checkout.session.completed without a known user")
        return False

    plan_id = metadata.get("plan_id")
    if plan_id not in STRIPE_PRICE_IDS:
        existing = get_subscription(conn, user_id)
        plan_id = existing.plan_id if existing else PlanName.basic.value

    now = now_iso()
    cur.execute(
        """
        INSERT INTO subscriptions (
            user_id, plan_id, status, stripe_customer_id, stripe_subscription_id,
            checkout_session_id, cancel_at_period_end, current_period_end, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            plan_id = excluded.plan_id,
            status = excluded.status,
            stripe_customer_id = excluded.stripe_customer_id,
            stripe_subscription_id = excluded.stripe_subscription_id,
            cancel_at_period_end = 0,
            current_period_end = excluded.current_period_end,
            updated_at = excluded.updated_at
        """,
        (
            user_id,
            plan_id,
            SubscriptionStatus.active.value,
            session.get("customer"),
            session.get("subscription"),
            session.get("id"),
            _period_end(),
            now,
            now,
        ),
    )
    conn.commit()
    print(f"[STRIPE] Subscription activated: user_id={user_id}, plan={plan_id}")
    return True


def renew_period(conn: sqlite3.Connection, stripe_subscription_id: str) -> bool:
    """Extend the current period after a successful invoice payment."""
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE subscriptions
        SET status = ?, current_period_end = ?, updated_at = ?
        WHERE stripe_subscription_id = ?
        """,
        (SubscriptionStatus.active.value, _period_end(), now_iso(), stripe_subscription_id),
    )
    conn.commit()
    return cur.rowcount > 0


def update_subscription_status(conn: sqlite3.Connection, stripe_subscription_id: str, status: str) -> bool:
    """
    Update subscription status (webhook processing).
    """
    cur = conn.cursor()
    cur.execute(
        "UPDATE subscriptions SET status = ?, updated_at = ? WHERE stripe_subscription_id = ?",
        (SubscriptionStatus(status).value, now_iso(), stripe_subscription_id),
    )
    conn.commit()
    return cur.rowcount > 0


def request_cancellation(conn: sqlite3.Connection, user_id: str) -> Optional[Subscription]:
    """
    Mark the user's subscription to cancel at period end.

    Returns:
        The updated Subscription, or None if there is nothing left to cancel.
    """
    subscription = get_subscription(conn, user_id)
    if subscription is None or subscription.is_canceled:
        return None
    cur = conn.cursor()
    cur.execute(
        "UPDATE subscriptions SET cancel_at_period_end = 1, updated_at = ? WHERE user_id = ?",
        (now_iso(), user_id),
    )
    conn.commit()
    print(f"[STRIPE] Cancellation requested: user_id={user_id}")
    return get_subscription(conn, user_id)


# ============================================================================
# Webhook Dispatch
# ============================================================================

def handle_webhook_event(conn: sqlite3.Connection, event: Dict[str, Any]) -> bool:
    """
    Apply one webhook event.

    Returns:
        True if the event type is handled, False if it was ignored.

    Raises:
        KeyError, TypeError, AttributeError: malformed event payload
    """
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed":
        activate_from_checkout(conn, obj)
        return True
    if event_type == "invoice.payment_succeeded":
        if obj.get("subscription"):
            renew_period(conn, obj["subscription"])
        return True
    if event_type == "invoice.payment_failed":
        if obj.get("subscription"):
            update_subscription_status(conn, obj["subscription"], SubscriptionStatus.past_due.value)
        return True
    if event_type == "customer.subscription.deleted":
        update_subscription_status(conn, obj["id"], SubscriptionStatus.canceled.value)
        print(f"[STRIPE] Subscription canceled: stripe_subscription_id={obj['id']}")
        return True

    print(f"[STRIPE] Unhandled event type: {event_type}")
    return False
