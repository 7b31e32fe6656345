# backend/db.py
# SQLite connection helper and schema for the Opportunity Exchange backend

import sqlite3
from datetime import datetime, timezone
from pathlib import Path as FsPath

try:
    from backend.config import DATABASE_PATH, IS_DEV
except ModuleNotFoundError:
    from config import DATABASE_PATH, IS_DEV

# Relative paths resolve against backend/
DB_PATH = str(FsPath(__file__).resolve().parent / DATABASE_PATH)


def get_db() -> sqlite3.Connection:
    """
    Create and return a SQLite connection with Row factory.
    Every request handler opens its own connection and closes it.
    """
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def row_to_dict(row) -> dict:
    """
    Safely convert a sqlite3.Row to dict.

    Returns {} for None so callers can use .get() unconditionally.
    """
    if row is None:
        return {}
    return dict(row)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db() -> None:
    """Create tables and indexes (idempotent)."""
    conn = get_db()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            first_name TEXT NOT NULL DEFAULT '',
            last_name TEXT NOT NULL DEFAULT '',
            role TEXT NOT NULL DEFAULT 'capital_partner',
            email_verified BOOLEAN NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email_unique ON users(email)")

    # Access-token sessions (revocable)
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS auth_sessions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            revoked_at TEXT NULL,
            FOREIGN KEY (user_id) REFERENCES users (id)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_auth_sessions_user_id ON auth_sessions(user_id)")

    # One-time codes for email verification and password recovery (stored hashed)
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS auth_codes (
            code_hash TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            purpose TEXT NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            used_at TEXT NULL,
            FOREIGN KEY (user_id) REFERENCES users (id)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_auth_codes_user_purpose ON auth_codes(user_id, purpose)")

    # Opportunities: the full record lives in record_json; filter/sort columns are copies
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS opportunities (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            opportunity_name TEXT NOT NULL,
            status TEXT NOT NULL,
            property_type TEXT NOT NULL,
            investment_strategy TEXT NULL,
            city TEXT NULL,
            state TEXT NULL,
            minimum_investment REAL NULL,
            projected_irr REAL NULL,
            public_listing BOOLEAN NOT NULL DEFAULT 0,
            featured_listing BOOLEAN NOT NULL DEFAULT 0,
            search_text TEXT NOT NULL DEFAULT '',
            record_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (owner_id) REFERENCES users (id)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_opportunities_owner_id ON opportunities(owner_id)")
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_opportunities_public_status "
        "ON opportunities(public_listing, status, featured_listing, created_at)"
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS subscriptions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            plan_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            stripe_customer_id TEXT NULL,
            stripe_subscription_id TEXT NULL,
            checkout_session_id TEXT NULL,
            cancel_at_period_end BOOLEAN NOT NULL DEFAULT 0,
            current_period_end TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (user_id) REFERENCES users (id)
        )
        """
    )
    cur.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_subscriptions_user_unique ON subscriptions(user_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_subscriptions_stripe_id ON subscriptions(stripe_subscription_id)")

    conn.commit()
    conn.close()

    if IS_DEV:
        print(f"[DB] Schema ready: {DB_PATH}")
