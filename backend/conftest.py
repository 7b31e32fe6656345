"""
backend/conftest.py

Shared pytest fixtures.

The test database path is set BEFORE anything imports backend.config, so
every test module shares one throwaway SQLite file.
"""

import os
import tempfile
import uuid
from types import SimpleNamespace

import pytest

TEST_DB_DIR = tempfile.mkdtemp(prefix="opportunity-exchange-tests-")
os.environ["DATABASE_PATH"] = os.path.join(TEST_DB_DIR, "test.db")
os.environ["ENV"] = "dev"

from fastapi.testclient import TestClient  # noqa: E402

from backend.db import get_db, init_db  # noqa: E402
from backend.main import app  # noqa: E402

TABLES = ("opportunities", "subscriptions", "auth_codes", "auth_sessions", "users")
TEST_PASSWORD = "correct-horse-42"


@pytest.fixture
def client():
    """TestClient over a freshly emptied database."""
    init_db()
    conn = get_db()
    for table in TABLES:
        conn.execute(f"DELETE FROM {table}")
    conn.commit()
    conn.close()

    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(client):
    """
    Register, confirm and sign in a user through the public endpoints.

    Returns a namespace with id, email, token and ready-made auth headers.
    The client's cookie jar is cleared afterwards so later requests are only
    authenticated when they pass headers explicitly.
    """
    def _make(role: str = "deal_sponsor", email: str = None):
        email = email or f"{role}-{uuid.uuid4().hex[:8]}@example.com"
        r = client.post(
            "/api/auth/register",
            json={
                "email": email,
                "password": TEST_PASSWORD,
                "first_name": "Test",
                "last_name": role.replace("_", " ").title(),
                "user_role": role,
            },
        )
        assert r.status_code == 200, r.text

        r = client.get("/api/auth/callback", params={"code": r.json()["dev_code"]}, follow_redirects=False)
        assert r.status_code == 302, r.text

        r = client.post("/api/auth/login", json={"email": email, "password": TEST_PASSWORD})
        assert r.status_code == 200, r.text
        client.cookies.clear()

        token = r.json()["access_token"]
        return SimpleNamespace(
            id=r.json()["user"]["id"],
            email=email,
            role=role,
            token=token,
            headers={"Authorization": f"Bearer {token}"},
        )

    return _make


@pytest.fixture
def opportunity_payload():
    """Factory for a complete, valid opportunity payload."""
    def _payload(**overrides):
        payload = {
            "opportunity_name": "Maple Court Apartments",
            "opportunity_description": "48-unit value-add multifamily in a growing submarket",
            "status": "fundraising",
            "property_address": {
                "street": "120 Maple Ave",
                "city": "Austin",
                "state": "tx",
                "zip": "78701",
            },
            "property_type": "multifamily",
            "number_of_units": 48,
            "year_built": 1998,
            "total_project_cost": 12500000,
            "equity_requirement": 4500000,
            "debt_amount": 8000000,
            "debt_type": "bank_loan",
            "loan_to_cost_ratio": 0.64,
            "minimum_investment": 50000,
            "maximum_investment": 500000,
            "target_raise_amount": 4500000,
            "projected_irr": 0.17,
            "projected_total_return_multiple": 1.9,
            "investment_strategy": "value_add",
            "exit_strategy": "sale",
            "public_listing": True,
        }
        payload.update(overrides)
        return payload

    return _payload
