# backend/config.py
# Environment-aware configuration for the Opportunity Exchange backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT and session configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
ALGORITHM = "HS256"
SESSION_COOKIE_NAME = os.environ.get("SESSION_COOKIE_NAME", "access_token")

# Token lifetimes
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))
AUTH_CODE_MINUTES = int(os.environ.get("AUTH_CODE_MINUTES", "30"))

# Database configuration (relative paths resolve against backend/)
DATABASE_PATH = os.environ.get("DATABASE_PATH", "opportunity_exchange.db")

# Public site URL used for redirects after the auth callback
SITE_URL = os.environ.get("SITE_URL", "http://localhost:3000").rstrip("/")

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())
    else:
        CORS_ORIGINS.append(SITE_URL)

# Mock Stripe price ids per subscription plan
STRIPE_PRICE_IDS = {
    "basic": os.environ.get("STRIPE_BASIC_PRICE_ID", "price_basic_mock"),
    "professional": os.environ.get("STRIPE_PROFESSIONAL_PRICE_ID", "price_professional_mock"),
    "enterprise": os.environ.get("STRIPE_ENTERPRISE_PRICE_ID", "price_enterprise_mock"),
}
SUBSCRIPTION_PERIOD_DAYS = int(os.environ.get("SUBSCRIPTION_PERIOD_DAYS", "30"))

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: SQLite ({DATABASE_PATH})")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
print(f"[CONFIG] Auth code: {AUTH_CODE_MINUTES} minutes")
