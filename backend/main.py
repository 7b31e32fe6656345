# ---------------------------------------------------------
# backend/main.py
# Opportunity Exchange - Real Estate Investment Networking Backend
#
# Run: uvicorn backend.main:app --reload (from repo root)
#
# - FastAPI + SQLite
# - /api/auth/*           : sign-up, sign-in, email confirmation, password reset
# - /api/opportunities/*  : sponsor listings, drafts, public search, detail views
# - /api/stripe/*         : mock checkout, subscription state, billing webhooks
# ---------------------------------------------------------

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import local modules (robust fallback for different run contexts)
try:
    from backend.config import CORS_ORIGINS, IS_DEV, IS_PROD
    from backend.db import init_db
    from backend.routes_auth import router as auth_router
    from backend.routes_opportunities import router as opportunities_router
    from backend.routes_stripe import router as stripe_router
    from backend.schemas_opportunities import ErrorResponse
    from backend.validation import InvalidInputError, to_field_errors
except ModuleNotFoundError:
    from config import CORS_ORIGINS, IS_DEV, IS_PROD
    from db import init_db
    from routes_auth import router as auth_router
    from routes_opportunities import router as opportunities_router
    from routes_stripe import router as stripe_router
    from schemas_opportunities import ErrorResponse
    from validation import InvalidInputError, to_field_errors


INVALID_INPUT = "Invalid input data"

# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="Opportunity Exchange Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

init_db()


# ---------------------------------------------------------
# Error rendering
# ---------------------------------------------------------
def _invalid_input(errors) -> JSONResponse:
    body = ErrorResponse(error=INVALID_INPUT, details=list(errors))
    return JSONResponse(status_code=400, content=body.model_dump())


@app.exception_handler(InvalidInputError)
def handle_invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
    return _invalid_input(exc.errors)


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = to_field_errors(exc.errors(), skip_prefix=("body", "query", "path"))
    if IS_DEV:
        print(f"[API] Request rejected: {request.method} {request.url.path}, {len(errors)} field error(s)")
    return _invalid_input(errors)


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
app.include_router(auth_router)
app.include_router(opportunities_router)
app.include_router(stripe_router)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
