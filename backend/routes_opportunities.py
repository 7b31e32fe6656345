"""
backend/routes_opportunities.py

Investment opportunity endpoints.

Security guarantees:
- Every per-record check goes through authz.authorize()
- owner_id comes from the authenticated actor ONLY (never from the payload)
- Drafts are invisible (404) to everyone but their owner
- Payloads are validated by backend.validation before any write
- Database errors are logged in dev and reported as 500 "Database error"
"""

from __future__ import annotations

import math
import sqlite3
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query
from pydantic import ValidationError

try:
    from backend import opportunities_repo as repo
    from backend.auth_context import get_current_actor, require_actor
    from backend.authz import Action, ResourceRef, ViewVariant, authorize, require_allowed
    from backend.config import IS_DEV
    from backend.db import get_db
    from backend.dependencies import require_capability
    from backend.models import ActorContext, InvestmentStrategy, OpportunityStatus, PropertyType
    from backend.rbac import Capability, actions_for
    from backend.schemas_opportunities import (
        DraftRequirements,
        OpportunityDetailResponse,
        OpportunityListResponse,
        OpportunityMutationResponse,
        Pagination,
        StoredOpportunity,
        ViewerInfo,
    )
    from backend.validation import InvalidInputError, to_field_errors, validate, validate_partial
except ModuleNotFoundError:
    import opportunities_repo as repo
    from auth_context import get_current_actor, require_actor
    from authz import Action, ResourceRef, ViewVariant, authorize, require_allowed
    from config import IS_DEV
    from db import get_db
    from dependencies import require_capability
    from models import ActorContext, InvestmentStrategy, OpportunityStatus, PropertyType
    from rbac import Capability, actions_for
    from schemas_opportunities import (
        DraftRequirements,
        OpportunityDetailResponse,
        OpportunityListResponse,
        OpportunityMutationResponse,
        Pagination,
        StoredOpportunity,
        ViewerInfo,
    )
    from validation import InvalidInputError, to_field_errors, validate, validate_partial


router = APIRouter(
    prefix="/api/opportunities",
    tags=["opportunities"],
)

MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 12

SortField = Literal["created_at", "minimum_investment", "projected_irr", "opportunity_name"]


def _pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def _db_error(action: str, e: sqlite3.Error) -> HTTPException:
    if IS_DEV:
        print(f"[OPPORTUNITIES] DB error on {action}: {e}")
    return HTTPException(status_code=500, detail="Database error")


def _load(conn: sqlite3.Connection, opportunity_id: str) -> StoredOpportunity:
    existing = repo.fetch_by_id(conn, opportunity_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Opportunity not found")
    return existing


def _hide_draft(existing: StoredOpportunity, variant: ViewVariant) -> None:
    # Same response as a missing record so drafts don't leak
    if existing.status == OpportunityStatus.draft and variant != ViewVariant.OWNER:
        raise HTTPException(status_code=404, detail="Opportunity not found")


# ---------------------------------------------------------
# Collection
# ---------------------------------------------------------
@router.get("", response_model=OpportunityListResponse)
def list_opportunities(
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size (max 50)"),
    sort_by: SortField = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    actor: ActorContext = Depends(require_actor),
) -> OpportunityListResponse:
    """
    The caller's own opportunities (drafts included) plus other sponsors'
    public, non-draft opportunities.
    """
    conn = get_db()
    try:
        items, total = repo.list_visible(
            conn, actor.actor_id, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
    except sqlite3.Error as e:
        raise _db_error("list", e)
    finally:
        conn.close()

    return OpportunityListResponse(opportunities=items, pagination=_pagination(page, limit, total))


@router.post("", status_code=201, response_model=OpportunityMutationResponse)
def create_opportunity(
    payload: Any = Body(...),
    actor: ActorContext = Depends(require_capability(Capability.OPPORTUNITY_CREATE)),
) -> OpportunityMutationResponse:
    """
    Create an opportunity owned by the caller.

    Raises:
        HTTPException(401): anonymous caller
        HTTPException(403): caller is not a deal sponsor
        InvalidInputError: payload failed validation (400)
        HTTPException(500): Database error
    """
    result = validate(payload)
    if not result.ok:
        if IS_DEV:
            print(f"[OPPORTUNITIES] Create rejected: {len(result.errors)} field error(s)")
        raise InvalidInputError(result.errors)

    conn = get_db()
    try:
        stored = repo.create(conn, result.value.model_dump(), actor.actor_id)
    except sqlite3.Error as e:
        raise _db_error("create", e)
    finally:
        conn.close()

    print(f"[OPPORTUNITIES] Created id={stored.id}, owner_id={actor.actor_id}, status={stored.status.value}")
    return OpportunityMutationResponse(message="Opportunity created successfully", opportunity=stored)


@router.post("/drafts", status_code=201, response_model=OpportunityMutationResponse)
def save_draft(
    payload: Any = Body(...),
    actor: ActorContext = Depends(require_capability(Capability.OPPORTUNITY_CREATE)),
) -> OpportunityMutationResponse:
    """
    Save an incomplete opportunity as a draft. Only the name and property
    type are required; whatever else is supplied must still be valid.
    """
    result = validate_partial(payload)
    errors = list(result.errors)

    if isinstance(payload, dict):
        try:
            DraftRequirements.model_validate(payload)
        except ValidationError as exc:
            reported = {e.path for e in errors}
            errors.extend(e for e in to_field_errors(exc.errors()) if e.path not in reported)

    if errors:
        raise InvalidInputError(errors)

    data = {**result.value.changes(), "status": OpportunityStatus.draft}
    conn = get_db()
    try:
        stored = repo.create(conn, data, actor.actor_id)
    except sqlite3.Error as e:
        raise _db_error("draft", e)
    finally:
        conn.close()

    if IS_DEV:
        print(f"[OPPORTUNITIES] Draft saved id={stored.id}, owner_id={actor.actor_id}")
    return OpportunityMutationResponse(message="Draft saved successfully", opportunity=stored)


@router.get("/search", response_model=OpportunityListResponse)
def search_opportunities(
    keyword: Optional[str] = Query(None, min_length=1, max_length=200),
    property_type: Optional[PropertyType] = Query(None),
    investment_strategy: Optional[InvestmentStrategy] = Query(None),
    min_investment: Optional[float] = Query(None, ge=0),
    max_investment: Optional[float] = Query(None, ge=0),
    min_irr: Optional[float] = Query(None, ge=0, le=1),
    max_irr: Optional[float] = Query(None, ge=0, le=1),
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    city: Optional[str] = Query(None, min_length=1, max_length=100),
    status: OpportunityStatus = Query(OpportunityStatus.fundraising),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> OpportunityListResponse:
    """
    Public marketplace search. No authentication required; only public,
    non-draft listings are returned, featured first then newest.
    """
    filters = repo.SearchFilters(
        keyword=keyword,
        property_type=property_type.value if property_type else None,
        investment_strategy=investment_strategy.value if investment_strategy else None,
        min_investment=min_investment,
        max_investment=max_investment,
        min_irr=min_irr,
        max_irr=max_irr,
        state=state,
        city=city,
        status=status.value,
    )

    conn = get_db()
    try:
        items, total = repo.search_public(conn, filters, page=page, limit=limit)
    except sqlite3.Error as e:
        raise _db_error("search", e)
    finally:
        conn.close()

    return OpportunityListResponse(opportunities=items, pagination=_pagination(page, limit, total))


# ---------------------------------------------------------
# Single record
# ---------------------------------------------------------
@router.get("/{opportunity_id}", response_model=OpportunityDetailResponse)
def get_opportunity(
    opportunity_id: str = Path(..., min_length=1, max_length=64),
    actor: ActorContext = Depends(get_current_actor),
) -> OpportunityDetailResponse:
    """
    One opportunity plus the viewer variant and the actions it offers.
    Anonymous callers get the anonymous-prompt variant.
    """
    conn = get_db()
    try:
        existing = _load(conn, opportunity_id)
    except sqlite3.Error as e:
        raise _db_error("get", e)
    finally:
        conn.close()

    variant = require_allowed(authorize(actor, ResourceRef.of(existing), Action.VIEW), actor=actor, action="view")
    _hide_draft(existing, variant)

    return OpportunityDetailResponse(
        opportunity=existing,
        viewer=ViewerInfo(variant=variant.value, actions=actions_for(variant)),
    )


@router.put("/{opportunity_id}", response_model=OpportunityMutationResponse)
def update_opportunity(
    opportunity_id: str = Path(..., min_length=1, max_length=64),
    payload: Any = Body(...),
    actor: ActorContext = Depends(get_current_actor),
) -> OpportunityMutationResponse:
    """
    Partial update by the owner. Cross-field rules are checked against the
    stored record merged with the changes.

    Raises:
        HTTPException(401/403): not signed in / not the owner
        HTTPException(404): no such opportunity
        InvalidInputError: changes failed validation (400)
    """
    conn = get_db()
    try:
        existing = _load(conn, opportunity_id)
        require_allowed(authorize(actor, ResourceRef.of(existing), Action.EDIT), actor=actor, action="edit")

        result = validate_partial(payload, existing=existing.model_dump())
        if not result.ok:
            raise InvalidInputError(result.errors)

        stored = repo.update(conn, existing, result.value.changes())
    except sqlite3.Error as e:
        raise _db_error("update", e)
    finally:
        conn.close()

    if IS_DEV:
        print(f"[OPPORTUNITIES] Updated id={stored.id}, actor_id={actor.actor_id}")
    return OpportunityMutationResponse(message="Opportunity updated successfully", opportunity=stored)


@router.delete("/{opportunity_id}")
def delete_opportunity(
    opportunity_id: str = Path(..., min_length=1, max_length=64),
    actor: ActorContext = Depends(get_current_actor),
) -> Dict[str, str]:
    """Delete an opportunity. Owner only."""
    conn = get_db()
    try:
        existing = _load(conn, opportunity_id)
        require_allowed(authorize(actor, ResourceRef.of(existing), Action.EDIT), actor=actor, action="delete")
        repo.delete(conn, existing.id)
    except sqlite3.Error as e:
        raise _db_error("delete", e)
    finally:
        conn.close()

    print(f"[OPPORTUNITIES] Deleted id={opportunity_id}, actor_id={actor.actor_id}")
    return {"message": "Opportunity deleted successfully"}


@router.get("/{opportunity_id}/documents")
def list_documents(
    opportunity_id: str = Path(..., min_length=1, max_length=64),
    actor: ActorContext = Depends(get_current_actor),
) -> Dict[str, Any]:
    """
    Due-diligence documents for an opportunity. Signed-in users only.
    Document storage is not built yet, so the list is always empty.
    """
    conn = get_db()
    try:
        existing = _load(conn, opportunity_id)
    except sqlite3.Error as e:
        raise _db_error("documents", e)
    finally:
        conn.close()

    variant = require_allowed(
        authorize(actor, ResourceRef.of(existing), Action.LIST_DOCUMENTS), actor=actor, action="list_documents"
    )
    _hide_draft(existing, variant)

    return {
        "opportunity_id": existing.id,
        "viewer": variant.value,
        "documents": [],
        "message": "Document sharing is coming soon",
    }
