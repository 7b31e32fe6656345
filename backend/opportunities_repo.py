"""
backend/opportunities_repo.py

Persistence for opportunity records (SQLite).

The complete record is stored as JSON in record_json; the filter and sort
columns next to it are copies refreshed on every write. The repository
trusts its input: validation and authorization happen before it is called.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

try:
    from backend.db import now_iso
    from backend.models import OpportunityStatus
    from backend.schemas_opportunities import StoredOpportunity
except ModuleNotFoundError:
    from db import now_iso
    from models import OpportunityStatus
    from schemas_opportunities import StoredOpportunity


# Whitelisted ORDER BY columns
SORT_COLUMNS = {
    "created_at": "created_at",
    "minimum_investment": "minimum_investment",
    "projected_irr": "projected_irr",
    "opportunity_name": "opportunity_name",
}

SEARCH_TEXT_FIELDS = (
    "opportunity_name",
    "opportunity_description",
    "business_plan",
    "value_creation_strategy",
)


@dataclass
class SearchFilters:
    """Public search criteria. None means "no filter"."""
    keyword: Optional[str] = None
    property_type: Optional[str] = None
    investment_strategy: Optional[str] = None
    min_investment: Optional[float] = None
    max_investment: Optional[float] = None
    min_irr: Optional[float] = None
    max_irr: Optional[float] = None
    state: Optional[str] = None
    city: Optional[str] = None
    status: Optional[str] = OpportunityStatus.fundraising.value


# ---------------------------------------------------------
# Serialization
# ---------------------------------------------------------
def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        # Kept as a string so amounts round-trip exactly
        return str(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def _to_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, default=_json_default)


def _from_row(row: sqlite3.Row) -> StoredOpportunity:
    return StoredOpportunity.model_validate(json.loads(row["record_json"]))


def _index_columns(stored: StoredOpportunity) -> Tuple[Any, ...]:
    address = stored.property_address
    search_text = " ".join(
        str(getattr(stored, name)) for name in SEARCH_TEXT_FIELDS if getattr(stored, name)
    ).lower()
    return (
        stored.opportunity_name,
        stored.status.value,
        stored.property_type.value,
        stored.investment_strategy.value if stored.investment_strategy else None,
        address.city if address else None,
        address.state if address else None,
        float(stored.minimum_investment) if stored.minimum_investment is not None else None,
        stored.projected_irr,
        bool(stored.public_listing),
        bool(stored.featured_listing),
        search_text,
    )


# ---------------------------------------------------------
# Reads
# ---------------------------------------------------------
def fetch_by_id(conn: sqlite3.Connection, opportunity_id: str) -> Optional[StoredOpportunity]:
    cur = conn.cursor()
    cur.execute("SELECT record_json FROM opportunities WHERE id = ?", (opportunity_id,))
    row = cur.fetchone()
    return _from_row(row) if row else None


def _contains(text: str) -> str:
    """LIKE pattern matching `text` literally anywhere, case-folded."""
    escaped = text.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _paginate(
    conn: sqlite3.Connection,
    where: str,
    params: List[Any],
    order_by: str,
    page: int,
    limit: int,
) -> Tuple[List[StoredOpportunity], int]:
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) AS total FROM opportunities WHERE {where}", params)
    total = cur.fetchone()["total"]

    offset = (page - 1) * limit
    cur.execute(
        f"SELECT record_json FROM opportunities WHERE {where} ORDER BY {order_by} LIMIT ? OFFSET ?",
        [*params, limit, offset],
    )
    return [_from_row(row) for row in cur.fetchall()], total


def list_visible(
    conn: sqlite3.Connection,
    actor_id: str,
    *,
    page: int = 1,
    limit: int = 12,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[StoredOpportunity], int]:
    """
    The actor's own records (drafts included) plus other sponsors' public,
    non-draft records.

    Returns:
        (page of records, total matching)
    """
    column = SORT_COLUMNS.get(sort_by, "created_at")
    direction = "ASC" if sort_order == "asc" else "DESC"
    where = "(owner_id = ? OR (public_listing = 1 AND status != ?))"
    params: List[Any] = [actor_id, OpportunityStatus.draft.value]
    return _paginate(conn, where, params, f"{column} {direction}, id {direction}", page, limit)


def search_public(
    conn: sqlite3.Connection,
    filters: SearchFilters,
    *,
    page: int = 1,
    limit: int = 12,
) -> Tuple[List[StoredOpportunity], int]:
    """
    Public listings matching every given filter, featured first then newest.
    Drafts never appear.
    """
    clauses = ["public_listing = 1", "status != ?"]
    params: List[Any] = [OpportunityStatus.draft.value]

    if filters.status:
        clauses.append("status = ?")
        params.append(filters.status)
    if filters.keyword:
        clauses.append("search_text LIKE ? ESCAPE '\\'")
        params.append(_contains(filters.keyword))
    if filters.property_type:
        clauses.append("property_type = ?")
        params.append(filters.property_type)
    if filters.investment_strategy:
        clauses.append("investment_strategy = ?")
        params.append(filters.investment_strategy)
    if filters.min_investment is not None:
        clauses.append("minimum_investment >= ?")
        params.append(filters.min_investment)
    if filters.max_investment is not None:
        clauses.append("minimum_investment <= ?")
        params.append(filters.max_investment)
    if filters.min_irr is not None:
        clauses.append("projected_irr >= ?")
        params.append(filters.min_irr)
    if filters.max_irr is not None:
        clauses.append("projected_irr <= ?")
        params.append(filters.max_irr)
    if filters.state:
        clauses.append("state = ?")
        params.append(filters.state.strip().upper())
    if filters.city:
        clauses.append("LOWER(city) LIKE ? ESCAPE '\\'")
        params.append(_contains(filters.city))

    where = " AND ".join(clauses)
    return _paginate(conn, where, params, "featured_listing DESC, created_at DESC, id DESC", page, limit)


# ---------------------------------------------------------
# Writes
# ---------------------------------------------------------
def create(conn: sqlite3.Connection, data: Dict[str, Any], owner_id: str) -> StoredOpportunity:
    """
    Store a new record and return it with its assigned id.

    `data` is a validated payload (OpportunityRecord.model_dump() or a draft's
    changes()); owner_id always comes from the authenticated actor.
    """
    now = now_iso()
    stored = StoredOpportunity.model_validate(
        {**data, "id": str(uuid.uuid4()), "owner_id": owner_id, "created_at": now, "updated_at": now}
    )
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO opportunities (
            opportunity_name, status, property_type, investment_strategy, city, state,
            minimum_investment, projected_irr, public_listing, featured_listing, search_text,
            id, owner_id, record_json, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            *_index_columns(stored),
            stored.id,
            stored.owner_id,
            _to_json(stored.model_dump()),
            stored.created_at,
            stored.updated_at,
        ),
    )
    conn.commit()
    return stored


def update(conn: sqlite3.Connection, existing: StoredOpportunity, changes: Dict[str, Any]) -> StoredOpportunity:
    """
    Apply validated changes to a stored record. id, owner_id and created_at
    are never taken from `changes`.
    """
    immutable = {"id", "owner_id", "created_at", "updated_at"}
    merged = {
        **existing.model_dump(),
        **{k: v for k, v in changes.items() if k not in immutable},
        "updated_at": now_iso(),
    }
    stored = StoredOpportunity.model_validate(merged)
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE opportunities SET
            opportunity_name = ?, status = ?, property_type = ?, investment_strategy = ?,
            city = ?, state = ?, minimum_investment = ?, projected_irr = ?,
            public_listing = ?, featured_listing = ?, search_text = ?,
            record_json = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            *_index_columns(stored),
            _to_json(stored.model_dump()),
            stored.updated_at,
            stored.id,
        ),
    )
    conn.commit()
    return stored


def delete(conn: sqlite3.Connection, opportunity_id: str) -> bool:
    cur = conn.cursor()
    cur.execute("DELETE FROM opportunities WHERE id = ?", (opportunity_id,))
    conn.commit()
    return cur.rowcount > 0
