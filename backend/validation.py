"""
backend/validation.py

Opportunity Schema Validator.

validate() and validate_partial() take an untyped mapping (usually a parsed
request body) and return either a normalized record or every field-level
error found in one pass. Per-field rules come from the pydantic schemas in
schemas_opportunities.py; cross-field rules run afterwards as a list of named
checks, each reporting its own error.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError

try:
    from backend.models import (
        DebtType,
        ExitStrategy,
        InvestmentStrategy,
        OpportunityStatus,
        PropertyCondition,
        PropertyType,
    )
    from backend.schemas_opportunities import (
        FieldError,
        OpportunityPatch,
        OpportunityRecord,
        nullable,
    )
except ModuleNotFoundError:
    from models import (
        DebtType,
        ExitStrategy,
        InvestmentStrategy,
        OpportunityStatus,
        PropertyCondition,
        PropertyType,
    )
    from schemas_opportunities import (
        FieldError,
        OpportunityPatch,
        OpportunityRecord,
        nullable,
    )


NOT_A_MAPPING = "Opportunity payload must be a JSON object"

# Closed enum per field, cited in error messages
ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "status": OpportunityStatus,
    "property_type": PropertyType,
    "property_condition": PropertyCondition,
    "debt_type": DebtType,
    "investment_strategy": InvestmentStrategy,
    "exit_strategy": ExitStrategy,
}

FIELD_LABELS: Dict[str, str] = {
    "opportunity_name": "Opportunity name",
    "property_address": "Property address",
    "street": "Street address",
    "city": "City",
    "state": "State",
    "zip": "ZIP code",
    "country": "Country",
    "total_project_cost": "Total project cost",
    "equity_requirement": "Equity requirement",
    "minimum_investment": "Minimum investment",
    "maximum_investment": "Maximum investment",
    "target_raise_amount": "Target raise amount",
    "projected_irr": "Projected IRR",
    "projected_total_return_multiple": "Projected return multiple",
    "geographic_restrictions": "Geographic restriction",
}

EXACT_LENGTH: Dict[str, int] = {
    "property_address.state": 2,
}


@dataclass(frozen=True)
class ValidationResult:
    """Either a normalized value or a non-empty ordered tuple of field errors."""
    value: Optional[BaseModel] = None
    errors: Tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


class InvalidInputError(Exception):
    """Carries field errors out of a route; rendered as 400 "Invalid input data"."""

    def __init__(self, errors: Sequence[FieldError]):
        super().__init__(f"{len(errors)} invalid field(s)")
        self.errors = list(errors)


# ============================================================================
# Cross-field rules
# ============================================================================

@dataclass(frozen=True)
class CrossFieldRule:
    """Requires candidate[upper] >= candidate[lower] when both are present."""
    name: str
    lower: str
    upper: str
    message: str

    @property
    def path(self) -> str:
        return self.upper


CROSS_FIELD_RULES: Tuple[CrossFieldRule, ...] = (
    CrossFieldRule(
        name="maximum_covers_minimum",
        lower="minimum_investment",
        upper="maximum_investment",
        message="Maximum investment must be greater than or equal to minimum investment",
    ),
    CrossFieldRule(
        name="target_raise_covers_minimum",
        lower="minimum_investment",
        upper="target_raise_amount",
        message="Target raise amount must be greater than or equal to minimum investment",
    ),
)


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _operand(
    name: str,
    candidate: Mapping[str, Any],
    failed: Sequence[str],
    fallback: Optional[Mapping[str, Any]],
) -> Optional[Decimal]:
    # An operand that failed its own rule is already reported
    if any(path == name or path.startswith(name + ".") for path in failed):
        return None
    if name in candidate:
        return _as_decimal(candidate[name])
    if fallback is not None:
        return _as_decimal(fallback.get(name))
    return None


def _cross_field_errors(
    candidate: Mapping[str, Any],
    field_errors: Sequence[FieldError],
    fallback: Optional[Mapping[str, Any]] = None,
) -> List[FieldError]:
    failed = [e.path for e in field_errors]
    errors: List[FieldError] = []
    for rule in CROSS_FIELD_RULES:
        lower = _operand(rule.lower, candidate, failed, fallback)
        upper = _operand(rule.upper, candidate, failed, fallback)
        if lower is None or upper is None:
            continue
        if upper < lower:
            errors.append(FieldError(path=rule.path, message=rule.message))
    return errors


# ============================================================================
# Pydantic error translation
# ============================================================================

def _label(path: str) -> str:
    parts = [p for p in path.split(".") if p and not p.isdigit()]
    if not parts:
        return "Value"
    last = parts[-1]
    return FIELD_LABELS.get(last, last.replace("_", " ").capitalize())


def _message(path: str, err: Dict[str, Any]) -> str:
    kind = err.get("type", "")
    ctx = err.get("ctx") or {}
    label = _label(path)
    top = path.split(".")[0]

    if kind == "missing":
        return f"{label} is required"
    if kind == "enum" and top in ENUM_FIELDS:
        allowed = ", ".join(member.value for member in ENUM_FIELDS[top])
        return f"Invalid {top}: must be one of {allowed}"
    if kind == "value_error" and "error" in ctx:
        return str(ctx["error"])
    if path in EXACT_LENGTH and kind in ("string_too_short", "string_too_long"):
        return f"{label} must be {EXACT_LENGTH[path]} characters"
    if kind == "string_too_short":
        if ctx.get("min_length") == 1:
            return f"{label} is required"
        return f"{label} must be at least {ctx.get('min_length')} characters"
    if kind == "string_too_long":
        return f"{label} must be at most {ctx.get('max_length')} characters"
    if kind == "greater_than":
        if _as_decimal(ctx.get("gt")) == 0:
            return f"{label} must be positive"
        return f"{label} must be greater than {ctx.get('gt')}"
    if kind == "greater_than_equal":
        return f"{label} must be at least {ctx.get('ge')}"
    if kind == "less_than_equal":
        return f"{label} must be at most {ctx.get('le')}"
    if kind == "finite_number":
        return f"{label} must be a finite number"
    if kind.startswith(("decimal_", "float_")):
        return f"{label} must be a number"
    if kind.startswith("int_"):
        return f"{label} must be a whole number"
    if kind.startswith(("datetime_", "date_")):
        return f"{label} must be a valid date"
    if kind.startswith("bool_"):
        return f"{label} must be true or false"
    if kind in ("model_type", "model_attributes_type", "dict_type"):
        return f"{label} must be an object"
    if kind == "list_type":
        return f"{label} must be a list"
    return err.get("msg", "Invalid value")


def to_field_errors(raw_errors: Iterable[Dict[str, Any]], skip_prefix: Sequence[str] = ()) -> List[FieldError]:
    """Translate pydantic error dicts into FieldErrors, in the order given.

    skip_prefix drops leading location parts such as FastAPI's "body".
    """
    errors: List[FieldError] = []
    for err in raw_errors:
        loc = list(err.get("loc") or ())
        while loc and loc[0] in skip_prefix:
            loc.pop(0)
        path = ".".join(str(part) for part in loc)
        errors.append(FieldError(path=path, message=_message(path, err)))
    return errors


# ============================================================================
# Entry points
# ============================================================================

def validate(candidate: Any) -> ValidationResult:
    """
    Validate a complete opportunity submission.

    Returns a ValidationResult whose value is the normalized OpportunityRecord
    (defaults applied) or whose errors list every failing field and every
    violated cross-field rule.
    """
    if not isinstance(candidate, Mapping):
        return ValidationResult(errors=(FieldError(path="", message=NOT_A_MAPPING),))

    errors: List[FieldError] = []
    record = None
    try:
        record = OpportunityRecord.model_validate(dict(candidate))
    except ValidationError as exc:
        errors.extend(to_field_errors(exc.errors()))

    errors.extend(_cross_field_errors(candidate, errors))

    if errors:
        return ValidationResult(errors=tuple(errors))
    return ValidationResult(value=record)


def validate_partial(candidate: Any, existing: Optional[Mapping[str, Any]] = None) -> ValidationResult:
    """
    Validate a draft or partial update.

    Every field is optional and no defaults are injected. Required fields may
    not be set to null. Cross-field rules run whenever both operands are
    available: from the candidate first, then from `existing` (the stored
    record being updated) when given.
    """
    if not isinstance(candidate, Mapping):
        return ValidationResult(errors=(FieldError(path="", message=NOT_A_MAPPING),))

    errors: List[FieldError] = []
    patch = None
    try:
        patch = OpportunityPatch.model_validate(dict(candidate))
    except ValidationError as exc:
        errors.extend(to_field_errors(exc.errors()))

    for name in OpportunityRecord.model_fields:
        if name in candidate and candidate[name] is None and not nullable(name):
            errors.append(FieldError(path=name, message=f"{_label(name)} cannot be null"))

    errors.extend(_cross_field_errors(candidate, errors, fallback=existing))

    if errors:
        return ValidationResult(errors=tuple(errors))
    return ValidationResult(value=patch)
