"""
backend/schemas_opportunities.py

Pydantic schemas for investment opportunity records.

Per-field rules live here (types, ranges, closed enums, date parsing).
Cross-field rules and error collection live in backend/validation.py.

Every constrained field carries its constraint inside its Annotated type so
the all-optional OpportunityPatch model keeps the same per-field rules.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, StrictBool, create_model, field_validator

try:
    from backend.models import (
        DebtType,
        ExitStrategy,
        InvestmentStrategy,
        OpportunityStatus,
        PropertyCondition,
        PropertyType,
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


# ========================================================================
# FIELD TYPES
# ========================================================================

# Money: exact decimal, strictly positive, finite; emitted as a JSON number
PositiveAmount = Annotated[
    Decimal,
    Field(gt=0, allow_inf_nan=False),
    PlainSerializer(float, return_type=float, when_used="json"),
]
# Ratios and multiples are JSON numbers only; booleans and numeric strings are refused
Fraction = Annotated[float, Field(ge=0, le=1, allow_inf_nan=False, strict=True)]
ReturnMultiple = Annotated[float, Field(ge=1, allow_inf_nan=False, strict=True)]
PositiveInt = Annotated[int, Field(gt=0)]
YearBuilt = Annotated[int, Field(ge=1800)]
NonEmptyText = Annotated[str, Field(min_length=1)]
RegionCode = Annotated[str, Field(min_length=1, max_length=10)]


# ========================================================================
# OPPORTUNITY SCHEMAS
# ========================================================================

class PropertyAddress(BaseModel):
    """Structured property address. State is a 2-letter code."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    street: str = Field(..., min_length=1, description="Street address")
    city: str = Field(..., min_length=1, description="City")
    state: str = Field(..., min_length=2, max_length=2, description="2-letter state code")
    zip: str = Field(..., min_length=5, description="ZIP code")
    country: str = Field("US", min_length=2, max_length=3, description="Country code (default: US)")

    @field_validator("state", "country")
    @classmethod
    def upper_codes(cls, v: str) -> str:
        return v.upper()


class OpportunityRecord(BaseModel):
    """Normalized investment opportunity, as produced by validate().

    Identity and ownership are not part of the payload: the persistence layer
    assigns the id and the route layer stamps owner_id from the actor.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    # Basic information
    opportunity_name: NonEmptyText
    opportunity_description: Optional[str] = None
    status: OpportunityStatus = OpportunityStatus.draft

    # Property details
    property_address: PropertyAddress
    property_type: PropertyType
    property_subtype: Optional[str] = None
    total_square_feet: Optional[PositiveInt] = None
    number_of_units: Optional[PositiveInt] = None
    year_built: Optional[YearBuilt] = None
    property_condition: Optional[PropertyCondition] = None

    # Financial structure
    total_project_cost: PositiveAmount
    equity_requirement: PositiveAmount
    debt_amount: Optional[PositiveAmount] = None
    debt_type: Optional[DebtType] = None
    loan_to_cost_ratio: Optional[Fraction] = None
    loan_to_value_ratio: Optional[Fraction] = None

    # Investment terms
    minimum_investment: PositiveAmount
    maximum_investment: Optional[PositiveAmount] = None
    target_raise_amount: PositiveAmount
    projected_irr: Optional[Fraction] = None
    projected_total_return_multiple: Optional[ReturnMultiple] = None
    projected_hold_period_months: Optional[PositiveInt] = None
    cash_on_cash_return: Optional[Fraction] = None
    preferred_return_rate: Optional[Fraction] = None

    # Strategy
    investment_strategy: Optional[InvestmentStrategy] = None
    business_plan: Optional[str] = None
    value_creation_strategy: Optional[str] = None
    exit_strategy: Optional[ExitStrategy] = None

    # Timeline
    fundraising_deadline: Optional[datetime] = None
    expected_closing_date: Optional[datetime] = None
    construction_start_date: Optional[datetime] = None
    stabilization_date: Optional[datetime] = None
    projected_exit_date: Optional[datetime] = None

    # Visibility
    public_listing: StrictBool = False
    featured_listing: StrictBool = False
    accredited_only: StrictBool = True
    geographic_restrictions: Optional[List[RegionCode]] = None

    @field_validator("year_built")
    @classmethod
    def year_not_in_future(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v > datetime.now().year:
            raise ValueError("Year built cannot be in the future")
        return v

    @field_validator("fundraising_deadline")
    @classmethod
    def deadline_in_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        # Naive timestamps are read as UTC
        instant = v if v.tzinfo else v.replace(tzinfo=timezone.utc)
        if instant <= datetime.now(timezone.utc):
            raise ValueError("Fundraising deadline must be a future date")
        return v

    @field_validator("geographic_restrictions")
    @classmethod
    def dedupe_regions(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        seen: List[str] = []
        for code in v:
            code = code.upper()
            if code not in seen:
                seen.append(code)
        return seen


def nullable(field_name: str) -> bool:
    """True if the field may be cleared with an explicit null."""
    info = OpportunityRecord.model_fields[field_name]
    return not info.is_required() and info.default is None


class _PatchBase(OpportunityRecord):
    def changes(self) -> Dict[str, Any]:
        """Only the keys the caller actually supplied."""
        return self.model_dump(exclude_unset=True)


# Same per-field rules, every field optional and no defaults injected.
_OPTIONAL_FIELDS = {
    name: (Optional[annotation], None)
    for name, annotation in OpportunityRecord.__annotations__.items()
    if name in OpportunityRecord.model_fields
}

OpportunityPatch = create_model("OpportunityPatch", __base__=_PatchBase, **_OPTIONAL_FIELDS)


class _StoredBase(OpportunityRecord):
    id: str = Field(..., description="Opportunity ID")
    owner_id: str = Field(..., description="Sponsor who created the record")
    created_at: str = Field(..., description="ISO timestamp")
    updated_at: str = Field(..., description="ISO timestamp")

    @field_validator("fundraising_deadline")
    @classmethod
    def deadline_in_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Checked on write only; a stored deadline may since have passed.
        return v


# Drafts are stored incomplete, so payload fields are optional here too.
StoredOpportunity = create_model("StoredOpportunity", __base__=_StoredBase, **_OPTIONAL_FIELDS)
StoredOpportunity.__doc__ = "An opportunity as held by the persistence layer."


# ========================================================================
# ERROR + RESPONSE SCHEMAS
# ========================================================================

class FieldError(BaseModel):
    """A single validation failure tied to one record path."""
    model_config = ConfigDict(frozen=True)

    path: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    details: List[FieldError] = Field(default_factory=list)


class ViewerInfo(BaseModel):
    variant: str = Field(..., description="owner, investor, connect or anonymous-prompt")
    actions: List[str] = Field(default_factory=list, description="Actions offered to this viewer")


class OpportunityDetailResponse(BaseModel):
    opportunity: StoredOpportunity
    viewer: ViewerInfo


class OpportunityMutationResponse(BaseModel):
    message: str
    opportunity: StoredOpportunity


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool = False
    has_prev: bool = False


class OpportunityListResponse(BaseModel):
    opportunities: List[StoredOpportunity] = Field(default_factory=list)
    pagination: Pagination


class DraftRequirements(BaseModel):
    """Fields a draft must carry before it can be saved at all."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    opportunity_name: NonEmptyText
    property_type: PropertyType
