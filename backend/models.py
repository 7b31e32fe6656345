from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# Enums
class UserRole(str, Enum):
    deal_sponsor = "deal_sponsor"
    capital_partner = "capital_partner"
    service_provider = "service_provider"

class OpportunityStatus(str, Enum):
    draft = "draft"
    fundraising = "fundraising"
    due_diligence = "due_diligence"
    funded = "funded"
    closed = "closed"
    cancelled = "cancelled"

class PropertyType(str, Enum):
    multifamily = "multifamily"
    retail = "retail"
    office = "office"
    industrial = "industrial"
    land = "land"
    mixed_use = "mixed_use"

class PropertyCondition(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"

class DebtType(str, Enum):
    bank_loan = "bank_loan"
    bridge_loan = "bridge_loan"
    construction_loan = "construction_loan"
    none = "none"

class InvestmentStrategy(str, Enum):
    buy_hold = "buy_hold"
    value_add = "value_add"
    development = "development"
    opportunistic = "opportunistic"

class ExitStrategy(str, Enum):
    sale = "sale"
    refinance = "refinance"
    hold_indefinitely = "hold_indefinitely"

class PlanName(str, Enum):
    basic = "basic"
    professional = "professional"
    enterprise = "enterprise"

class SubscriptionStatus(str, Enum):
    pending = "pending"
    active = "active"
    past_due = "past_due"
    canceled = "canceled"

class AuthCodePurpose(str, Enum):
    signup = "signup"
    recovery = "recovery"

# Models
class User(BaseModel):
    id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: UserRole = UserRole.capital_partner
    email_verified: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "user_metadata": {
                "first_name": self.first_name,
                "last_name": self.last_name,
                "full_name": self.full_name,
                "role": self.role.value,
            },
        }

class ActorContext(BaseModel):
    """
    Who is making the request. Built per request by the identity layer.
    An absent actor_id means anonymous.
    """
    actor_id: Optional[str] = None
    role: Optional[UserRole] = None
    email: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.actor_id)

    @classmethod
    def anonymous(cls) -> "ActorContext":
        return cls()
