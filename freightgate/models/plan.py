"""
freightgate/models/plan.py

Plan model for the subscription catalog.

Plans are capability tiers per role (driver-free, driver-premium,
company-trial, company-business, company-enterprise).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

# Stored value for "no cap" on contact views and freights
UNLIMITED = -1


class Role(str, Enum):
    DRIVER = "driver"
    COMPANY = "company"
    ADMIN = "admin"


class Plan(BaseModel):
    """
    Plan represents a capability tier, taken as a value snapshot at decision time.

    Limits use UNLIMITED (-1) for "no cap". Trial-ness is a property of the
    plan (is_trial_plan), never inferred from the slug.
    """
    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    target_role: Role
    price_monthly: Decimal = Field(default=Decimal("0"), ge=0)
    contact_view_limit: int = Field(default=0, ge=UNLIMITED)
    freight_limit: int = Field(default=UNLIMITED, ge=UNLIMITED)
    trial_days: int = Field(default=0, ge=0)
    is_trial_plan: bool = False
    is_active: bool = True
    features: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.price_monthly > 0
