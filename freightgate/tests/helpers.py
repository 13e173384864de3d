"""Record factories for tests (profiles, drivers, companies, freights, subscriptions)."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import insert

from freightgate.core.database import (
    get_db_session,
    profiles,
    drivers,
    companies,
    freights,
    subscription_plans,
    subscriptions,
)
from freightgate.models.plan import UNLIMITED


def create_driver(user_id: Optional[str] = None) -> tuple[str, str]:
    """Create a driver profile; returns (user_id, driver_id)."""
    user_id = user_id or f"user-{uuid4()}"
    driver_id = f"drv-{uuid4()}"
    with get_db_session() as session:
        session.execute(insert(profiles).values(user_id=user_id, role="driver"))
        session.execute(insert(drivers).values(id=driver_id, user_id=user_id, name="Test Driver"))
    return user_id, driver_id


def create_company(user_id: Optional[str] = None) -> tuple[str, str]:
    """Create a company profile; returns (user_id, company_id)."""
    user_id = user_id or f"user-{uuid4()}"
    company_id = f"cmp-{uuid4()}"
    with get_db_session() as session:
        session.execute(insert(profiles).values(user_id=user_id, role="company"))
        session.execute(insert(companies).values(id=company_id, user_id=user_id, name="Test Company"))
    return user_id, company_id


def create_freight(company_id: str) -> str:
    freight_id = f"frt-{uuid4()}"
    with get_db_session() as session:
        session.execute(insert(freights).values(id=freight_id, company_id=company_id))
    return freight_id


def create_plan(
    slug: str,
    *,
    target_role: str,
    price_monthly: Decimal = Decimal("0"),
    contact_view_limit: int = 0,
    freight_limit: int = UNLIMITED,
    trial_days: int = 0,
    is_trial_plan: bool = False,
    is_active: bool = True,
) -> str:
    with get_db_session() as session:
        session.execute(
            insert(subscription_plans).values(
                slug=slug,
                name=slug.title(),
                target_role=target_role,
                price_monthly=price_monthly,
                contact_view_limit=contact_view_limit,
                freight_limit=freight_limit,
                trial_days=trial_days,
                is_trial_plan=is_trial_plan,
                is_active=is_active,
                features=[],
            )
        )
    return slug


def create_subscription(
    user_id: str,
    plan_slug: str,
    *,
    status: str = "active",
    trial_ends_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
) -> int:
    """Insert a subscription row directly (as the billing side would)."""
    values = dict(user_id=user_id, plan_slug=plan_slug, status=status, trial_ends_at=trial_ends_at)
    if created_at is not None:
        values["created_at"] = created_at
    with get_db_session() as session:
        result = session.execute(insert(subscriptions).values(**values))
        return result.inserted_primary_key[0]
