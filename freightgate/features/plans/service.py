"""
freightgate/features/plans/service.py

Plan catalog service.

Handles:
- Plan seeding (driver-free, driver-premium, company-trial, company-business,
  company-enterprise)
- Plan lookup and listing per role
- Default plan resolution per role
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging
from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from freightgate.core.config import settings
from freightgate.core.database import get_db_session, subscription_plans
from freightgate.core.errors import LookupFailed
from freightgate.models.plan import Plan, Role, UNLIMITED
from freightgate.models.subscription import utc_now


logger = logging.getLogger("freightgate.plans")

# Default catalog
DEFAULT_PLANS: Dict[str, Dict[str, Any]] = {
    "driver-free": {
        "name": "Free",
        "target_role": Role.DRIVER,
        "price_monthly": Decimal("0"),
        "contact_view_limit": 5,
        "features": [
            "Browse all public freights",
            "Show interest in freights",
            "Complete basic profile",
            "5 contact views per month",
        ],
    },
    "driver-premium": {
        "name": "Premium",
        "target_role": Role.DRIVER,
        "price_monthly": Decimal("29.90"),
        "contact_view_limit": UNLIMITED,
        "features": [
            "Unlimited contact views",
            "Direct WhatsApp access to companies",
            "Priority notifications for new freights",
            "Full contact history",
        ],
    },
    "company-trial": {
        "name": "Trial",
        "target_role": Role.COMPANY,
        "price_monthly": Decimal("0"),
        "trial_days": 30,
        "is_trial_plan": True,
        "features": [
            "Unlimited freight publishing during the trial",
            "Collaborator management",
            "Basic dashboard",
        ],
    },
    "company-business": {
        "name": "Business",
        "target_role": Role.COMPANY,
        "price_monthly": Decimal("297.00"),
        "features": [
            "Everything in Trial, with no time limit",
            "Unlimited collaborators",
            "Basic performance reports",
        ],
    },
    "company-enterprise": {
        "name": "Enterprise",
        "target_role": Role.COMPANY,
        "price_monthly": Decimal("597.00"),
        "features": [
            "Everything in Business",
            "API integration",
            "Advanced reports and analytics",
            "Dedicated account manager",
        ],
    },
}


def _row_to_plan(row) -> Plan:
    return Plan(
        slug=row.slug,
        name=row.name,
        target_role=Role(row.target_role),
        price_monthly=row.price_monthly if row.price_monthly is not None else Decimal("0"),
        contact_view_limit=row.contact_view_limit,
        freight_limit=row.freight_limit,
        trial_days=row.trial_days,
        is_trial_plan=bool(row.is_trial_plan),
        is_active=bool(row.is_active),
        features=list(row.features or []),
        created_at=row.created_at,
    )


def seed_plans() -> None:
    """
    Seed default plans into database (idempotent).

    Existing plans are left untouched so catalog edits made in the database
    survive restarts. Safe to call concurrently from several instances.
    """
    now = utc_now()

    for slug, config in DEFAULT_PLANS.items():
        with get_db_session() as session:
            existing = session.execute(
                select(subscription_plans.c.slug).where(subscription_plans.c.slug == slug)
            ).first()
            if existing:
                continue
            try:
                session.execute(
                    insert(subscription_plans).values(
                        slug=slug,
                        name=config["name"],
                        target_role=config["target_role"].value,
                        price_monthly=config.get("price_monthly", Decimal("0")),
                        contact_view_limit=config.get("contact_view_limit", 0),
                        freight_limit=config.get("freight_limit", UNLIMITED),
                        trial_days=config.get("trial_days", 0),
                        is_trial_plan=config.get("is_trial_plan", False),
                        is_active=config.get("is_active", True),
                        features=config.get("features", []),
                        created_at=now,
                    )
                )
                session.flush()
            except IntegrityError:
                # Another instance seeded it first
                session.rollback()
                continue
        logger.info("[plans] seeded plan", extra={"plan": slug})


def get_plan(slug: str) -> Optional[Plan]:
    """Get plan by slug."""
    try:
        with get_db_session() as session:
            row = session.execute(
                select(subscription_plans).where(subscription_plans.c.slug == slug)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"plan lookup failed: {exc}") from exc

    return _row_to_plan(row) if row else None


def list_plans(role: Optional[Role] = None, active_only: bool = True) -> List[Plan]:
    """
    List catalog plans, cheapest first.

    Args:
        role: Only plans targeting this role (None = all roles)
        active_only: Hide plans no longer offered
    """
    query = select(subscription_plans)
    if role is not None:
        query = query.where(subscription_plans.c.target_role == Role(role).value)
    if active_only:
        query = query.where(subscription_plans.c.is_active.is_(True))
    query = query.order_by(subscription_plans.c.price_monthly, subscription_plans.c.slug)

    try:
        with get_db_session() as session:
            rows = session.execute(query).all()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"plan listing failed: {exc}") from exc

    return [_row_to_plan(row) for row in rows]


def get_default_plan(role: Role) -> Optional[Plan]:
    """Entry plan for a role (free tier for drivers, trial for companies)."""
    role = Role(role)
    if role == Role.DRIVER:
        slug = settings.DEFAULT_DRIVER_PLAN
    elif role == Role.COMPANY:
        slug = settings.DEFAULT_COMPANY_PLAN
    else:
        return None
    plan = get_plan(slug)
    if plan is None or not plan.is_active:
        return None
    return plan
