"""
freightgate/features/subscriptions/service.py

Subscription store.

Handles:
- Current (live) subscription lookup per user
- Starting a subscription on signup / plan selection
- Status transitions (cancel, lapsed-trial expiry)

Invariant: at most one trialing/active subscription per user. The partial
unique index uq_subscriptions_user_live enforces it at the storage layer.
"""

from datetime import datetime, timedelta
from typing import Optional
import logging
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from freightgate.core.database import get_db_session, subscriptions
from freightgate.core.errors import ConflictError, LookupFailed, NotFoundError, ValidationError
from freightgate.features.directory.service import get_role
from freightgate.features.plans.service import get_default_plan, get_plan
from freightgate.models.plan import Plan
from freightgate.models.subscription import (
    LIVE_STATUSES,
    Subscription,
    SubscriptionStatus,
    ensure_utc,
    utc_now,
)


logger = logging.getLogger("freightgate.subscriptions")

_LIVE_VALUES = [status.value for status in LIVE_STATUSES]


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=row.user_id,
        plan_slug=row.plan_slug,
        status=SubscriptionStatus(row.status),
        trial_ends_at=ensure_utc(row.trial_ends_at),
        current_period_start=ensure_utc(row.current_period_start),
        current_period_end=ensure_utc(row.current_period_end),
        created_at=ensure_utc(row.created_at),
    )


def get_subscription(user_id: str) -> Optional[Subscription]:
    """Get the user's live (trialing or active) subscription, if any."""
    try:
        with get_db_session() as session:
            row = session.execute(
                select(subscriptions)
                .where(subscriptions.c.user_id == user_id)
                .where(subscriptions.c.status.in_(_LIVE_VALUES))
                .order_by(subscriptions.c.created_at.desc(), subscriptions.c.id.desc())
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"subscription lookup failed: {exc}") from exc

    return _row_to_subscription(row) if row else None


def get_active_plan(user_id: str, *, subscription: Optional[Subscription] = None) -> Optional[Plan]:
    """
    Plan referenced by the user's live subscription (None without one).

    Pass `subscription` when the caller already holds the live row, to skip
    re-reading it.

    Raises:
        LookupFailed: storage error, or the subscription names a missing plan
    """
    if subscription is None:
        subscription = get_subscription(user_id)
    if subscription is None:
        return None
    plan = get_plan(subscription.plan_slug)
    if plan is None:
        # Dangling plan reference: treat as a storage fault, never as free access
        raise LookupFailed(f"plan {subscription.plan_slug} referenced by subscription {subscription.id} is missing")
    return plan


def has_used_plan(user_id: str, plan_slug: str) -> bool:
    """True if the user ever held `plan_slug`, in any status."""
    try:
        with get_db_session() as session:
            row = session.execute(
                select(subscriptions.c.id)
                .where(subscriptions.c.user_id == user_id)
                .where(subscriptions.c.plan_slug == plan_slug)
                .limit(1)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"subscription history lookup failed: {exc}") from exc
    return row is not None


def start_subscription(
    user_id: str,
    plan_slug: str,
    *,
    now: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> Subscription:
    """
    Put a user on a plan.

    Any live subscription is canceled in the same transaction. Trial plans
    start as trialing with trial_ends_at = now + trial_days; other plans start
    active. A trial plan is granted once per user: a user who ever held it
    (trialing, expired or canceled) is refused.

    Raises:
        NotFoundError: plan or user profile does not exist
        ValidationError: plan is retired, targets another role, or is a trial
            the user already had
        ConflictError: a concurrent call put the user on a plan first
    """
    now = ensure_utc(now) or utc_now()

    plan = get_plan(plan_slug)
    if plan is None:
        raise NotFoundError(f"Plan {plan_slug} not found")
    if not plan.is_active:
        raise ValidationError(f"Plan {plan_slug} is no longer offered")

    role = get_role(user_id)
    if role is None:
        raise NotFoundError(f"Profile for user {user_id} not found")
    if role != plan.target_role:
        raise ValidationError(f"Plan {plan_slug} is for {plan.target_role.value} accounts")

    if plan.is_trial_plan and has_used_plan(user_id, plan.slug):
        logger.warning("[subscriptions] trial reuse refused", extra={"user_id": user_id, "plan": plan.slug})
        raise ValidationError(f"Trial {plan_slug} was already used")

    if plan.is_trial_plan:
        status = SubscriptionStatus.TRIALING
        trial_ends_at = now + timedelta(days=plan.trial_days)
    else:
        status = SubscriptionStatus.ACTIVE
        trial_ends_at = None

    try:
        with get_db_session() as session:
            session.execute(
                update(subscriptions)
                .where(subscriptions.c.user_id == user_id)
                .where(subscriptions.c.status.in_(_LIVE_VALUES))
                .values(status=SubscriptionStatus.CANCELED.value, updated_at=now)
            )
            result = session.execute(
                insert(subscriptions).values(
                    user_id=user_id,
                    plan_slug=plan.slug,
                    status=status.value,
                    trial_ends_at=trial_ends_at,
                    current_period_start=now,
                    current_period_end=ensure_utc(period_end),
                    created_at=now,
                    updated_at=now,
                )
            )
            subscription_id = result.inserted_primary_key[0]
    except IntegrityError as exc:
        raise ConflictError(f"User {user_id} already has a live subscription") from exc
    except SQLAlchemyError as exc:
        raise LookupFailed(f"subscription start failed: {exc}") from exc

    logger.info(
        "[subscriptions] started",
        extra={"user_id": user_id, "plan": plan.slug, "status": status.value},
    )
    return Subscription(
        id=subscription_id,
        user_id=user_id,
        plan_slug=plan.slug,
        status=status,
        trial_ends_at=trial_ends_at,
        current_period_start=now,
        current_period_end=ensure_utc(period_end),
        created_at=now,
    )


def start_default_subscription(user_id: str, *, now: Optional[datetime] = None) -> Subscription:
    """Signup hook: put a new user on their role's entry plan."""
    role = get_role(user_id)
    if role is None:
        raise NotFoundError(f"Profile for user {user_id} not found")
    plan = get_default_plan(role)
    if plan is None:
        raise NotFoundError(f"No default plan configured for {role.value}. Run seed_plans() first.")
    return start_subscription(user_id, plan.slug, now=now)


def cancel_subscription(user_id: str, *, now: Optional[datetime] = None) -> Optional[Subscription]:
    """Cancel the user's live subscription; returns the canceled record or None."""
    now = ensure_utc(now) or utc_now()
    current = get_subscription(user_id)
    if current is None:
        return None
    try:
        with get_db_session() as session:
            session.execute(
                update(subscriptions)
                .where(subscriptions.c.id == current.id)
                .where(subscriptions.c.status.in_(_LIVE_VALUES))
                .values(status=SubscriptionStatus.CANCELED.value, updated_at=now)
            )
    except SQLAlchemyError as exc:
        raise LookupFailed(f"subscription cancel failed: {exc}") from exc
    logger.info("[subscriptions] canceled", extra={"user_id": user_id, "plan": current.plan_slug})
    return current.model_copy(update={"status": SubscriptionStatus.CANCELED})


def expire_lapsed_trials(*, now: Optional[datetime] = None) -> int:
    """
    Transition trialing subscriptions whose trial window closed to expired.

    Bookkeeping only: access decisions compare trial_ends_at with the clock
    themselves and do not wait for this job.

    Returns:
        Number of subscriptions expired
    """
    now = ensure_utc(now) or utc_now()
    try:
        with get_db_session() as session:
            result = session.execute(
                update(subscriptions)
                .where(subscriptions.c.status == SubscriptionStatus.TRIALING.value)
                .where(subscriptions.c.trial_ends_at.is_not(None))
                .where(subscriptions.c.trial_ends_at <= now)
                .values(status=SubscriptionStatus.EXPIRED.value, updated_at=now)
            )
            expired = result.rowcount or 0
    except SQLAlchemyError as exc:
        raise LookupFailed(f"trial expiry failed: {exc}") from exc
    logger.info("[subscriptions] expired lapsed trials", extra={"expired": expired})
    return expired
