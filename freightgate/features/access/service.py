"""
freightgate/features/access/service.py

Access decision engine.

Answers "can this identity perform this action now?" for the two gated
actions:
- create_freight (companies): trial window or paid plan
- view_contact (drivers): monthly contact-view quota

Closed world: unknown actions and role/action mismatches are denied. Any
lookup failure is denied as well (fail closed).
"""

from datetime import datetime
from typing import Optional, Tuple, Union
import logging

from freightgate.core.config import settings
from freightgate.core.errors import LookupFailed
from freightgate.features.directory.service import (
    count_company_freights,
    get_company_by_user,
    get_driver_by_user,
)
from freightgate.features.subscriptions.service import get_active_plan, get_subscription
from freightgate.features.usage.service import count_contact_views, month_key
from freightgate.models.access import (
    AccessDecision,
    AccessReason,
    Action,
    Identity,
    SubscriptionSnapshot,
    UNLIMITED_VIEWS,
)
from freightgate.models.plan import Plan, Role, UNLIMITED
from freightgate.models.subscription import Subscription, ensure_utc, utc_now


logger = logging.getLogger("freightgate.access")


def _snapshot(subscription: Optional[Subscription]) -> Optional[SubscriptionSnapshot]:
    if subscription is None:
        return None
    return SubscriptionSnapshot(plan=subscription.plan_slug, status=subscription.status.value)


def resolve_contact_view_limit(user_id: str) -> Tuple[int, Optional[Subscription]]:
    """
    Contact-view limit for a driver user.

    Drivers without a live subscription get the free-tier fallback
    (DEFAULT_CONTACT_VIEW_LIMIT) rather than a denial.
    """
    subscription = get_subscription(user_id)
    if subscription is None:
        return settings.DEFAULT_CONTACT_VIEW_LIMIT, None
    return get_active_plan(user_id, subscription=subscription).contact_view_limit, subscription


def remaining_views(limit: int, used: int) -> Union[int, str]:
    if limit == UNLIMITED:
        return UNLIMITED_VIEWS
    return max(0, limit - used)


def has_views_left(remaining: Union[int, str]) -> bool:
    return remaining == UNLIMITED_VIEWS or remaining > 0


def is_in_trial(plan: Plan, subscription: Subscription, now: datetime) -> bool:
    """Trial access ends the instant trial_ends_at passes, whatever the stored status says."""
    trial_ends_at = ensure_utc(subscription.trial_ends_at)
    return plan.is_trial_plan and trial_ends_at is not None and trial_ends_at > now


def _evaluate_create_freight(identity: Identity, now: datetime) -> AccessDecision:
    subscription = get_subscription(identity.user_id)
    if subscription is None:
        return AccessDecision.deny(AccessReason.NO_SUBSCRIPTION)

    plan = get_active_plan(identity.user_id, subscription=subscription)
    snapshot = _snapshot(subscription)

    if not (is_in_trial(plan, subscription, now) or plan.is_paid):
        return AccessDecision.deny(AccessReason.TRIAL_EXPIRED, subscription=snapshot)

    if plan.freight_limit != UNLIMITED:
        company = get_company_by_user(identity.user_id)
        if company is None:
            return AccessDecision.deny(AccessReason.NOT_FOUND, subscription=snapshot)
        if count_company_freights(company.id) >= plan.freight_limit:
            return AccessDecision.deny(AccessReason.FREIGHT_LIMIT_REACHED, subscription=snapshot)

    return AccessDecision.allow(subscription=snapshot)


def _evaluate_view_contact(identity: Identity, now: datetime) -> AccessDecision:
    driver = get_driver_by_user(identity.user_id)
    if driver is None:
        return AccessDecision.deny(AccessReason.NOT_FOUND)

    limit, subscription = resolve_contact_view_limit(identity.user_id)
    snapshot = _snapshot(subscription)

    if limit == UNLIMITED:
        return AccessDecision.allow(remaining_views=UNLIMITED_VIEWS, subscription=snapshot)

    used = count_contact_views(driver.id, month_key(now))
    remaining = remaining_views(limit, used)
    if has_views_left(remaining):
        return AccessDecision.allow(remaining_views=remaining, subscription=snapshot)
    return AccessDecision.deny(AccessReason.LIMIT_REACHED, remaining_views=0, subscription=snapshot)


def evaluate_access(
    identity: Optional[Identity],
    action: Union[Action, str],
    *,
    now: Optional[datetime] = None,
) -> AccessDecision:
    """
    Decide whether `identity` may perform `action` at `now`.

    Args:
        identity: Authenticated caller, or None when authentication failed
        action: "create_freight" or "view_contact"
        now: Evaluation time (defaults to current UTC time)

    Returns:
        AccessDecision (never raises for lookup failures; those deny)
    """
    if identity is None:
        # No lookups for anonymous callers
        decision = AccessDecision.deny(AccessReason.NO_AUTH)
        logger.info("[access] denied", extra={"action": str(action), "reason": decision.reason.value})
        return decision

    now = ensure_utc(now) or utc_now()

    try:
        action = Action(action)
    except ValueError:
        action = None

    try:
        if identity.role is None:
            decision = AccessDecision.deny(AccessReason.NOT_FOUND)
        elif action == Action.CREATE_FREIGHT and identity.role == Role.COMPANY:
            decision = _evaluate_create_freight(identity, now)
        elif action == Action.VIEW_CONTACT and identity.role == Role.DRIVER:
            decision = _evaluate_view_contact(identity, now)
        else:
            decision = AccessDecision.deny(AccessReason.UNSUPPORTED_ACTION)
    except LookupFailed as exc:
        logger.error(
            "[access] lookup failed, denying",
            extra={"user_id": identity.user_id, "action": getattr(action, "value", None), "error_message": exc.message},
        )
        return AccessDecision.deny(AccessReason.LOOKUP_FAILED)

    log_fn = logger.info if decision.can_access else logger.warning
    log_fn(
        "[access] granted" if decision.can_access else "[access] denied",
        extra={
            "user_id": identity.user_id,
            "action": getattr(action, "value", None),
            "reason": decision.reason.value,
            "remaining_views": decision.remaining_views,
        },
    )
    return decision
