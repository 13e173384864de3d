"""
freightgate/features/contact_views/service.py

Contact-view recorder: the authoritative enforcement point for view_contact.

The quota check in evaluate_access is advisory (UI messaging). Recording
re-reads the ledger and re-checks the quota, then inserts through the
ledger's insert-if-absent primitive. A (driver, freight, month) cell moves
ABSENT -> RECORDED once; repeat views of the same freight in the same month
are never charged again.
"""

from datetime import datetime
from typing import Optional
import logging

from freightgate.core.errors import LimitExceededError, NotFoundError
from freightgate.features.access.service import (
    has_views_left,
    remaining_views,
    resolve_contact_view_limit,
)
from freightgate.features.directory.service import get_driver, get_freight_owner
from freightgate.features.usage.service import (
    count_contact_views,
    get_contact_view,
    insert_contact_view_if_absent,
    month_key,
)
from freightgate.models.access import UNLIMITED_VIEWS
from freightgate.models.contact_view import ContactViewEvent, ContactViewResult, ContactViewUsage
from freightgate.models.plan import UNLIMITED
from freightgate.models.subscription import ensure_utc, utc_now


logger = logging.getLogger("freightgate.contact_views")

ALREADY_VIEWED = ContactViewResult(recorded=False, already_viewed=True)
RECORDED = ContactViewResult(recorded=True, already_viewed=False)


def record_contact_view(
    driver_id: str,
    freight_id: str,
    *,
    now: Optional[datetime] = None,
) -> ContactViewResult:
    """
    Charge a driver one contact view for a freight (idempotent per month).

    Returns:
        recorded=True on the first view of the month,
        already_viewed=True on any repeat (including a lost concurrent race)

    Raises:
        NotFoundError: driver or freight does not exist
        LimitExceededError: the driver's monthly quota is exhausted
        LookupFailed: storage error
    """
    now = ensure_utc(now) or utc_now()
    month = month_key(now)

    if get_contact_view(driver_id, freight_id, month) is not None:
        return ALREADY_VIEWED

    driver = get_driver(driver_id)
    if driver is None:
        raise NotFoundError("Driver not found")

    limit, _ = resolve_contact_view_limit(driver.user_id)
    if limit != UNLIMITED:
        # Count-then-insert: concurrent first views of different freights at the
        # last free slot can both pass and overshoot the cap by one each. Accepted;
        # only same-cell repeats are closed by the ledger key.
        used = count_contact_views(driver_id, month)
        if not has_views_left(remaining_views(limit, used)):
            logger.warning(
                "[contact_views] limit exceeded",
                extra={"driver_id": driver_id, "freight_id": freight_id, "month_key": month, "limit": limit},
            )
            raise LimitExceededError("Contact view limit exceeded")

    company_id = get_freight_owner(freight_id)
    if company_id is None:
        raise NotFoundError("Freight not found")

    inserted = insert_contact_view_if_absent(
        ContactViewEvent(
            driver_id=driver_id,
            freight_id=freight_id,
            company_id=company_id,
            month_key=month,
            viewed_at=now,
        )
    )
    if not inserted:
        return ALREADY_VIEWED

    logger.info(
        "[contact_views] recorded",
        extra={"driver_id": driver_id, "freight_id": freight_id, "company_id": company_id, "month_key": month},
    )
    return RECORDED


def get_contact_view_usage(driver_id: str, *, now: Optional[datetime] = None) -> ContactViewUsage:
    """Monthly usage summary for dashboards."""
    now = ensure_utc(now) or utc_now()
    month = month_key(now)

    driver = get_driver(driver_id)
    if driver is None:
        raise NotFoundError("Driver not found")

    limit, _ = resolve_contact_view_limit(driver.user_id)
    used = count_contact_views(driver_id, month)
    return ContactViewUsage(
        driver_id=driver_id,
        month_key=month,
        used=used,
        limit=UNLIMITED_VIEWS if limit == UNLIMITED else limit,
        remaining=remaining_views(limit, used),
    )
