"""
freightgate/features/usage/service.py

Contact-view ledger (append-only).

Handles:
- Month key derivation (the quota window)
- Idempotent insert keyed by (driver_id, freight_id, month_key)
- Count-by-month queries
"""

from datetime import datetime
from typing import List, Optional
import logging
from sqlalchemy import select, insert, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from freightgate.core.database import get_db_session, contact_view_events
from freightgate.core.errors import LookupFailed
from freightgate.models.contact_view import ContactViewEvent
from freightgate.models.subscription import ensure_utc, utc_now


logger = logging.getLogger("freightgate.usage")


def month_key(now: Optional[datetime] = None) -> str:
    """
    Calendar month of `now` in UTC as YYYY-MM.

    Used for both counting and the uniqueness key, so the quota window is the
    calendar month (never a rolling 30 days).
    """
    now = ensure_utc(now) or utc_now()
    return now.strftime("%Y-%m")


def _row_to_event(row) -> ContactViewEvent:
    return ContactViewEvent(
        driver_id=row.driver_id,
        freight_id=row.freight_id,
        company_id=row.company_id,
        month_key=row.month_key,
        viewed_at=ensure_utc(row.viewed_at),
    )


def count_contact_views(driver_id: str, month: str) -> int:
    """Number of distinct freights the driver was charged for in `month`."""
    try:
        with get_db_session() as session:
            count = session.execute(
                select(func.count())
                .select_from(contact_view_events)
                .where(contact_view_events.c.driver_id == driver_id)
                .where(contact_view_events.c.month_key == month)
            ).scalar()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"contact view count failed: {exc}") from exc
    return int(count or 0)


def get_contact_view(driver_id: str, freight_id: str, month: str) -> Optional[ContactViewEvent]:
    try:
        with get_db_session() as session:
            row = session.execute(
                select(contact_view_events)
                .where(contact_view_events.c.driver_id == driver_id)
                .where(contact_view_events.c.freight_id == freight_id)
                .where(contact_view_events.c.month_key == month)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"contact view lookup failed: {exc}") from exc
    return _row_to_event(row) if row else None


def list_contact_views(driver_id: str, month: Optional[str] = None) -> List[ContactViewEvent]:
    """Driver's ledger entries, oldest first (optionally for a single month)."""
    query = select(contact_view_events).where(contact_view_events.c.driver_id == driver_id)
    if month:
        query = query.where(contact_view_events.c.month_key == month)
    try:
        with get_db_session() as session:
            rows = session.execute(
                query.order_by(contact_view_events.c.viewed_at, contact_view_events.c.id)
            ).all()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"contact view listing failed: {exc}") from exc
    return [_row_to_event(row) for row in rows]


def insert_contact_view_if_absent(event: ContactViewEvent) -> bool:
    """
    Insert a ledger event unless its (driver, freight, month) cell is occupied.

    The unique constraint decides: concurrent callers for the same cell race
    on the INSERT and exactly one commits.

    Returns:
        True if this call inserted the event
        False if the cell was already recorded
    """
    try:
        with get_db_session() as session:
            session.execute(
                insert(contact_view_events).values(
                    driver_id=event.driver_id,
                    freight_id=event.freight_id,
                    company_id=event.company_id,
                    month_key=event.month_key,
                    viewed_at=ensure_utc(event.viewed_at),
                )
            )
        return True
    except IntegrityError as exc:
        # Only the uniqueness key counts as "already recorded"; any other
        # constraint failure (e.g. a foreign key) is a storage fault.
        if get_contact_view(event.driver_id, event.freight_id, event.month_key) is not None:
            logger.info(
                "[usage] contact view already recorded",
                extra={"driver_id": event.driver_id, "freight_id": event.freight_id, "month_key": event.month_key},
            )
            return False
        raise LookupFailed(f"contact view insert failed: {exc}") from exc
    except SQLAlchemyError as exc:
        raise LookupFailed(f"contact view insert failed: {exc}") from exc
