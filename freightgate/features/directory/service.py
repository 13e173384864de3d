"""
freightgate/features/directory/service.py

Read adapter over externally owned records (profiles, drivers, companies,
freights). Only the columns access decisions need are read here.

Storage errors surface as LookupFailed so callers can fail closed.
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from freightgate.core.database import get_db_session, profiles, drivers, companies, freights
from freightgate.core.errors import LookupFailed
from freightgate.models.plan import Role


@dataclass(frozen=True)
class DriverRecord:
    id: str
    user_id: str


@dataclass(frozen=True)
class CompanyRecord:
    id: str
    user_id: str


def get_role(user_id: str) -> Optional[Role]:
    """Return the profile role for a user, or None when no profile exists."""
    try:
        with get_db_session() as session:
            row = session.execute(
                select(profiles.c.role).where(profiles.c.user_id == user_id)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"profile lookup failed: {exc}") from exc
    if not row:
        return None
    try:
        return Role(row.role)
    except ValueError:
        return None


def get_driver(driver_id: str) -> Optional[DriverRecord]:
    try:
        with get_db_session() as session:
            row = session.execute(
                select(drivers.c.id, drivers.c.user_id).where(drivers.c.id == driver_id)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"driver lookup failed: {exc}") from exc
    return DriverRecord(id=row.id, user_id=row.user_id) if row else None


def get_driver_by_user(user_id: str) -> Optional[DriverRecord]:
    try:
        with get_db_session() as session:
            row = session.execute(
                select(drivers.c.id, drivers.c.user_id).where(drivers.c.user_id == user_id)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"driver lookup failed: {exc}") from exc
    return DriverRecord(id=row.id, user_id=row.user_id) if row else None


def get_company_by_user(user_id: str) -> Optional[CompanyRecord]:
    try:
        with get_db_session() as session:
            row = session.execute(
                select(companies.c.id, companies.c.user_id).where(companies.c.user_id == user_id)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"company lookup failed: {exc}") from exc
    return CompanyRecord(id=row.id, user_id=row.user_id) if row else None


def get_freight_owner(freight_id: str) -> Optional[str]:
    """Return the company_id that published a freight, or None if unknown."""
    try:
        with get_db_session() as session:
            row = session.execute(
                select(freights.c.company_id).where(freights.c.id == freight_id)
            ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"freight lookup failed: {exc}") from exc
    return row.company_id if row else None


def count_company_freights(company_id: str) -> int:
    try:
        with get_db_session() as session:
            count = session.execute(
                select(func.count()).select_from(freights).where(freights.c.company_id == company_id)
            ).scalar()
    except SQLAlchemyError as exc:
        raise LookupFailed(f"freight count failed: {exc}") from exc
    return int(count or 0)
