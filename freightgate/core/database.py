"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions for plans, subscriptions and the contact-view ledger
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Numeric, Text, Index, ForeignKey, UniqueConstraint
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func
import logging
import os

from freightgate.core.config import settings

logger = logging.getLogger("freightgate.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour
SQLITE_BUSY_TIMEOUT = 30  # seconds a writer waits on a locked SQLite file

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if _engine is not None:
        _engine.dispose()

    engine_kwargs = {
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
        "pool_pre_ping": True,
        "echo": False,  # Set to True for SQL query logging
    }
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT,
        }
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            # One shared connection, otherwise each checkout sees an empty database
            for key in ("pool_size", "max_overflow", "pool_timeout", "pool_recycle"):
                engine_kwargs.pop(key)
            engine_kwargs["poolclass"] = StaticPool

    _engine = create_engine(url, **engine_kwargs)
    logger.info("database.engine_initialized", extra={"dialect": _engine.dialect.name})

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Close pooled connections and forget the engine (tests, shutdown)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on success, rolls back on any exception.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


LIVE_SUBSCRIPTION_STATUSES = ("trialing", "active")

# Profiles (owned by the identity subsystem; read-only here)
profiles = Table(
    'profiles',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('role', String(20), nullable=False),  # 'driver', 'company', 'admin'
    Column('display_name', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Drivers (external record store)
drivers = Table(
    'drivers',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), ForeignKey('profiles.user_id'), nullable=False, unique=True),
    Column('name', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Companies (external record store)
companies = Table(
    'companies',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('user_id', String(100), ForeignKey('profiles.user_id'), nullable=False, unique=True),
    Column('name', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Freight listings (external record store)
freights = Table(
    'freights',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('company_id', String(100), ForeignKey('companies.id'), nullable=False, index=True),
    Column('code', String(50), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Plan catalog
subscription_plans = Table(
    'subscription_plans',
    metadata,
    Column('slug', String(50), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('target_role', String(20), nullable=False),
    Column('price_monthly', Numeric(10, 2), nullable=False, server_default='0'),
    Column('contact_view_limit', Integer, nullable=False, server_default='0'),  # -1 = unlimited
    Column('freight_limit', Integer, nullable=False, server_default='-1'),  # -1 = unlimited
    Column('trial_days', Integer, nullable=False, server_default='0'),
    Column('is_trial_plan', Boolean, nullable=False, server_default='false'),
    Column('is_active', Boolean, nullable=False, server_default='true'),
    Column('features', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_subscription_plans_role_active', 'target_role', 'is_active'),
)

# Subscriptions: never deleted, only status-transitioned
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('profiles.user_id'), nullable=False, index=True),
    Column('plan_slug', String(50), ForeignKey('subscription_plans.slug'), nullable=False),
    Column('status', String(20), nullable=False),  # trialing | active | canceled | expired
    Column('trial_ends_at', DateTime(timezone=True), nullable=True),
    Column('current_period_start', DateTime(timezone=True), nullable=True),
    Column('current_period_end', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_subscriptions_status_trial', 'status', 'trial_ends_at'),
)

# At most one live subscription per user
Index(
    'uq_subscriptions_user_live',
    subscriptions.c.user_id,
    unique=True,
    postgresql_where=subscriptions.c.status.in_(LIVE_SUBSCRIPTION_STATUSES),
    sqlite_where=subscriptions.c.status.in_(LIVE_SUBSCRIPTION_STATUSES),
)

# Contact-view ledger: append-only
contact_view_events = Table(
    'contact_view_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('driver_id', String(100), ForeignKey('drivers.id'), nullable=False),
    Column('freight_id', String(100), ForeignKey('freights.id'), nullable=False),
    Column('company_id', String(100), ForeignKey('companies.id'), nullable=True),
    Column('month_key', String(7), nullable=False),  # YYYY-MM (UTC)
    Column('viewed_at', DateTime(timezone=True), nullable=False),
    # Sole guard against double-charging a (driver, freight, month) cell
    UniqueConstraint('driver_id', 'freight_id', 'month_key', name='uq_contact_view_events_driver_freight_month'),
    Index('idx_contact_view_events_driver_month', 'driver_id', 'month_key'),
)
