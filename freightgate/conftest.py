# freightgate/conftest.py
import sys
import pytest
from datetime import datetime, timezone
from pathlib import Path

# Add project root to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(scope="function", autouse=True)
def db_url(tmp_path):
    """
    Point the engine at a fresh SQLite file for each test and create all tables.

    A file (not :memory:) so that several threads can hold their own
    connections, which the concurrency tests rely on.
    """
    from freightgate.core.database import init_engine, create_all_tables, dispose_engine

    url = f"sqlite+pysqlite:///{tmp_path / 'freightgate.db'}"
    init_engine(url)
    create_all_tables()
    yield url
    dispose_engine()


@pytest.fixture(scope="function")
def seeded(db_url):
    """Seed the default plan catalog."""
    from freightgate.features.plans.service import seed_plans

    seed_plans()
    yield


@pytest.fixture
def now():
    """Fixed evaluation time in the middle of a month."""
    return datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def allow_user_id_header(monkeypatch):
    """Let tests authenticate with X-User-Id instead of minting JWTs."""
    from freightgate.core.config import settings

    monkeypatch.setattr(settings, "AUTH_ALLOW_USER_ID_HEADER", True)
