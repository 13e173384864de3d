"""
Tests for the contact-view recorder and ledger (idempotency, quota, races).
"""
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from threading import Barrier

from sqlalchemy import select, func

from freightgate.core.database import get_db_session, contact_view_events
from freightgate.core.errors import LimitExceededError, NotFoundError
from freightgate.features.contact_views.service import get_contact_view_usage, record_contact_view
from freightgate.features.usage.service import (
    count_contact_views,
    insert_contact_view_if_absent,
    list_contact_views,
    month_key,
)
from freightgate.models.contact_view import ContactViewEvent
from freightgate.tests.helpers import (
    create_company,
    create_driver,
    create_freight,
    create_plan,
    create_subscription,
)


pytestmark = pytest.mark.usefixtures("seeded")


def _ledger_rows(driver_id: str, freight_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count())
            .select_from(contact_view_events)
            .where(contact_view_events.c.driver_id == driver_id)
            .where(contact_view_events.c.freight_id == freight_id)
        ).scalar()


@pytest.fixture
def company_id():
    _, company_id = create_company()
    return company_id


class TestMonthKey:
    def test_calendar_month_in_utc(self):
        assert month_key(datetime(2026, 3, 31, 23, 59, 59, tzinfo=timezone.utc)) == "2026-03"
        assert month_key(datetime(2026, 4, 1, 0, 0, 0, tzinfo=timezone.utc)) == "2026-04"

    def test_offset_times_are_converted_to_utc(self):
        brt = timezone(timedelta(hours=-3))
        # 22:00 on Mar 31 in UTC-3 is already April in UTC
        assert month_key(datetime(2026, 3, 31, 22, 0, 0, tzinfo=brt)) == "2026-04"

    def test_naive_times_are_treated_as_utc(self):
        assert month_key(datetime(2026, 12, 31, 23, 0, 0)) == "2026-12"


class TestRecordContactView:
    def test_second_view_of_same_freight_is_not_charged(self, now, company_id):
        _, driver_id = create_driver()
        freight_id = create_freight(company_id)

        first = record_contact_view(driver_id, freight_id, now=now)
        second = record_contact_view(driver_id, freight_id, now=now + timedelta(hours=2))

        assert (first.recorded, first.already_viewed) == (True, False)
        assert (second.recorded, second.already_viewed) == (False, True)
        assert _ledger_rows(driver_id, freight_id) == 1
        assert count_contact_views(driver_id, month_key(now)) == 1

    def test_event_is_stamped_with_freight_owner(self, now, company_id):
        _, driver_id = create_driver()
        freight_id = create_freight(company_id)

        record_contact_view(driver_id, freight_id, now=now)

        [event] = list_contact_views(driver_id)
        assert event.company_id == company_id
        assert event.month_key == "2026-03"
        assert event.viewed_at == now

    def test_limit_exceeded_does_not_insert(self, now, company_id):
        plan = create_plan("driver-two", target_role="driver", contact_view_limit=2)
        user_id, driver_id = create_driver()
        create_subscription(user_id, plan)
        record_contact_view(driver_id, create_freight(company_id), now=now)
        record_contact_view(driver_id, create_freight(company_id), now=now)

        third = create_freight(company_id)
        with pytest.raises(LimitExceededError):
            record_contact_view(driver_id, third, now=now)

        assert _ledger_rows(driver_id, third) == 0
        assert count_contact_views(driver_id, month_key(now)) == 2

    def test_repeat_view_at_limit_is_still_already_viewed(self, now, company_id):
        plan = create_plan("driver-one", target_role="driver", contact_view_limit=1)
        user_id, driver_id = create_driver()
        create_subscription(user_id, plan)
        freight_id = create_freight(company_id)
        record_contact_view(driver_id, freight_id, now=now)

        result = record_contact_view(driver_id, freight_id, now=now)

        assert result.already_viewed is True
        assert result.recorded is False

    def test_new_month_starts_a_fresh_cell(self, now, company_id):
        _, driver_id = create_driver()
        freight_id = create_freight(company_id)
        next_month = now + timedelta(days=20)

        record_contact_view(driver_id, freight_id, now=now)
        result = record_contact_view(driver_id, freight_id, now=next_month)

        assert result.recorded is True
        assert _ledger_rows(driver_id, freight_id) == 2
        assert count_contact_views(driver_id, month_key(next_month)) == 1

    def test_unlimited_plan_never_exceeds(self, now, company_id):
        user_id, driver_id = create_driver()
        create_subscription(user_id, "driver-premium")

        for _ in range(8):
            assert record_contact_view(driver_id, create_freight(company_id), now=now).recorded is True

        assert count_contact_views(driver_id, month_key(now)) == 8

    def test_driver_without_subscription_uses_free_tier_limit(self, now, company_id):
        _, driver_id = create_driver()
        for _ in range(5):
            record_contact_view(driver_id, create_freight(company_id), now=now)

        with pytest.raises(LimitExceededError):
            record_contact_view(driver_id, create_freight(company_id), now=now)

    def test_unknown_freight(self, now):
        _, driver_id = create_driver()
        with pytest.raises(NotFoundError, match="Freight not found"):
            record_contact_view(driver_id, "frt-missing", now=now)

    def test_unknown_driver(self, now, company_id):
        with pytest.raises(NotFoundError, match="Driver not found"):
            record_contact_view("drv-missing", create_freight(company_id), now=now)


class TestConcurrentRecording:
    @pytest.mark.parametrize("callers", [2, 8])
    def test_parallel_first_views_count_once(self, now, company_id, callers):
        _, driver_id = create_driver()
        freight_id = create_freight(company_id)
        barrier = Barrier(callers)

        def view():
            barrier.wait()
            return record_contact_view(driver_id, freight_id, now=now)

        with ThreadPoolExecutor(max_workers=callers) as pool:
            results = list(pool.map(lambda _: view(), range(callers)))

        assert sum(1 for r in results if r.recorded) == 1
        assert sum(1 for r in results if r.already_viewed) == callers - 1
        assert _ledger_rows(driver_id, freight_id) == 1

    def test_insert_if_absent_reports_existing_cell(self, now, company_id):
        _, driver_id = create_driver()
        freight_id = create_freight(company_id)
        event = ContactViewEvent(
            driver_id=driver_id,
            freight_id=freight_id,
            company_id=company_id,
            month_key=month_key(now),
            viewed_at=now,
        )

        assert insert_contact_view_if_absent(event) is True
        assert insert_contact_view_if_absent(event) is False
        assert _ledger_rows(driver_id, freight_id) == 1


class TestUsageSummary:
    def test_finite_plan(self, now, company_id):
        _, driver_id = create_driver()
        record_contact_view(driver_id, create_freight(company_id), now=now)
        record_contact_view(driver_id, create_freight(company_id), now=now)

        usage = get_contact_view_usage(driver_id, now=now)

        assert usage.month_key == "2026-03"
        assert usage.used == 2
        assert usage.limit == 5
        assert usage.remaining == 3

    def test_unlimited_plan(self, now, company_id):
        user_id, driver_id = create_driver()
        create_subscription(user_id, "driver-premium")
        record_contact_view(driver_id, create_freight(company_id), now=now)

        usage = get_contact_view_usage(driver_id, now=now)

        assert usage.used == 1
        assert usage.limit == "unlimited"
        assert usage.remaining == "unlimited"
