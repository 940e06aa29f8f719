from datetime import datetime, timezone

import pytest

from studyforge.errors import LimitReachedError
from studyforge.pipeline.usage_limits import (
    InMemoryBilling,
    assert_conversion_allowed,
    consume_conversion_if_needed,
    today_iso_date,
)

pytestmark = pytest.mark.unit


def test_today_is_utc_date():
    assert today_iso_date(datetime(2024, 1, 2, 23, 59, tzinfo=timezone.utc)) == '2024-01-02'


def test_free_plan_is_capped():
    billing = InMemoryBilling()
    for _ in range(2):
        plan = assert_conversion_allowed(billing, 1, daily_limit=2)
        consume_conversion_if_needed(billing, 1, plan)
    with pytest.raises(LimitReachedError, match='LIMIT_REACHED'):
        assert_conversion_allowed(billing, 1, daily_limit=2)
    assert billing.get_daily_usage(1, today_iso_date()) == 2

    # counters are per user
    assert assert_conversion_allowed(billing, 2, daily_limit=2) == 'free'


def test_paid_plan_is_not_counted():
    billing = InMemoryBilling(plans={1: 'pro'})
    for _ in range(5):
        plan = assert_conversion_allowed(billing, 1, daily_limit=1)
        consume_conversion_if_needed(billing, 1, plan)
    assert plan == 'pro'
    assert billing.get_daily_usage(1, today_iso_date()) == 0


def test_daily_limit_from_settings(monkeypatch):
    monkeypatch.setenv('FREE_DAILY_CONVERSIONS', '1')
    billing = InMemoryBilling()
    billing.increment_daily_usage(1, today_iso_date())
    with pytest.raises(LimitReachedError):
        assert_conversion_allowed(billing, 1)
