import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from studyforge.config import get_settings
from studyforge.errors import LimitReachedError
from studyforge.utils import get_logger

LOG = get_logger()

FREE_PLAN = 'free'


def today_iso_date(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).date().isoformat()


class InMemoryBilling:
    """Billing boundary for local runs: fixed plans and per-day conversion counters."""

    def __init__(self, plans: Optional[Dict[int, str]] = None, default_plan: str = FREE_PLAN):
        self._plans = dict(plans or {})
        self._default_plan = default_plan
        self._usage: Dict[Tuple[int, str], int] = {}
        self._lock = threading.Lock()

    def set_plan(self, user_id: int, plan: str):
        self._plans[user_id] = plan

    def get_effective_plan(self, user_id: int) -> str:
        return self._plans.get(user_id, self._default_plan)

    def get_daily_usage(self, user_id: int, date: str) -> int:
        with self._lock:
            return self._usage.get((user_id, date), 0)

    def increment_daily_usage(self, user_id: int, date: str) -> int:
        with self._lock:
            key = (user_id, date)
            self._usage[key] = self._usage.get(key, 0) + 1
            return self._usage[key]


def assert_conversion_allowed(billing, user_id: int, daily_limit: Optional[int] = None) -> str:
    plan = billing.get_effective_plan(user_id)
    if plan != FREE_PLAN:
        return plan
    limit = daily_limit if daily_limit is not None else get_settings().FREE_DAILY_CONVERSIONS
    usage = billing.get_daily_usage(user_id, today_iso_date())
    if usage >= limit:
        LOG.info('conversion_limit_reached', extra={'user_id': user_id, 'usage': usage, 'limit': limit})
        raise LimitReachedError()
    return plan


def consume_conversion_if_needed(billing, user_id: int, plan: str):
    if plan != FREE_PLAN:
        return
    billing.increment_daily_usage(user_id, today_iso_date())
