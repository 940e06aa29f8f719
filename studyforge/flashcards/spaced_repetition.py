"""SM-2 variant scheduling for flashcard review.

``apply_answer`` is the pure state transition; ``ReviewScheduler`` loads and
persists review items around it.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional

from pydantic import BaseModel

from studyforge.errors import ReviewItemNotFoundError
from studyforge.utils import get_logger

LOG = get_logger()

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
MINUTES_PER_CARD = 2


class InvalidQualityError(ValueError):
    pass


class ReviewState(BaseModel):
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 1
    streak: int = 0
    next_review_at: Optional[datetime] = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _validate_quality(quality) -> float:
    if isinstance(quality, bool) or not isinstance(quality, (int, float)):
        raise InvalidQualityError(f'quality must be a number between 0 and 5, got {quality!r}')
    if not 0 <= quality <= 5:
        raise InvalidQualityError(f'quality must be between 0 and 5, got {quality}')
    return quality


def apply_answer(state: ReviewState, quality, now: Optional[datetime] = None) -> ReviewState:
    q = _validate_quality(quality)
    now = now or datetime.now(timezone.utc)
    ease, interval, streak = state.ease_factor, state.interval, state.streak

    if q >= 3:
        streak += 1
        if streak == 1:
            interval = 1
        elif streak == 2:
            interval = 6
        else:
            interval = max(1, _round_half_up(interval * ease))
        ease = max(MIN_EASE_FACTOR, ease + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)))
    else:
        streak = 0
        interval = 1

    return ReviewState(ease_factor=ease, interval=interval, streak=streak, next_review_at=now + timedelta(days=interval))


class ReviewScheduler:
    def __init__(self, repository, clock: Optional[Callable[[], datetime]] = None):
        self.repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def answer(self, review_item_id: int, quality, user_id: int) -> Dict:
        item = self.repository.get_review_item(review_item_id, user_id=user_id)
        if item is None:
            raise ReviewItemNotFoundError()

        state = apply_answer(
            ReviewState(ease_factor=item.ease_factor, interval=item.interval, streak=item.streak),
            quality,
            now=self._clock(),
        )
        self.repository.update_review_item(
            review_item_id,
            next_review_at=state.next_review_at,
            ease_factor=state.ease_factor,
            interval=state.interval,
            streak=state.streak,
            user_id=user_id,
        )
        LOG.info('review_answered', extra={
            'review_item_id': review_item_id,
            'quality': quality,
            'interval': state.interval,
            'streak': state.streak,
        })
        return {'nextReviewAt': state.next_review_at, 'interval': state.interval, 'streak': state.streak}


def get_review_stats(today_items: Optional[Iterable] = None, all_items: Optional[Iterable] = None) -> Dict[str, int]:
    """Queue summary for the review screen.

    ``streak`` is the longest run of consecutive correct answers on any single
    card (the max of the per-card ``streak``), not a count of consecutive study
    days.
    """
    today_items = list(today_items or [])
    all_items = list(all_items or [])
    due = len(today_items)
    return {
        'totalCards': len(all_items),
        'dueCards': due,
        'estimatedMinutes': due * MINUTES_PER_CARD,
        'streak': max((i.streak for i in all_items), default=0),
    }
