"""Flashcard review: SM-2 scheduling and review queue seeding."""
from .spaced_repetition import (
    ReviewScheduler, ReviewState, InvalidQualityError, apply_answer, get_review_stats,
)
from .review_sync import sync_review_items_for_document, init_review_for_document

__all__ = [
    'ReviewScheduler', 'ReviewState', 'InvalidQualityError', 'apply_answer', 'get_review_stats',
    'sync_review_items_for_document', 'init_review_for_document',
]
