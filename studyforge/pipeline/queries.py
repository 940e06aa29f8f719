"""Read side consumed by the UI: document, usage, artifact, chunk and review queue rows."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from studyforge.config import get_settings
from studyforge.flashcards.spaced_repetition import get_review_stats
from studyforge.pipeline.usage_limits import FREE_PLAN, today_iso_date

RECENT_DOCUMENTS_LIMIT = 5


def get_document(repository, user_id: int, document_id: int) -> Optional[Dict[str, Any]]:
    document = repository.get_document(document_id, user_id=user_id)
    return document.to_row() if document is not None else None


def list_documents(repository, user_id: int, folder_id: Optional[int] = None,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Newest first."""
    return [d.to_row() for d in repository.list_documents(user_id, folder_id=folder_id, limit=limit)]


def recent_documents(repository, user_id: int) -> List[Dict[str, Any]]:
    return list_documents(repository, user_id, limit=RECENT_DOCUMENTS_LIMIT)


def usage_today(billing, user_id: int) -> Dict[str, Any]:
    """Conversions used today; the limit is -1 for plans without one."""
    plan = billing.get_effective_plan(user_id)
    return {
        'conversionsUsed': billing.get_daily_usage(user_id, today_iso_date()),
        'conversionsLimit': get_settings().FREE_DAILY_CONVERSIONS if plan == FREE_PLAN else -1,
        'plan': plan,
    }


def list_artifacts(repository, user_id: int, document_id: int, type: Optional[str] = None,
                   mode: Optional[str] = None) -> List[Dict[str, Any]]:
    document = repository.get_document(document_id, user_id=user_id)
    if document is None:
        return []
    rows = repository.get_document_artifacts(document_id, type=type, mode=mode, source_hash=document.text_hash, user_id=user_id)
    return [r.to_row() for r in rows]


def list_chunks(repository, user_id: int, document_id: int) -> List[Dict[str, Any]]:
    return [c.to_row() for c in repository.get_document_chunks(document_id, user_id=user_id)]


def review_today(repository, user_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    return [i.to_row() for i in repository.get_due_review_items(user_id, now)]


def review_all(repository, user_id: int) -> List[Dict[str, Any]]:
    return [i.to_row() for i in repository.get_all_review_items(user_id)]


def review_stats(repository, user_id: int, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or datetime.now(timezone.utc)
    return get_review_stats(repository.get_due_review_items(user_id, now), repository.get_all_review_items(user_id))
