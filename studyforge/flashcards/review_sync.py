from datetime import datetime, timezone
from typing import Dict, Optional

from studyforge.errors import DocumentNotFoundError
from studyforge.storage.models import ReviewItemInsert
from studyforge.utils import get_logger

LOG = get_logger()


def sync_review_items_for_document(repository, user_id: int, document_id: int, source_hash: Optional[str] = None,
                                   now: Optional[datetime] = None) -> Dict[str, int]:
    """Reconcile a user's review items with the document's current flashcards.

    Items whose flashcard no longer belongs to ``source_hash`` are removed, then
    every current flashcard without an item is seeded as due now. Safe to call
    repeatedly and concurrently: duplicate seeds are ignored by the repository.
    """
    flashcards = repository.get_document_artifacts(document_id, type='flashcard', source_hash=source_hash, user_id=user_id)
    valid_ids = [a.id for a in flashcards]

    if not valid_ids:
        removed = repository.delete_review_items(user_id, document_id)
        LOG.info('review_items_synced', extra={'document_id': document_id, 'removed': removed, 'seeded': 0})
        return {'seeded_count': 0, 'valid_flashcards': 0}

    removed = repository.delete_review_items(user_id, document_id, keep_artifact_ids=valid_ids)
    now = now or datetime.now(timezone.utc)
    seeded = repository.create_review_items([
        ReviewItemInsert(user_id=user_id, artifact_id=aid, document_id=document_id, next_review_at=now)
        for aid in valid_ids
    ])
    LOG.info('review_items_synced', extra={'document_id': document_id, 'removed': removed, 'seeded': seeded})
    return {'seeded_count': seeded, 'valid_flashcards': len(valid_ids)}


def init_review_for_document(repository, user_id: int, document_id: int) -> Dict[str, int]:
    document = repository.get_document(document_id, user_id=user_id)
    if document is None:
        raise DocumentNotFoundError()
    flashcards = repository.get_document_artifacts(document_id, type='flashcard', source_hash=document.text_hash, user_id=user_id)
    seeded = sync_review_items_for_document(repository, user_id, document_id, source_hash=document.text_hash)
    return {'count': seeded['seeded_count'], 'availableFlashcards': len(flashcards)}
