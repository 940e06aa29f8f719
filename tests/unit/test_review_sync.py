from datetime import datetime, timezone

import pytest

from studyforge.errors import DocumentNotFoundError
from studyforge.flashcards.review_sync import init_review_for_document, sync_review_items_for_document
from studyforge.storage.models import ArtifactInsert, DocumentStatus

pytestmark = pytest.mark.unit

NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _artifacts(repo, doc_id, source_hash, flashcards=2):
    rows = [ArtifactInsert(document_id=doc_id, type='summary', mode='faithful', content={'text': 's'}, source_hash=source_hash)]
    rows += [
        ArtifactInsert(document_id=doc_id, type='flashcard', mode='faithful',
                       content={'front': f'f{i}', 'back': f'b{i}'}, source_hash=source_hash)
        for i in range(flashcards)
    ]
    return repo.create_artifacts(rows)


def test_seeding_is_idempotent(repo):
    doc_id = repo.create_document(user_id=1, folder_id=1, title='Bio')
    _artifacts(repo, doc_id, 'h1')

    assert sync_review_items_for_document(repo, 1, doc_id, source_hash='h1', now=NOW) == {'seeded_count': 2, 'valid_flashcards': 2}
    assert sync_review_items_for_document(repo, 1, doc_id, source_hash='h1', now=NOW) == {'seeded_count': 0, 'valid_flashcards': 2}

    due = repo.get_due_review_items(1, NOW)
    assert sorted(i.front for i in due) == ['f0', 'f1']


def test_new_version_replaces_stale_items(repo):
    doc_id = repo.create_document(user_id=1, folder_id=1, title='Bio')
    _artifacts(repo, doc_id, 'h1')
    sync_review_items_for_document(repo, 1, doc_id, source_hash='h1', now=NOW)

    new = _artifacts(repo, doc_id, 'h2', flashcards=1)
    result = sync_review_items_for_document(repo, 1, doc_id, source_hash='h2', now=NOW)

    assert result == {'seeded_count': 1, 'valid_flashcards': 1}
    items = repo.get_all_review_items(1)
    assert [i.artifact_id for i in items] == [new[1].id]


def test_no_flashcards_clears_items(repo):
    doc_id = repo.create_document(user_id=1, folder_id=1, title='Bio')
    _artifacts(repo, doc_id, 'h1')
    sync_review_items_for_document(repo, 1, doc_id, source_hash='h1', now=NOW)

    assert sync_review_items_for_document(repo, 1, doc_id, source_hash='other', now=NOW) == {'seeded_count': 0, 'valid_flashcards': 0}
    assert repo.get_all_review_items(1) == []


def test_other_users_document_seeds_nothing(repo):
    doc_id = repo.create_document(user_id=1, folder_id=1, title='Bio')
    _artifacts(repo, doc_id, 'h1')
    assert sync_review_items_for_document(repo, 2, doc_id, source_hash='h1', now=NOW)['seeded_count'] == 0
    assert repo.get_all_review_items(2) == []


def test_init_review_for_document(repo):
    doc_id = repo.create_document(user_id=1, folder_id=1, title='Bio')
    repo.update_document_status(doc_id, DocumentStatus.GENERATING, text_hash='h1')
    _artifacts(repo, doc_id, 'h1', flashcards=3)

    assert init_review_for_document(repo, 1, doc_id) == {'count': 3, 'availableFlashcards': 3}
    assert init_review_for_document(repo, 1, doc_id) == {'count': 0, 'availableFlashcards': 3}

    with pytest.raises(DocumentNotFoundError):
        init_review_for_document(repo, 2, doc_id)
