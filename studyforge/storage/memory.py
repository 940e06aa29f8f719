"""In-process repository.

Mirrors ``PostgresRepository`` method for method so services and tests can run
without a database. Every public method takes the store lock.
"""
import itertools
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from studyforge.errors import DocumentNotFoundError, InvalidStatusTransition
from studyforge.storage.models import (
    Artifact,
    ArtifactInsert,
    Chunk,
    ChunkInsert,
    Document,
    DocumentStatus,
    ReviewItem,
    ReviewItemInsert,
    ReviewQueueItem,
    can_transition,
    flashcard_sides,
)


class InMemoryRepository:
    def __init__(self):
        self._lock = threading.RLock()
        self._documents: Dict[int, Document] = {}
        self._chunks: Dict[int, List[Chunk]] = {}
        self._artifacts: Dict[int, Artifact] = {}
        self._review_items: Dict[int, ReviewItem] = {}
        self._review_index: Dict[Tuple[int, int], int] = {}
        self._doc_ids = itertools.count(1)
        self._chunk_ids = itertools.count(1)
        self._artifact_ids = itertools.count(1)
        self._review_ids = itertools.count(1)

    # documents

    def create_document(self, user_id: int, folder_id: int, title: str, original_file_url: Optional[str] = None,
                        status: DocumentStatus = DocumentStatus.EXTRACTING) -> int:
        with self._lock:
            doc_id = next(self._doc_ids)
            self._documents[doc_id] = Document(
                id=doc_id,
                user_id=user_id,
                folder_id=folder_id,
                title=title,
                original_file_url=original_file_url,
                status=DocumentStatus(status),
                created_at=datetime.now(timezone.utc),
            )
            return doc_id

    def get_document(self, document_id: int, user_id: Optional[int] = None) -> Optional[Document]:
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is None or (user_id is not None and doc.user_id != user_id):
                return None
            return doc.model_copy()

    def list_documents(self, user_id: int, folder_id: Optional[int] = None, limit: Optional[int] = None) -> List[Document]:
        with self._lock:
            docs = [d for d in self._documents.values()
                    if d.user_id == user_id and (folder_id is None or d.folder_id == folder_id)]
            docs.sort(key=lambda d: (d.created_at, d.id), reverse=True)
            if limit is not None:
                docs = docs[:limit]
            return [d.model_copy() for d in docs]

    def update_document_status(self, document_id: int, status: DocumentStatus, extracted_text: Optional[str] = None,
                               ocr_confidence: Optional[str] = None, text_hash: Optional[str] = None) -> Document:
        status = DocumentStatus(status)
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is None:
                raise DocumentNotFoundError()
            if not can_transition(doc.status, status):
                raise InvalidStatusTransition(doc.status.value, status.value)
            updates = {'status': status}
            if extracted_text is not None:
                updates['extracted_text'] = extracted_text
            if ocr_confidence is not None:
                updates['ocr_confidence'] = ocr_confidence
            if text_hash is not None:
                updates['text_hash'] = text_hash
            self._documents[document_id] = doc.model_copy(update=updates)
            return self._documents[document_id].model_copy()

    def _owned(self, document_id: int, user_id: Optional[int]) -> bool:
        doc = self._documents.get(document_id)
        return doc is not None and (user_id is None or doc.user_id == user_id)

    # chunks

    def get_document_chunks(self, document_id: int, user_id: Optional[int] = None) -> List[Chunk]:
        with self._lock:
            if not self._owned(document_id, user_id):
                return []
            return sorted(self._chunks.get(document_id, []), key=lambda c: c.chunk_order)

    def replace_chunks(self, document_id: int, chunks: Iterable[ChunkInsert]) -> List[Chunk]:
        with self._lock:
            created = [Chunk(id=next(self._chunk_ids), document_id=document_id, **c.model_dump()) for c in chunks]
            self._chunks[document_id] = created
            return list(created)

    # artifacts

    def get_document_artifacts(self, document_id: int, type: Optional[str] = None, mode: Optional[str] = None,
                               source_hash: Optional[str] = None, user_id: Optional[int] = None) -> List[Artifact]:
        with self._lock:
            if not self._owned(document_id, user_id):
                return []
            out = [
                a for a in self._artifacts.values()
                if a.document_id == document_id
                and (type is None or a.type == type)
                and (mode is None or a.mode == mode)
                and (source_hash is None or a.source_hash == source_hash)
            ]
            return sorted(out, key=lambda a: a.id)

    def create_artifacts(self, rows: Iterable[ArtifactInsert]) -> List[Artifact]:
        now = datetime.now(timezone.utc)
        with self._lock:
            created = []
            for row in rows:
                artifact = Artifact(id=next(self._artifact_ids), created_at=now, **row.model_dump())
                self._artifacts[artifact.id] = artifact
                created.append(artifact)
            return created

    # review items

    def get_review_item(self, review_item_id: int, user_id: Optional[int] = None) -> Optional[ReviewItem]:
        with self._lock:
            item = self._review_items.get(review_item_id)
            if item is None or (user_id is not None and item.user_id != user_id):
                return None
            return item.model_copy()

    def update_review_item(self, review_item_id: int, next_review_at: datetime, ease_factor: float, interval: int,
                           streak: int, user_id: Optional[int] = None) -> None:
        with self._lock:
            item = self._review_items.get(review_item_id)
            if item is None or (user_id is not None and item.user_id != user_id):
                return
            self._review_items[review_item_id] = item.model_copy(update={
                'next_review_at': next_review_at,
                'ease_factor': ease_factor,
                'interval': interval,
                'streak': streak,
            })

    def delete_review_items(self, user_id: int, document_id: int, keep_artifact_ids: Optional[Iterable[int]] = None) -> int:
        keep = set(keep_artifact_ids or [])
        with self._lock:
            doomed = [
                i for i in self._review_items.values()
                if i.user_id == user_id and i.document_id == document_id and i.artifact_id not in keep
            ]
            for item in doomed:
                del self._review_items[item.id]
                del self._review_index[(item.user_id, item.artifact_id)]
            return len(doomed)

    def create_review_items(self, items: Iterable[ReviewItemInsert]) -> int:
        inserted = 0
        with self._lock:
            for data in items:
                key = (data.user_id, data.artifact_id)
                if key in self._review_index:
                    continue
                item = ReviewItem(id=next(self._review_ids), **data.model_dump())
                self._review_items[item.id] = item
                self._review_index[key] = item.id
                inserted += 1
        return inserted

    def _queue_item(self, item: ReviewItem) -> Optional[ReviewQueueItem]:
        artifact = self._artifacts.get(item.artifact_id)
        if artifact is None:
            return None
        front, back = flashcard_sides(artifact.content)
        return ReviewQueueItem(artifact_content=artifact.content, front=front, back=back, **item.model_dump())

    def get_due_review_items(self, user_id: int, now: datetime) -> List[ReviewQueueItem]:
        with self._lock:
            rows = [self._queue_item(i) for i in self._review_items.values() if i.user_id == user_id and i.next_review_at <= now]
            rows = [r for r in rows if r is not None]
        return sorted(rows, key=lambda r: (r.next_review_at, r.id))

    def get_all_review_items(self, user_id: int) -> List[ReviewQueueItem]:
        with self._lock:
            rows = [self._queue_item(i) for i in self._review_items.values() if i.user_id == user_id]
            rows = [r for r in rows if r is not None]
        return sorted(rows, key=lambda r: (r.next_review_at, r.id), reverse=True)
