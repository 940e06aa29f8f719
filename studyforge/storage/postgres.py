import os
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

import psycopg2
import psycopg2.pool
from psycopg2.extras import Json, RealDictCursor

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
    allowed_predecessors,
    flashcard_sides,
)
from studyforge.utils import get_logger

LOG = get_logger()

DB_HOST = os.getenv('DB_HOST', 'localhost')
DB_PORT = int(os.getenv('DB_PORT', '5432'))
DB_NAME = os.getenv('DB_NAME', 'studyforge')
DB_USER = os.getenv('DB_USER', 'postgres')
DB_PASSWORD = os.getenv('DB_PASSWORD', '')
DB_POOL_MIN = int(os.getenv('DB_POOL_MIN', '1'))
DB_POOL_MAX = int(os.getenv('DB_POOL_MAX', '10'))

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    folder_id INTEGER NOT NULL,
    title VARCHAR(255) NOT NULL,
    original_file_url TEXT,
    extracted_text TEXT,
    ocr_confidence VARCHAR(16),
    text_hash CHAR(64),
    status VARCHAR(16) NOT NULL DEFAULT 'uploading',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE TABLE IF NOT EXISTS chunks (
    id SERIAL PRIMARY KEY,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_order INTEGER NOT NULL,
    text_content TEXT NOT NULL,
    start_offset INTEGER NOT NULL,
    end_offset INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS artifacts (
    id SERIAL PRIMARY KEY,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    type VARCHAR(16) NOT NULL,
    mode VARCHAR(16) NOT NULL,
    content JSONB NOT NULL,
    source_chunk_ids JSONB NOT NULL DEFAULT '[]',
    source_hash CHAR(64) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS artifacts_cache_key ON artifacts (document_id, mode, source_hash);
CREATE TABLE IF NOT EXISTS review_items (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    artifact_id INTEGER NOT NULL REFERENCES artifacts(id) ON DELETE CASCADE,
    document_id INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    next_review_at TIMESTAMPTZ NOT NULL,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    interval INTEGER NOT NULL DEFAULT 1,
    streak INTEGER NOT NULL DEFAULT 0,
    UNIQUE (user_id, artifact_id)
);
"""

_QUEUE_SELECT = """
SELECT r.id, r.user_id, r.artifact_id, r.document_id, r.next_review_at, r.ease_factor,
       r.interval, r.streak, a.content AS artifact_content
FROM review_items r
JOIN artifacts a ON a.id = r.artifact_id
"""


class PostgresRepository:
    """Repository backed by a psycopg2 connection pool. Same contract as ``InMemoryRepository``."""

    def __init__(self, pool=None):
        self._pool = pool or psycopg2.pool.ThreadedConnectionPool(
            DB_POOL_MIN, DB_POOL_MAX,
            host=DB_HOST, port=DB_PORT, dbname=DB_NAME, user=DB_USER, password=DB_PASSWORD,
        )

    @contextmanager
    def _cursor(self):
        conn = self._pool.getconn()
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()
        finally:
            self._pool.putconn(conn)

    def init_schema(self):
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)
        LOG.info('db_schema_ready')

    def close(self):
        self._pool.closeall()

    # documents

    def create_document(self, user_id: int, folder_id: int, title: str, original_file_url: Optional[str] = None,
                        status: DocumentStatus = DocumentStatus.EXTRACTING) -> int:
        with self._cursor() as cur:
            cur.execute(
                'INSERT INTO documents (user_id, folder_id, title, original_file_url, status) '
                'VALUES (%s, %s, %s, %s, %s) RETURNING id',
                (user_id, folder_id, title, original_file_url, DocumentStatus(status).value),
            )
            return cur.fetchone()['id']

    def get_document(self, document_id: int, user_id: Optional[int] = None) -> Optional[Document]:
        with self._cursor() as cur:
            if user_id is None:
                cur.execute('SELECT * FROM documents WHERE id = %s', (document_id,))
            else:
                cur.execute('SELECT * FROM documents WHERE id = %s AND user_id = %s', (document_id, user_id))
            row = cur.fetchone()
        return Document(**row) if row else None

    def list_documents(self, user_id: int, folder_id: Optional[int] = None, limit: Optional[int] = None) -> List[Document]:
        query = 'SELECT * FROM documents WHERE user_id = %s'
        params = [user_id]
        if folder_id is not None:
            query += ' AND folder_id = %s'
            params.append(folder_id)
        query += ' ORDER BY created_at DESC, id DESC'
        if limit is not None:
            query += ' LIMIT %s'
            params.append(limit)
        with self._cursor() as cur:
            cur.execute(query, tuple(params))
            rows = cur.fetchall()
        return [Document(**r) for r in rows]

    def update_document_status(self, document_id: int, status: DocumentStatus, extracted_text: Optional[str] = None,
                               ocr_confidence: Optional[str] = None, text_hash: Optional[str] = None) -> Document:
        status = DocumentStatus(status)
        predecessors = [s.value for s in allowed_predecessors(status)]
        with self._cursor() as cur:
            cur.execute(
                'UPDATE documents SET status = %s, '
                'extracted_text = COALESCE(%s, extracted_text), '
                'ocr_confidence = COALESCE(%s, ocr_confidence), '
                'text_hash = COALESCE(%s, text_hash) '
                'WHERE id = %s AND status = ANY(%s) RETURNING *',
                (status.value, extracted_text, ocr_confidence, text_hash, document_id, predecessors),
            )
            row = cur.fetchone()
            if row:
                return Document(**row)
            cur.execute('SELECT status FROM documents WHERE id = %s', (document_id,))
            current = cur.fetchone()
        if not current:
            raise DocumentNotFoundError()
        raise InvalidStatusTransition(current['status'], status.value)

    # chunks

    def get_document_chunks(self, document_id: int, user_id: Optional[int] = None) -> List[Chunk]:
        with self._cursor() as cur:
            cur.execute(
                'SELECT c.* FROM chunks c JOIN documents d ON d.id = c.document_id '
                'WHERE c.document_id = %s AND (%s IS NULL OR d.user_id = %s) ORDER BY c.chunk_order',
                (document_id, user_id, user_id),
            )
            return [Chunk(**r) for r in cur.fetchall()]

    def replace_chunks(self, document_id: int, chunks: Iterable[ChunkInsert]) -> List[Chunk]:
        created = []
        with self._cursor() as cur:
            cur.execute('DELETE FROM chunks WHERE document_id = %s', (document_id,))
            for c in chunks:
                cur.execute(
                    'INSERT INTO chunks (document_id, chunk_order, text_content, start_offset, end_offset) '
                    'VALUES (%s, %s, %s, %s, %s) RETURNING *',
                    (document_id, c.chunk_order, c.text_content, c.start_offset, c.end_offset),
                )
                created.append(Chunk(**cur.fetchone()))
        return created

    # artifacts

    def get_document_artifacts(self, document_id: int, type: Optional[str] = None, mode: Optional[str] = None,
                               source_hash: Optional[str] = None, user_id: Optional[int] = None) -> List[Artifact]:
        with self._cursor() as cur:
            cur.execute(
                'SELECT a.* FROM artifacts a JOIN documents d ON d.id = a.document_id '
                'WHERE a.document_id = %s '
                'AND (%s IS NULL OR a.type = %s) AND (%s IS NULL OR a.mode = %s) '
                'AND (%s IS NULL OR a.source_hash = %s) AND (%s IS NULL OR d.user_id = %s) '
                'ORDER BY a.id',
                (document_id, type, type, mode, mode, source_hash, source_hash, user_id, user_id),
            )
            return [Artifact(**r) for r in cur.fetchall()]

    def create_artifacts(self, rows: Iterable[ArtifactInsert]) -> List[Artifact]:
        created = []
        with self._cursor() as cur:
            for row in rows:
                cur.execute(
                    'INSERT INTO artifacts (document_id, type, mode, content, source_chunk_ids, source_hash) '
                    'VALUES (%s, %s, %s, %s, %s, %s) RETURNING *',
                    (row.document_id, row.type, row.mode, Json(row.content), Json(row.source_chunk_ids), row.source_hash),
                )
                created.append(Artifact(**cur.fetchone()))
        return created

    # review items

    def get_review_item(self, review_item_id: int, user_id: Optional[int] = None) -> Optional[ReviewItem]:
        with self._cursor() as cur:
            cur.execute(
                'SELECT * FROM review_items WHERE id = %s AND (%s IS NULL OR user_id = %s)',
                (review_item_id, user_id, user_id),
            )
            row = cur.fetchone()
        return ReviewItem(**row) if row else None

    def update_review_item(self, review_item_id: int, next_review_at: datetime, ease_factor: float, interval: int,
                           streak: int, user_id: Optional[int] = None) -> None:
        with self._cursor() as cur:
            cur.execute(
                'UPDATE review_items SET next_review_at = %s, ease_factor = %s, interval = %s, streak = %s '
                'WHERE id = %s AND (%s IS NULL OR user_id = %s)',
                (next_review_at, ease_factor, interval, streak, review_item_id, user_id, user_id),
            )

    def delete_review_items(self, user_id: int, document_id: int, keep_artifact_ids: Optional[Iterable[int]] = None) -> int:
        keep = list(keep_artifact_ids or [])
        with self._cursor() as cur:
            if keep:
                cur.execute(
                    'DELETE FROM review_items WHERE user_id = %s AND document_id = %s AND NOT (artifact_id = ANY(%s))',
                    (user_id, document_id, keep),
                )
            else:
                cur.execute('DELETE FROM review_items WHERE user_id = %s AND document_id = %s', (user_id, document_id))
            return cur.rowcount

    def create_review_items(self, items: Iterable[ReviewItemInsert]) -> int:
        inserted = 0
        with self._cursor() as cur:
            for data in items:
                # concurrent seeding of the same (user, artifact) is expected; the unique index decides
                cur.execute(
                    'INSERT INTO review_items (user_id, artifact_id, document_id, next_review_at, ease_factor, interval, streak) '
                    'VALUES (%s, %s, %s, %s, %s, %s, %s) ON CONFLICT (user_id, artifact_id) DO NOTHING',
                    (data.user_id, data.artifact_id, data.document_id, data.next_review_at,
                     data.ease_factor, data.interval, data.streak),
                )
                inserted += max(0, cur.rowcount)
        return inserted

    def _queue_rows(self, rows) -> List[ReviewQueueItem]:
        out = []
        for r in rows:
            front, back = flashcard_sides(r.get('artifact_content'))
            out.append(ReviewQueueItem(front=front, back=back, **r))
        return out

    def get_due_review_items(self, user_id: int, now: datetime) -> List[ReviewQueueItem]:
        with self._cursor() as cur:
            cur.execute(
                _QUEUE_SELECT + 'WHERE r.user_id = %s AND r.next_review_at <= %s ORDER BY r.next_review_at ASC, r.id ASC',
                (user_id, now),
            )
            return self._queue_rows(cur.fetchall())

    def get_all_review_items(self, user_id: int) -> List[ReviewQueueItem]:
        with self._cursor() as cur:
            cur.execute(_QUEUE_SELECT + 'WHERE r.user_id = %s ORDER BY r.next_review_at DESC, r.id DESC', (user_id,))
            return self._queue_rows(cur.fetchall())
