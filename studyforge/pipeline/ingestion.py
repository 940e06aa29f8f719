"""Upload entry point and background document processing.

``upload_document`` validates and stores the file, creates the document in
``extracting`` and returns right away; ``process_document`` then runs on the
TaskManager thread pool: extract text, chunk it, generate faithful artifacts
and mark the document ``ready``. Background failures only ever surface as the
document's ``error`` status.
"""
import time
from typing import Any, Dict, Optional

from studyforge.config import Settings, get_settings
from studyforge.errors import DocumentNotFoundError, EmptyExtractionError, InvalidStatusTransition
from studyforge.ocr.extraction import TextExtractor, assert_upload_mime_type, assert_upload_size, decode_upload_base64
from studyforge.pipeline.generation import ArtifactService
from studyforge.pipeline.usage_limits import assert_conversion_allowed
from studyforge.semantic.chunker import chunk_text_deterministic, compute_text_hash, normalize_extracted_text
from studyforge.storage.models import ChunkInsert, DocumentStatus
from studyforge.utils import (
    RateLimiter,
    S3Storage,
    TaskManager,
    TaskStatus,
    assert_user_rate_limit,
    get_logger,
    log_error,
    set_request_context,
)

LOG = get_logger()

UPLOAD_SCOPE = 'upload'
GENERATE_SCOPE = 'artifacts_generate'


def _task_id(document_id: int) -> str:
    return f'ingest:{document_id}'


class IngestionService:
    def __init__(self, repository, billing, storage=None, extractor: Optional[TextExtractor] = None,
                 artifacts: Optional[ArtifactService] = None, rate_limiter: Optional[RateLimiter] = None,
                 task_manager: Optional[TaskManager] = None, settings: Optional[Settings] = None):
        self.repository = repository
        self.billing = billing
        self.settings = settings or get_settings()
        self._storage = storage
        self.extractor = extractor or TextExtractor.get_instance()
        self.artifacts = artifacts or ArtifactService(repository, billing)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.task_manager = task_manager or TaskManager(max_workers=self.settings.INGESTION_WORKERS)

    @property
    def storage(self):
        if self._storage is None:
            self._storage = S3Storage()
        return self._storage

    def upload_document(self, user_id: int, folder_id: int, title: str, file_base64: str, file_name: str,
                        mime_type: str) -> Dict[str, Any]:
        s = self.settings
        assert_user_rate_limit(self.rate_limiter, UPLOAD_SCOPE, user_id, s.RATE_LIMIT_UPLOAD_MAX, s.RATE_LIMIT_UPLOAD_WINDOW_MS)
        assert_conversion_allowed(self.billing, user_id)

        data = decode_upload_base64(file_base64)
        assert_upload_mime_type(mime_type)
        assert_upload_size(data, s.MAX_UPLOAD_MB)

        key = f'docs/{user_id}/{int(time.time() * 1000)}-{file_name}'
        url = self.storage.put(key, data, mime_type)
        document_id = self.repository.create_document(
            user_id=user_id,
            folder_id=folder_id,
            title=title,
            original_file_url=url,
            status=DocumentStatus.EXTRACTING,
        )
        LOG.info('document_uploaded', extra={'document_id': document_id, 'user_id': user_id, 'mime_type': mime_type, 'size': len(data)})

        self._schedule(document_id, mime_type, file_base64, user_id)
        return {'id': document_id, 'status': DocumentStatus.EXTRACTING.value}

    def retry_document(self, document_id: int, user_id: int, mime_type: str, file_base64: str) -> Dict[str, Any]:
        document = self.repository.get_document(document_id, user_id=user_id)
        if document is None:
            raise DocumentNotFoundError()
        decode_upload_base64(file_base64)
        self.repository.update_document_status(document_id, DocumentStatus.EXTRACTING)
        self._schedule(document_id, mime_type, file_base64, user_id)
        return {'id': document_id, 'status': DocumentStatus.EXTRACTING.value}

    def generate_artifacts(self, document_id: int, mode: str, user_id: int) -> Dict[str, Any]:
        s = self.settings
        assert_user_rate_limit(self.rate_limiter, GENERATE_SCOPE, user_id, s.RATE_LIMIT_ARTIFACTS_MAX, s.RATE_LIMIT_ARTIFACTS_WINDOW_MS)
        return self.artifacts.generate_for_document(document_id, mode, user_id, consume_usage=True)

    def wait(self, document_id: int, timeout: Optional[float] = None):
        self.task_manager.wait(_task_id(document_id), timeout=timeout)

    def _schedule(self, document_id: int, mime_type: str, file_base64: str, user_id: int):
        task_id = _task_id(document_id)
        self.task_manager.create_task(task_id, user_id, document_id, metadata={'mime_type': mime_type})
        self.task_manager.submit(task_id, self.process_document, document_id, mime_type, file_base64, user_id)

    def process_document(self, document_id: int, mime_type: str, file_base64: str, user_id: int) -> bool:
        task_id = _task_id(document_id)
        tm = self.task_manager
        set_request_context(task_id, user_id)
        if tm.get_task(task_id) is None:
            tm.create_task(task_id, user_id, document_id)
        tm.update_status(task_id, TaskStatus.PROCESSING, current_step='extract')
        try:
            data = decode_upload_base64(file_base64)
            extraction = self.extractor.extract(data, file_base64, mime_type, document_id=document_id)
            text = normalize_extracted_text(extraction.text)
            if not text:
                raise EmptyExtractionError()
            tm.mark_step_complete(task_id, 'extract')

            text_hash = compute_text_hash(text)
            current = self.repository.get_document(document_id, user_id=user_id)
            existing = self.repository.get_document_chunks(document_id, user_id=user_id)
            reuse_chunks = current is not None and current.text_hash == text_hash and len(existing) > 0

            self.repository.update_document_status(
                document_id,
                DocumentStatus.GENERATING,
                extracted_text=text,
                ocr_confidence=extraction.confidence,
                text_hash=text_hash,
            )

            tm.update_status(task_id, TaskStatus.PROCESSING, current_step='chunk')
            if not reuse_chunks:
                chunks = chunk_text_deterministic(text)
                self.repository.replace_chunks(document_id, [ChunkInsert(**c.model_dump()) for c in chunks])
            LOG.info('document_chunked', extra={'document_id': document_id, 'reused': reuse_chunks})
            tm.mark_step_complete(task_id, 'chunk')

            tm.update_status(task_id, TaskStatus.PROCESSING, current_step='generate')
            self.artifacts.generate_for_document(document_id, 'faithful', user_id, consume_usage=True)
            tm.mark_step_complete(task_id, 'generate')

            self.repository.update_document_status(document_id, DocumentStatus.READY)
            tm.complete_task(task_id)
            return True
        except Exception as e:
            log_error(e, {'document_id': document_id, 'stage': 'document_processing'})
            self._mark_error(document_id)
            tm.fail_task(task_id, str(e))
            return False

    def _mark_error(self, document_id: int):
        try:
            self.repository.update_document_status(document_id, DocumentStatus.ERROR)
        except (InvalidStatusTransition, DocumentNotFoundError) as e:
            LOG.warning('document_error_status_failed', extra={'document_id': document_id, 'error': str(e)})
