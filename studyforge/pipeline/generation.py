import time
from collections import Counter
from typing import Any, Dict, Optional

from studyforge.errors import ArtifactsEmptyError, DocumentHasNoChunksError, DocumentNotFoundError
from studyforge.flashcards.review_sync import sync_review_items_for_document
from studyforge.pipeline.usage_limits import assert_conversion_allowed, consume_conversion_if_needed
from studyforge.semantic.artifacts import to_db_artifacts
from studyforge.semantic.cache_manager import ArtifactCache
from studyforge.semantic.chunker import compute_text_hash
from studyforge.semantic.generator import ArtifactGenerator
from studyforge.semantic.grounding import validate_bundle_sources
from studyforge.utils import get_logger, log_artifact_generation

LOG = get_logger()


class ArtifactService:
    """Generates the artifact set of a document version at most once.

    A set is identified by ``(document_id, mode, source_hash)``. Cache hits skip
    the model calls and the quota entirely; only a real generation is billed.
    """

    def __init__(self, repository, billing, generator: Optional[ArtifactGenerator] = None,
                 cache: Optional[ArtifactCache] = None):
        self.repository = repository
        self.billing = billing
        self.generator = generator or ArtifactGenerator()
        self.cache = cache or ArtifactCache(repository)

    def generate_for_document(self, document_id: int, mode: str, user_id: int, consume_usage: bool = True,
                              request_id: Optional[str] = None) -> Dict[str, Any]:
        start = time.time()
        document = self.repository.get_document(document_id, user_id=user_id)
        if document is None:
            raise DocumentNotFoundError()

        chunks = self.repository.get_document_chunks(document_id, user_id=user_id)
        if not chunks:
            raise DocumentHasNoChunksError()

        source_hash = document.text_hash or compute_text_hash('\n\n'.join(c.text_content for c in chunks))

        cached_ids = self.cache.lookup(document_id, mode, source_hash, user_id=user_id)
        if cached_ids:
            sync_review_items_for_document(self.repository, user_id, document_id, source_hash=source_hash)
            log_artifact_generation(document_id, mode, len(cached_ids), {}, int((time.time() - start) * 1000), cache_hit=True)
            return {'cached': True, 'count': len(cached_ids)}

        if consume_usage:
            plan = assert_conversion_allowed(self.billing, user_id)
        else:
            plan = self.billing.get_effective_plan(user_id)

        result = self.generator.generate(chunks, mode, request_id=request_id)
        grounded = validate_bundle_sources(result.bundle, [c.id for c in chunks], mode)
        rows = to_db_artifacts(grounded, document_id=document_id, mode=mode, source_hash=source_hash)
        if not rows:
            raise ArtifactsEmptyError()

        created = self.repository.create_artifacts(rows)
        sync_review_items_for_document(self.repository, user_id, document_id, source_hash=source_hash)
        self.cache.remember(document_id, mode, source_hash, [a.id for a in created])
        if consume_usage:
            consume_conversion_if_needed(self.billing, user_id, plan)

        log_artifact_generation(
            document_id, mode, len(rows), dict(Counter(r.type for r in rows)),
            int((time.time() - start) * 1000), cache_hit=False, validated=result.validated,
        )
        return {'cached': False, 'count': len(rows)}
