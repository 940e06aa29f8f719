import os
import json
from typing import List, Optional

import redis

from studyforge.utils import get_logger

LOG = get_logger()

REDIS_HOST = os.getenv('REDIS_HOST', 'redis')
REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
REDIS_CACHE_TTL = int(os.getenv('REDIS_CACHE_TTL', '3600'))


class ArtifactCache:
    """Idempotency lookup for generated artifact sets.

    The key is ``(document_id, mode, source_hash)``: the hash changes whenever the
    extracted text changes, so there is nothing to invalidate explicitly. The
    repository is the source of truth; Redis only memoises the artifact ids of
    a key so repeated lookups skip the database.
    """

    def __init__(self, repository, redis_client=None):
        self.repository = repository
        self.ttl = REDIS_CACHE_TTL
        self.enabled = os.getenv('REDIS_CACHE_ENABLED', 'true').lower() in ('1', 'true', 'yes')
        self._client = redis_client
        if not self.enabled:
            LOG.info('redis_cache_disabled')
            self._client = None
            return
        try:
            if self._client is None:
                self._client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=os.getenv('REDIS_PASSWORD') or None, decode_responses=True)
            self._client.ping()
            LOG.info('redis_cache_connected')
        except Exception as e:
            LOG.warning('redis_cache_unavailable', extra={'error': str(e)})
            self.enabled = False
            self._client = None

    @staticmethod
    def key(document_id: int, mode: str, source_hash: str) -> str:
        return f'artifacts:{document_id}:{mode}:{source_hash}'

    def _memo_get(self, key: str) -> Optional[List[int]]:
        if not self.enabled or not self._client:
            return None
        try:
            val = self._client.get(key)
        except Exception as e:
            LOG.warning('cache_get_failed', extra={'key': key, 'error': str(e)})
            return None
        if val is None:
            return None
        try:
            ids = json.loads(val)
        except ValueError:
            return None
        return [int(i) for i in ids] if isinstance(ids, list) and ids else None

    def lookup(self, document_id: int, mode: str, source_hash: str, user_id: Optional[int] = None) -> List[int]:
        """Artifact ids already generated for this key; empty on a miss."""
        key = self.key(document_id, mode, source_hash)
        memo = self._memo_get(key)
        if memo:
            LOG.info('cache_hit', extra={'key': key, 'source': 'redis'})
            return memo
        rows = self.repository.get_document_artifacts(document_id, mode=mode, source_hash=source_hash, user_id=user_id)
        if not rows:
            LOG.info('cache_miss', extra={'key': key})
            return []
        ids = [r.id for r in rows]
        LOG.info('cache_hit', extra={'key': key, 'source': 'repository'})
        self.remember(document_id, mode, source_hash, ids)
        return ids

    def remember(self, document_id: int, mode: str, source_hash: str, artifact_ids: List[int]):
        if not self.enabled or not self._client or not artifact_ids:
            return
        key = self.key(document_id, mode, source_hash)
        try:
            self._client.setex(key, self.ttl, json.dumps(list(artifact_ids)))
            LOG.info('cache_set', extra={'key': key, 'ttl': self.ttl})
        except Exception as e:
            LOG.warning('cache_set_failed', extra={'key': key, 'error': str(e)})

    def invalidate(self, document_id: int, mode: str, source_hash: str):
        if not self.enabled or not self._client:
            return
        key = self.key(document_id, mode, source_hash)
        try:
            self._client.delete(key)
            LOG.info('cache_invalidate', extra={'key': key})
        except Exception as e:
            LOG.warning('cache_invalidate_failed', extra={'key': key, 'error': str(e)})
