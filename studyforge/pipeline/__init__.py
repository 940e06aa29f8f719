"""Entry points: upload and background ingestion, artifact generation, quota and read queries."""
from .usage_limits import InMemoryBilling, assert_conversion_allowed, consume_conversion_if_needed
from .generation import ArtifactService
from .ingestion import IngestionService
from .queries import (
    get_document, list_documents, recent_documents, usage_today,
    list_artifacts, list_chunks, review_today, review_all, review_stats,
)

__all__ = [
    'InMemoryBilling', 'assert_conversion_allowed', 'consume_conversion_if_needed',
    'ArtifactService', 'IngestionService',
    'get_document', 'list_documents', 'recent_documents', 'usage_today',
    'list_artifacts', 'list_chunks', 'review_today', 'review_all', 'review_stats',
]
