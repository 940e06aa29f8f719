"""
Semantic processing: deterministic chunking, LLM access, artifact generation,
source grounding and the artifact idempotency cache.
"""
from .chunker import (
    ChunkingOptions, DeterministicChunk, ChunkingError,
    chunk_text_deterministic, compute_text_hash, normalize_extracted_text,
)
from .llm_client import LLMClient, LLMClientError, LLMAPIError, LLMTimeoutError
from .response_parser import ResponseParseError, safe_json_parse, extract_text_content, first_message_content
from .artifacts import (
    ArtifactBundle, SummaryItem, MapTopic, ContentMap, FlashcardItem, QuestionItem,
    SummaryContent, ContentMapContent, FlashcardContent, QuestionContent,
    parse_artifact_bundle, to_db_artifacts, decode_artifact_content,
)
from .grounding import validate_bundle_sources, require_source_for_item
from .generator import ArtifactGenerator, GenerationResult, GenerationError
from .cache_manager import ArtifactCache

__all__ = [
    'ChunkingOptions', 'DeterministicChunk', 'ChunkingError',
    'chunk_text_deterministic', 'compute_text_hash', 'normalize_extracted_text',
    'LLMClient', 'LLMClientError', 'LLMAPIError', 'LLMTimeoutError',
    'ResponseParseError', 'safe_json_parse', 'extract_text_content', 'first_message_content',
    'ArtifactBundle', 'SummaryItem', 'MapTopic', 'ContentMap', 'FlashcardItem', 'QuestionItem',
    'SummaryContent', 'ContentMapContent', 'FlashcardContent', 'QuestionContent',
    'parse_artifact_bundle', 'to_db_artifacts', 'decode_artifact_content',
    'validate_bundle_sources', 'require_source_for_item',
    'ArtifactGenerator', 'GenerationResult', 'GenerationError',
    'ArtifactCache',
]
