"""Errors surfaced to calling layers.

Each error carries a machine readable ``code``; ``str(exc)`` is the sentinel
string callers pattern-match on (for example ``RATE_LIMITED_RETRY_AFTER_12_SECONDS``).
"""
from typing import Optional


class StudyForgeError(Exception):
    code = 'STUDYFORGE_ERROR'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)


class LimitReachedError(StudyForgeError):
    code = 'LIMIT_REACHED'


class RateLimitedError(StudyForgeError):
    code = 'RATE_LIMITED'

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f'RATE_LIMITED_RETRY_AFTER_{retry_after_seconds}_SECONDS')


class FileTooLargeError(StudyForgeError):
    code = 'FILE_TOO_LARGE'

    def __init__(self, max_mb: int):
        self.max_mb = max_mb
        super().__init__(f'FILE_TOO_LARGE_MAX_{max_mb}_MB')


class UnsupportedMimeTypeError(StudyForgeError):
    code = 'UNSUPPORTED_MIME_TYPE'

    def __init__(self, mime_type: str):
        self.mime_type = mime_type
        super().__init__(f'UNSUPPORTED_MIME_TYPE_{mime_type}')


class InvalidFileEncodingError(StudyForgeError):
    code = 'INVALID_FILE_ENCODING'


class DocumentNotFoundError(StudyForgeError):
    code = 'DOCUMENT_NOT_FOUND'


class DocumentHasNoChunksError(StudyForgeError):
    code = 'DOCUMENT_HAS_NO_CHUNKS'


class ArtifactsEmptyError(StudyForgeError):
    code = 'ARTIFACTS_EMPTY'


class EmptyExtractionError(StudyForgeError):
    code = 'EMPTY_EXTRACTION'


class ReviewItemNotFoundError(StudyForgeError):
    code = 'REVIEW_ITEM_NOT_FOUND'


class InvalidStatusTransition(StudyForgeError):
    code = 'INVALID_STATUS_TRANSITION'

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f'INVALID_STATUS_TRANSITION_{current}_TO_{target}')
