"""Shared utilities: logging, background tasks, blob storage and rate limiting"""

from .logger import (
    get_logger,
    log_error,
    log_llm_call,
    log_ocr_result,
    log_artifact_generation,
    log_rate_limited,
    set_request_context,
    get_request_context,
)
from .task_manager import TaskManager, TaskStatus
from .file_handler import S3Storage, StorageError
from .rate_limiter import RateLimiter, RateLimitResult, assert_user_rate_limit

__all__ = [
    'get_logger',
    'log_error',
    'log_llm_call',
    'log_ocr_result',
    'log_artifact_generation',
    'log_rate_limited',
    'set_request_context',
    'get_request_context',
    'TaskManager',
    'TaskStatus',
    'S3Storage',
    'StorageError',
    'RateLimiter',
    'RateLimitResult',
    'assert_user_rate_limit',
]
