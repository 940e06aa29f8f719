import os
import sys
import logging
import pathlib
import contextvars
from logging.handlers import RotatingFileHandler
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

_request_ctx_var = contextvars.ContextVar('request_ctx', default={})


def set_request_context(request_id: str, user_id: Optional[int] = None):
    _request_ctx_var.set({'request_id': request_id, 'user_id': user_id})


def get_request_context():
    return _request_ctx_var.get()


def _inject_request_context(record):
    ctx = get_request_context()
    # explicit extra={'request_id': ...} wins over the ambient context
    if getattr(record, 'request_id', None) is None:
        record.request_id = ctx.get('request_id')
    if getattr(record, 'user_id', None) is None:
        record.user_id = ctx.get('user_id')
    return True


def get_logger(name: str = 'studyforge'):
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')
    LOG_FILE_ENABLED = os.getenv('LOG_FILE_ENABLED', 'true').lower() in ('1', 'true', 'yes')
    # relative to the working directory so local runs need no /app
    LOG_FILE_PATH = os.getenv('LOG_FILE_PATH', 'logs')
    LOG_MAX_SIZE = int(os.getenv('LOG_MAX_SIZE', str(10 * 1024 * 1024)))
    LOG_MAX_FILES = int(os.getenv('LOG_MAX_FILES', '7'))

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL.upper())

    ch = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == 'json':
        fmt = JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(user_id)s')
    else:
        fmt = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if LOG_FILE_ENABLED:
        log_path = pathlib.Path(LOG_FILE_PATH)
        if not log_path.is_absolute():
            log_path = pathlib.Path(os.getcwd()) / log_path
        log_path.mkdir(parents=True, exist_ok=True)

        combined = RotatingFileHandler(log_path / 'combined.log', maxBytes=LOG_MAX_SIZE, backupCount=LOG_MAX_FILES)
        combined.setFormatter(fmt)
        logger.addHandler(combined)

        errors = RotatingFileHandler(log_path / 'error.log', maxBytes=LOG_MAX_SIZE, backupCount=LOG_MAX_FILES)
        errors.setLevel(logging.ERROR)
        errors.setFormatter(fmt)
        logger.addHandler(errors)

    f = logging.Filter()
    f.filter = _inject_request_context
    logger.addFilter(f)

    logging.captureWarnings(True)

    return logger


def log_error(error: Exception, context: dict = None):
    logger = get_logger()
    logger.error('error', exc_info=error, extra=context or {})


def log_llm_call(request_id: Optional[str], model: str, profile: str, prompt_tokens: int, completion_tokens: int, duration_ms: float):
    logger = get_logger()
    logger.info('llm_call', extra={
        'request_id': request_id,
        'model': model,
        'profile': profile,
        'prompt_tokens': prompt_tokens,
        'completion_tokens': completion_tokens,
        'duration_ms': duration_ms,
    })


def log_ocr_result(document_id: Optional[int], method: str, text_length: int, confidence: str, duration_ms: float, used_pages: Optional[int] = None):
    logger = get_logger()
    logger.info('ocr_result', extra={
        'document_id': document_id,
        'method': method,
        'text_length': text_length,
        'confidence': confidence,
        'duration_ms': duration_ms,
        'used_pages': used_pages,
    })


def log_artifact_generation(document_id: int, mode: str, artifact_count: int, type_counts: dict, duration_ms: float, cache_hit: bool = False, validated: bool = True):
    logger = get_logger()
    logger.info('artifact_generation', extra={
        'document_id': document_id,
        'mode': mode,
        'artifact_count': artifact_count,
        'type_counts': type_counts,
        'duration_ms': duration_ms,
        'cache_hit': cache_hit,
        'validated': validated,
    })


def log_rate_limited(scope: str, user_id: int, retry_after_ms: int):
    logger = get_logger()
    logger.warning('rate_limited', extra={'scope': scope, 'user_id': user_id, 'retry_after_ms': retry_after_ms})
