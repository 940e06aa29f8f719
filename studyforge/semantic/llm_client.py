"""LLM invocation boundary.

Provides:
- LLMClient singleton wrapping an OpenAI compatible chat completions endpoint
  with tenacity retries
- profile based model selection ('fast' for drafts and OCR, 'strict' for validation)

The rest of the package only depends on ``invoke(...)`` returning a dict shaped
like ``{'choices': [{'message': {'content': ...}}]}``.

Custom exceptions: LLMClientError, LLMAPIError, LLMTimeoutError
"""
from __future__ import annotations

import os
import time
import copy
from typing import Any, Dict, List, Optional

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from openai import OpenAI, APITimeoutError, OpenAIError

from studyforge.utils import get_logger, log_llm_call

LOG = get_logger()


class LLMClientError(Exception):
    pass


class LLMAPIError(LLMClientError):
    pass


class LLMTimeoutError(LLMClientError):
    pass


LLM_BASE_URL = os.getenv('LLM_BASE_URL') or None
LLM_FAST_MODEL = os.getenv('LLM_FAST_MODEL', 'gpt-4o-mini')
LLM_STRICT_MODEL = os.getenv('LLM_STRICT_MODEL', 'gpt-4o')
LLM_MAX_TOKENS = int(os.getenv('LLM_MAX_TOKENS', '32768'))
LLM_TIMEOUT = int(os.getenv('LLM_TIMEOUT', '120'))
LLM_RETRY_ATTEMPTS = int(os.getenv('LLM_RETRY_ATTEMPTS', '3'))
LLM_RETRY_MULTIPLIER = int(os.getenv('LLM_RETRY_MULTIPLIER', '2'))
LLM_RETRY_MAX_WAIT = int(os.getenv('LLM_RETRY_MAX_WAIT', '10'))
LLM_REASONING_EFFORT_ENABLED = os.getenv('LLM_REASONING_EFFORT_ENABLED', 'false').lower() in ('1', 'true', 'yes')
LLM_REASONING_EFFORT_FAST = os.getenv('LLM_REASONING_EFFORT_FAST', 'medium')
LLM_REASONING_EFFORT_STRICT = os.getenv('LLM_REASONING_EFFORT_STRICT', 'high')

PROFILES = ('fast', 'strict')
REASONING_LEVELS = ('low', 'medium', 'high')
# chat completions expose resolution per image part as `detail`
MEDIA_RESOLUTION_DETAIL = {'low': 'low', 'medium': 'auto', 'high': 'high'}


def resolve_model(profile: str) -> str:
    return LLM_STRICT_MODEL if profile == 'strict' else LLM_FAST_MODEL


def resolve_reasoning_effort(profile: str, mode: Optional[str] = None) -> str:
    if profile == 'strict':
        level = LLM_REASONING_EFFORT_STRICT.lower()
        return level if level in REASONING_LEVELS else 'high'
    if mode == 'exam':
        return 'high'
    level = LLM_REASONING_EFFORT_FAST.lower()
    return level if level in REASONING_LEVELS else 'medium'


def apply_media_resolution(messages: List[Dict[str, Any]], media_resolution: Optional[str]) -> List[Dict[str, Any]]:
    detail = MEDIA_RESOLUTION_DETAIL.get(media_resolution or '')
    if not detail:
        return messages
    out = copy.deepcopy(messages)
    for msg in out:
        content = msg.get('content')
        if not isinstance(content, list):
            continue
        for part in content:
            if isinstance(part, dict) and part.get('type') == 'image_url':
                part.setdefault('image_url', {})['detail'] = detail
    return out


class LLMClient:
    _instance = None

    def __init__(self, client: Optional[OpenAI] = None):
        if client is None:
            key = os.getenv('LLM_API_KEY') or os.getenv('OPENAI_API_KEY')
            if not key:
                raise LLMClientError('LLM_API_KEY not set')
            client = OpenAI(api_key=key, base_url=LLM_BASE_URL, timeout=LLM_TIMEOUT)
        self._client = client
        LOG.info('llm_client_initialized', extra={'fast_model': LLM_FAST_MODEL, 'strict_model': LLM_STRICT_MODEL})

    @classmethod
    def get_instance(cls) -> 'LLMClient':
        if cls._instance is None:
            cls._instance = LLMClient()
        return cls._instance

    @retry(stop=stop_after_attempt(LLM_RETRY_ATTEMPTS), wait=wait_exponential(multiplier=LLM_RETRY_MULTIPLIER, max=LLM_RETRY_MAX_WAIT), retry=retry_if_exception_type((LLMAPIError, LLMTimeoutError)), reraise=True)
    def _create(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._client.chat.completions.create(**params)
        except APITimeoutError as e:
            LOG.warning('llm_timeout', extra={'model': params.get('model')})
            raise LLMTimeoutError(str(e)) from e
        except OpenAIError as e:
            LOG.warning('llm_api_error', extra={'model': params.get('model'), 'error': str(e)})
            raise LLMAPIError(str(e)) from e
        if hasattr(resp, 'model_dump'):
            resp = resp.model_dump()
        return resp

    def invoke(self, messages: List[Dict[str, Any]], profile: str = 'fast', mode: Optional[str] = None,
               response_format: Optional[Dict[str, Any]] = None, media_resolution: Optional[str] = None,
               max_tokens: Optional[int] = None, temperature: Optional[float] = None,
               request_id: Optional[str] = None) -> Dict[str, Any]:
        if profile not in PROFILES:
            raise LLMClientError(f'Unknown profile: {profile}')
        if not any(m.get('role') != 'system' for m in messages):
            raise LLMClientError('invoke requires at least one non-system message')

        model = resolve_model(profile)
        params: Dict[str, Any] = {
            'model': model,
            'messages': apply_media_resolution(messages, media_resolution),
            'max_tokens': max_tokens or LLM_MAX_TOKENS,
        }
        if response_format:
            params['response_format'] = response_format
        if temperature is not None:
            params['temperature'] = temperature
        if LLM_REASONING_EFFORT_ENABLED:
            params['reasoning_effort'] = resolve_reasoning_effort(profile, mode)

        start = time.time()
        resp = self._create(params)
        duration_ms = int((time.time() - start) * 1000)
        usage = resp.get('usage') or {}
        log_llm_call(request_id, model, profile, usage.get('prompt_tokens', 0), usage.get('completion_tokens', 0), duration_ms)
        return resp
