import re
import json
from typing import Any, Dict

_FENCE_OPEN = re.compile(r'^```(?:json)?\s*', re.IGNORECASE)
_FENCE_CLOSE = re.compile(r'```$')


class ResponseParseError(Exception):
    pass


def extract_text_content(content: Any) -> str:
    """Flatten a chat message content (string or list of parts) into text."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ''
    parts = []
    for part in content:
        if isinstance(part, dict) and part.get('type') == 'text' and isinstance(part.get('text'), str):
            parts.append(part['text'])
    return ''.join(parts)


def first_message_content(resp: Dict[str, Any]) -> str:
    choices = resp.get('choices', []) if isinstance(resp, dict) else []
    if not choices:
        return ''
    message = choices[0].get('message') or {}
    return extract_text_content(message.get('content'))


def safe_json_parse(content: str) -> Any:
    trimmed = (content or '').strip()
    if not trimmed:
        return {}
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        pass
    without_fence = _FENCE_CLOSE.sub('', _FENCE_OPEN.sub('', trimmed)).strip()
    try:
        return json.loads(without_fence)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f'Invalid JSON in model response: {e}') from e
