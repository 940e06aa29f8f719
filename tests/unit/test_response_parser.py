import pytest

from studyforge.semantic.response_parser import (
    ResponseParseError,
    extract_text_content,
    first_message_content,
    safe_json_parse,
)

pytestmark = pytest.mark.unit


def test_plain_json():
    assert safe_json_parse('{"a": 1}') == {'a': 1}


def test_fenced_json():
    assert safe_json_parse('```json\n{"a": [1, 2]}\n```') == {'a': [1, 2]}
    assert safe_json_parse('```\n{"b": true}\n```') == {'b': True}
    assert safe_json_parse('  ```JSON {"c": "x"}```  ') == {'c': 'x'}


def test_empty_content_is_empty_object():
    assert safe_json_parse('') == {}
    assert safe_json_parse('   ') == {}
    assert safe_json_parse(None) == {}


def test_invalid_json_raises():
    with pytest.raises(ResponseParseError):
        safe_json_parse('not json at all')
    with pytest.raises(ResponseParseError):
        safe_json_parse('```json\n{"a": \n```')


def test_extract_text_content_parts():
    parts = [
        {'type': 'text', 'text': 'Hello '},
        {'type': 'image_url', 'image_url': {'url': 'x'}},
        {'type': 'text', 'text': 'world'},
    ]
    assert extract_text_content(parts) == 'Hello world'
    assert extract_text_content('plain') == 'plain'
    assert extract_text_content(None) == ''


def test_first_message_content():
    resp = {'choices': [{'message': {'content': '{"ok": 1}'}}]}
    assert first_message_content(resp) == '{"ok": 1}'
    assert first_message_content({'choices': []}) == ''
    assert first_message_content({}) == ''
