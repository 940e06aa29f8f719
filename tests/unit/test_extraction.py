import io
import base64

import pytest
from pypdf import PdfWriter

import studyforge.ocr.extraction as extraction_mod
from studyforge.errors import FileTooLargeError, InvalidFileEncodingError, UnsupportedMimeTypeError
from studyforge.ocr.extraction import (
    TextExtractor,
    assert_upload_mime_type,
    assert_upload_size,
    decode_upload_base64,
    infer_confidence,
    normalize_confidence,
)
from studyforge.ocr.pdf_tools import LimitedPdf, NativePdfText, PdfToolsError
from tests.fixtures.mock_llm import FakeLLM
from tests.fixtures.sample_data import SAMPLE_TEXT

pytestmark = pytest.mark.unit

PNG_BYTES = b'\x89PNG\r\n\x1a\nfake'
PNG_B64 = base64.b64encode(PNG_BYTES).decode('ascii')
PDF_BYTES = b'%PDF-1.4 fake'
PDF_B64 = base64.b64encode(PDF_BYTES).decode('ascii')


def test_infer_confidence():
    assert infer_confidence('x' * 2000, 10) == 'high'
    assert infer_confidence('x' * 700, 1) == 'high'
    assert infer_confidence('x' * 600, 5) == 'medium'
    assert infer_confidence('x' * 250, 1) == 'medium'
    assert infer_confidence('x' * 100, 1) == 'low'
    assert infer_confidence('', 0) == 'low'


def test_normalize_confidence():
    assert normalize_confidence(' HIGH ') == 'high'
    assert normalize_confidence('certain') is None
    assert normalize_confidence(0.9) is None


def test_upload_guards():
    assert_upload_size(b'x' * 1024, max_upload_mb=1)
    with pytest.raises(FileTooLargeError, match='FILE_TOO_LARGE_MAX_1_MB'):
        assert_upload_size(b'x' * (1024 * 1024 + 1), max_upload_mb=1)

    assert_upload_mime_type('application/pdf')
    assert_upload_mime_type('IMAGE/PNG')
    with pytest.raises(UnsupportedMimeTypeError, match='UNSUPPORTED_MIME_TYPE_text/plain'):
        assert_upload_mime_type('text/plain')


def test_image_goes_to_ocr():
    llm = FakeLLM([{'text': '  Handwritten notes\r\nline two ', 'confidence': 'HIGH'}])
    result = TextExtractor(llm=llm).extract(PNG_BYTES, PNG_B64, 'image/png')

    assert result.text == 'Handwritten notes\nline two'
    assert result.confidence == 'high'
    assert result.method == 'ocr_image'
    call = llm.calls[0]
    assert call['media_resolution'] == 'high'
    image_part = call['messages'][1]['content'][1]
    assert image_part['image_url']['url'] == f'data:image/png;base64,{PNG_B64}'


def test_image_ocr_tolerates_plain_text_reply():
    llm = FakeLLM(['Just the text, no JSON'])
    result = TextExtractor(llm=llm).extract(PNG_BYTES, PNG_B64, 'image/jpeg')
    assert result.text == 'Just the text, no JSON'
    assert result.confidence == 'low'


def test_missing_confidence_is_inferred():
    llm = FakeLLM([{'text': 'x' * 800}])
    result = TextExtractor(llm=llm).extract(PNG_BYTES, PNG_B64, 'image/webp')
    assert result.confidence == 'high'


def test_pdf_with_text_layer_skips_ocr(monkeypatch):
    monkeypatch.setattr(extraction_mod, 'read_pdf_text', lambda data: NativePdfText(SAMPLE_TEXT, 2))
    llm = FakeLLM()
    result = TextExtractor(llm=llm).extract(PDF_BYTES, PDF_B64, 'application/pdf')

    assert result.method == 'native_pdf'
    assert result.text == SAMPLE_TEXT
    assert result.confidence == infer_confidence(SAMPLE_TEXT, 2)
    assert result.total_pages == result.used_pages == 2
    assert llm.calls == []


def test_thin_text_layer_falls_back_to_ocr(monkeypatch):
    # 350 chars over 10 pages is a scan with a stray header
    monkeypatch.setattr(extraction_mod, 'read_pdf_text', lambda data: NativePdfText('h' * 350, 10))
    monkeypatch.setattr(extraction_mod, 'limit_pdf_pages', lambda data, n: LimitedPdf('TRIMMED', 10, 10))
    llm = FakeLLM([{'text': SAMPLE_TEXT, 'confidence': 'medium'}])
    result = TextExtractor(llm=llm).extract(PDF_BYTES, PDF_B64, 'application/pdf')

    assert result.method == 'ocr_pdf'
    assert result.text == SAMPLE_TEXT
    assert len(llm.calls) == 1
    file_part = llm.calls[0]['messages'][1]['content'][1]
    assert file_part['type'] == 'file'
    assert file_part['file']['file_data'] == 'data:application/pdf;base64,TRIMMED'


def test_low_confidence_retries_at_high_resolution(monkeypatch):
    monkeypatch.setattr(extraction_mod, 'read_pdf_text', lambda data: NativePdfText('', 3))
    monkeypatch.setattr(extraction_mod, 'limit_pdf_pages', lambda data, n: LimitedPdf('B64', 3, 3))
    llm = FakeLLM([
        {'text': 'blurry', 'confidence': 'low'},
        {'text': SAMPLE_TEXT, 'confidence': 'high'},
    ])
    result = TextExtractor(llm=llm).extract(PDF_BYTES, PDF_B64, 'application/pdf')

    assert [c['media_resolution'] for c in llm.calls] == ['medium', 'high']
    assert result.text == SAMPLE_TEXT
    assert result.confidence == infer_confidence(SAMPLE_TEXT, 3)
    assert (result.total_pages, result.used_pages) == (3, 3)


def test_high_resolution_retry_kept_only_when_longer(monkeypatch):
    monkeypatch.setattr(extraction_mod, 'read_pdf_text', lambda data: NativePdfText('', 1))
    monkeypatch.setattr(extraction_mod, 'limit_pdf_pages', lambda data, n: LimitedPdf('B64', 1, 1))
    llm = FakeLLM([
        {'text': 'first pass text', 'confidence': 'low'},
        {'text': 'short', 'confidence': 'low'},
    ])
    result = TextExtractor(llm=llm).extract(PDF_BYTES, PDF_B64, 'application/pdf')
    assert result.text == 'first pass text'


def test_page_budget_is_applied(monkeypatch):
    seen = {}

    def fake_limit(data, max_pages):
        seen['max_pages'] = max_pages
        return LimitedPdf('B64', 80, max_pages)

    monkeypatch.setattr(extraction_mod, 'read_pdf_text', lambda data: NativePdfText('', 80))
    monkeypatch.setattr(extraction_mod, 'limit_pdf_pages', fake_limit)
    llm = FakeLLM([{'text': SAMPLE_TEXT, 'confidence': 'high'}])
    result = TextExtractor(llm=llm, max_pdf_pages=5).extract(PDF_BYTES, PDF_B64, 'application/pdf')

    assert seen['max_pages'] == 5
    assert (result.total_pages, result.used_pages) == (80, 5)
    assert 'first 5 pages' in llm.calls[0]['messages'][1]['content'][0]['text']


def test_unreadable_pdf_still_goes_to_ocr(monkeypatch):
    def broken(*args):
        raise PdfToolsError('Unreadable PDF')

    monkeypatch.setattr(extraction_mod, 'read_pdf_text', broken)
    monkeypatch.setattr(extraction_mod, 'limit_pdf_pages', broken)
    llm = FakeLLM([{'text': SAMPLE_TEXT, 'confidence': 'high'}])
    result = TextExtractor(llm=llm).extract(PDF_BYTES, PDF_B64, 'application/pdf')

    assert result.text == SAMPLE_TEXT
    file_part = llm.calls[0]['messages'][1]['content'][1]
    assert file_part['file']['file_data'] == f'data:application/pdf;base64,{PDF_B64}'


def test_encrypted_pdf_goes_to_ocr():
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    writer.encrypt(user_password='secret', owner_password='owner', algorithm='RC4-128')
    buf = io.BytesIO()
    writer.write(buf)
    data = buf.getvalue()
    data_b64 = base64.b64encode(data).decode('ascii')

    llm = FakeLLM([{'text': SAMPLE_TEXT, 'confidence': 'high'}])
    result = TextExtractor(llm=llm).extract(data, data_b64, 'application/pdf')

    assert result.method == 'ocr_pdf'
    assert result.text == SAMPLE_TEXT
    assert len(llm.calls) == 1
    file_part = llm.calls[0]['messages'][1]['content'][1]
    assert file_part['file']['file_data'] == f'data:application/pdf;base64,{data_b64}'


def test_decode_upload_base64():
    assert decode_upload_base64(PNG_B64) == PNG_BYTES
    wrapped = '\n'.join(PNG_B64[i:i + 8] for i in range(0, len(PNG_B64), 8))
    assert decode_upload_base64(wrapped) == PNG_BYTES
    with pytest.raises(InvalidFileEncodingError, match='INVALID_FILE_ENCODING'):
        decode_upload_base64('abc')
    with pytest.raises(InvalidFileEncodingError):
        decode_upload_base64('not*base64!')
