"""Text acquisition for uploaded study material.

PDFs are read through their embedded text layer first; when that layer is too
thin to be a real typed document the file is treated as a scan and sent to an
OCR capable model, capped to a page budget. Images always go to OCR.
"""
import base64
import binascii
import time
from typing import Optional

from pydantic import BaseModel

from studyforge.config import ALLOWED_UPLOAD_MIME_TYPES, get_settings
from studyforge.errors import FileTooLargeError, InvalidFileEncodingError, UnsupportedMimeTypeError
from studyforge.ocr.pdf_tools import PdfToolsError, limit_pdf_pages, read_pdf_text
from studyforge.semantic.chunker import normalize_extracted_text
from studyforge.semantic.llm_client import LLMClient
from studyforge.semantic.response_parser import ResponseParseError, first_message_content, safe_json_parse
from studyforge.utils import get_logger, log_ocr_result

LOG = get_logger()

MIN_NATIVE_TEXT_TOTAL = 300
MIN_NATIVE_TEXT_PER_PAGE = 40
CONFIDENCE_LEVELS = ('high', 'medium', 'low')


class ExtractionResult(BaseModel):
    text: str
    confidence: str
    method: str
    total_pages: Optional[int] = None
    used_pages: Optional[int] = None


def normalize_confidence(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    return normalized if normalized in CONFIDENCE_LEVELS else None


def infer_confidence(text: str, page_count: int = 1) -> str:
    chars = len(text.strip())
    per_page = chars / max(1, page_count)
    if per_page >= 700 or chars >= 2000:
        return 'high'
    if per_page >= 200 or chars >= 600:
        return 'medium'
    return 'low'


def decode_upload_base64(file_base64: str) -> bytes:
    try:
        return base64.b64decode(''.join((file_base64 or '').split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidFileEncodingError() from e


def assert_upload_size(data: bytes, max_upload_mb: Optional[int] = None):
    max_mb = max_upload_mb if max_upload_mb is not None else get_settings().MAX_UPLOAD_MB
    if len(data) > max_mb * 1024 * 1024:
        raise FileTooLargeError(max_mb)


def assert_upload_mime_type(mime_type: str):
    if (mime_type or '').strip().lower() not in ALLOWED_UPLOAD_MIME_TYPES:
        raise UnsupportedMimeTypeError(mime_type)


def _parse_ocr_response(raw: str, page_count: int, method: str, used_pages: Optional[int] = None) -> ExtractionResult:
    try:
        parsed = safe_json_parse(raw)
    except ResponseParseError:
        parsed = None
    if isinstance(parsed, dict):
        text = normalize_extracted_text(parsed.get('text') if isinstance(parsed.get('text'), str) else '')
        confidence = normalize_confidence(parsed.get('confidence')) or infer_confidence(text, page_count)
    else:
        LOG.warning('ocr_response_not_json', extra={'method': method, 'length': len(raw or '')})
        text = normalize_extracted_text(raw)
        confidence = infer_confidence(text, page_count)
    return ExtractionResult(text=text, confidence=confidence, method=method, used_pages=used_pages)


class TextExtractor:
    _instance = None

    def __init__(self, llm=None, max_pdf_pages: Optional[int] = None):
        self._llm = llm
        self.max_pdf_pages = max_pdf_pages or get_settings().MAX_PDF_PAGES_OCR

    @classmethod
    def get_instance(cls) -> 'TextExtractor':
        if cls._instance is None:
            cls._instance = TextExtractor()
        return cls._instance

    @property
    def llm(self):
        if self._llm is None:
            self._llm = LLMClient.get_instance()
        return self._llm

    def _ocr_image(self, file_base64: str, mime_type: str) -> ExtractionResult:
        resp = self.llm.invoke([
            {'role': 'system', 'content': (
                'You are a high precision OCR engine. Extract ALL visible text without inventing anything. '
                'Answer with JSON: {"text": "...", "confidence": "high|medium|low"}.'
            )},
            {'role': 'user', 'content': [
                {'type': 'text', 'text': 'Extract the text of this image, keeping its structure.'},
                {'type': 'image_url', 'image_url': {'url': f'data:{mime_type};base64,{file_base64}'}},
            ]},
        ], profile='fast', response_format={'type': 'json_object'}, media_resolution='high')
        return _parse_ocr_response(first_message_content(resp), 1, 'ocr_image')

    def _ocr_pdf(self, pdf_base64: str, used_pages: int, media_resolution: str) -> ExtractionResult:
        resp = self.llm.invoke([
            {'role': 'system', 'content': (
                'You are an OCR engine for PDF files. Return valid JSON in the form '
                '{"text": "...", "confidence": "high|medium|low"}. Do not invent content.'
            )},
            {'role': 'user', 'content': [
                {'type': 'text', 'text': f'Extract the text of the first {used_pages} pages of this PDF. Keep paragraphs and headings where possible.'},
                {'type': 'file', 'file': {'filename': 'document.pdf', 'file_data': f'data:application/pdf;base64,{pdf_base64}'}},
            ]},
        ], profile='fast', response_format={'type': 'json_object'}, media_resolution=media_resolution)
        return _parse_ocr_response(first_message_content(resp), used_pages, 'ocr_pdf', used_pages=used_pages)

    def _extract_pdf(self, file_bytes: bytes, file_base64: str) -> ExtractionResult:
        try:
            native = read_pdf_text(file_bytes)
            native_text, native_pages = native.text, native.total_pages
        except PdfToolsError as e:
            LOG.warning('pdf_native_text_failed', extra={'error': str(e)})
            native_text, native_pages = '', 1

        per_page = len(native_text) / max(1, native_pages)
        if len(native_text) >= MIN_NATIVE_TEXT_TOTAL and per_page >= MIN_NATIVE_TEXT_PER_PAGE:
            return ExtractionResult(
                text=native_text,
                confidence=infer_confidence(native_text, native_pages),
                method='native_pdf',
                total_pages=native_pages,
                used_pages=native_pages,
            )

        try:
            limited = limit_pdf_pages(file_bytes, self.max_pdf_pages)
            pdf_base64, total_pages, used_pages = limited.pdf_base64, limited.total_pages, limited.used_pages
        except PdfToolsError as e:
            LOG.warning('pdf_page_limit_failed', extra={'error': str(e)})
            pdf_base64, total_pages, used_pages = file_base64, native_pages, native_pages

        ocr = self._ocr_pdf(pdf_base64, used_pages, 'medium')
        if ocr.confidence == 'low':
            high_res = self._ocr_pdf(pdf_base64, used_pages, 'high')
            if len(high_res.text) > len(ocr.text):
                ocr = high_res

        final_text = ocr.text if len(ocr.text) > len(native_text) else native_text
        return ExtractionResult(
            text=final_text,
            confidence=infer_confidence(final_text, used_pages),
            method='ocr_pdf',
            total_pages=total_pages,
            used_pages=used_pages,
        )

    def extract(self, file_bytes: bytes, file_base64: str, mime_type: str, document_id: Optional[int] = None) -> ExtractionResult:
        start = time.time()
        if (mime_type or '').lower() != 'application/pdf':
            result = self._ocr_image(file_base64, mime_type)
        else:
            result = self._extract_pdf(file_bytes, file_base64)
        log_ocr_result(document_id, result.method, len(result.text), result.confidence,
                       int((time.time() - start) * 1000), used_pages=result.used_pages)
        return result

