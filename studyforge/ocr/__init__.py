"""Text acquisition: native PDF text with LLM OCR fallback."""
from .extraction import (
    TextExtractor, ExtractionResult, decode_upload_base64,
    infer_confidence, assert_upload_size, assert_upload_mime_type,
)
from .pdf_tools import read_pdf_text, limit_pdf_pages, PdfToolsError

__all__ = [
    'TextExtractor', 'ExtractionResult', 'decode_upload_base64',
    'infer_confidence', 'assert_upload_size', 'assert_upload_mime_type',
    'read_pdf_text', 'limit_pdf_pages', 'PdfToolsError',
]
