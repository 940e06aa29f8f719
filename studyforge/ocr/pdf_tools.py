import io
import base64
from typing import NamedTuple

from pypdf import PdfReader, PdfWriter
from pypdf.errors import DependencyError, PdfReadError, PyPdfError

from studyforge.semantic.chunker import normalize_extracted_text

# Encrypted files fail on first page access (FileNotDecryptedError), AES ones
# without the crypto extra raise DependencyError.
PDF_ERRORS = (PyPdfError, DependencyError, KeyError, ValueError)


class PdfToolsError(Exception):
    pass


class NativePdfText(NamedTuple):
    text: str
    total_pages: int


class LimitedPdf(NamedTuple):
    pdf_base64: str
    total_pages: int
    used_pages: int


def _reader(data: bytes) -> PdfReader:
    try:
        return PdfReader(io.BytesIO(data))
    except PDF_ERRORS as e:
        raise PdfToolsError(f'Unreadable PDF: {e}') from e


def _page_count(reader: PdfReader) -> int:
    try:
        return len(reader.pages)
    except PDF_ERRORS as e:
        raise PdfToolsError(f'Unreadable PDF: {e}') from e


def read_pdf_text(data: bytes) -> NativePdfText:
    """Text layer of every page, normalized, plus the page count."""
    reader = _reader(data)
    total_pages = _page_count(reader)
    pages = []
    for i in range(total_pages):
        try:
            pages.append(reader.pages[i].extract_text() or '')
        except (PdfReadError, KeyError, ValueError):
            pages.append('')
        except PDF_ERRORS as e:
            raise PdfToolsError(f'Unreadable PDF: {e}') from e
    return NativePdfText(text=normalize_extracted_text('\n'.join(pages)), total_pages=max(1, total_pages))


def limit_pdf_pages(data: bytes, max_pages: int) -> LimitedPdf:
    """Keep the first ``max_pages`` pages. Returns the original bytes when nothing is cut."""
    reader = _reader(data)
    total_pages = _page_count(reader)
    used_pages = max(1, min(total_pages, max_pages))

    if used_pages >= total_pages:
        return LimitedPdf(base64.b64encode(data).decode('ascii'), total_pages, used_pages)

    writer = PdfWriter()
    try:
        for i in range(used_pages):
            writer.add_page(reader.pages[i])
        buf = io.BytesIO()
        writer.write(buf)
    except PDF_ERRORS as e:
        raise PdfToolsError(f'Unreadable PDF: {e}') from e
    return LimitedPdf(base64.b64encode(buf.getvalue()).decode('ascii'), total_pages, used_pages)
