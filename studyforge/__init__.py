"""studyforge: turns uploaded study material into grounded study artifacts.

Subpackages:
- ocr: text acquisition with native PDF text and LLM OCR fallback
- semantic: chunking, LLM client, artifact generation and grounding
- flashcards: SM-2 review scheduling
- storage: documents, chunks, artifacts and review items
- pipeline: upload, background ingestion, quota and read queries
"""

__version__ = '0.1.0'
