"""Deterministic, offset based chunking of extracted text.

Chunk ids end up as citations inside generated artifacts, so identical text and
options must always yield identical chunks.
"""
import re
import hashlib
from typing import List, Optional, Tuple

from pydantic import BaseModel


class ChunkingError(Exception):
    pass


class ChunkingOptions(BaseModel):
    target_size: int = 760
    min_size: int = 600
    max_size: int = 900
    overlap: int = 120


class DeterministicChunk(BaseModel):
    chunk_order: int
    text_content: str
    start_offset: int
    end_offset: int


BREAKPOINT_PATTERNS = [
    re.compile(r'\n\n'),
    re.compile(r'\n'),
    re.compile(r'[.!?;:](?=\s)'),
    re.compile(r',(?=\s)'),
    re.compile(r'\s+'),
]
MAX_ITERATIONS = 10000


def normalize_chunk_options(options: Optional[ChunkingOptions] = None) -> ChunkingOptions:
    merged = options or ChunkingOptions()
    min_size = max(200, min(merged.min_size, merged.max_size - 50))
    max_size = max(min_size + 50, merged.max_size)
    target_size = min(max_size, max(min_size, merged.target_size))
    overlap = max(0, min(200, merged.overlap))
    return ChunkingOptions(target_size=target_size, min_size=min_size, max_size=max_size, overlap=overlap)


def normalize_extracted_text(text: str) -> str:
    return (text or '').replace('\r\n', '\n').replace('\u00a0', ' ').strip()


def compute_text_hash(text: str) -> str:
    return hashlib.sha256(normalize_extracted_text(text).encode('utf-8')).hexdigest()


def _find_best_breakpoint(text: str, lower: int, upper: int) -> Optional[int]:
    if lower >= upper:
        return None
    segment = text[lower:upper]
    if not segment:
        return None
    for pattern in BREAKPOINT_PATTERNS:
        last = None
        for last in pattern.finditer(segment):
            pass
        if last is not None:
            return lower + last.end()
    return None


def _trim_boundaries(text: str, start: int, end: int) -> Tuple[int, int]:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def chunk_text_deterministic(raw_text: str, options: Optional[ChunkingOptions] = None) -> List[DeterministicChunk]:
    text = normalize_extracted_text(raw_text)
    if not text:
        return []

    opts = normalize_chunk_options(options)
    chunks: List[DeterministicChunk] = []
    cursor = 0
    iterations = 0

    while cursor < len(text):
        iterations += 1
        if iterations > MAX_ITERATIONS:
            raise ChunkingError('Chunking aborted due to excessive iterations')

        window_end = min(len(text), cursor + opts.max_size)
        window_start = min(window_end, cursor + opts.min_size)

        end = window_end
        if window_start < window_end:
            breakpoint_at = _find_best_breakpoint(text, window_start, window_end)
            if breakpoint_at is not None and breakpoint_at > cursor:
                end = breakpoint_at

        start, trimmed_end = _trim_boundaries(text, cursor, end)
        if trimmed_end <= start:
            cursor = max(end, cursor + 1)
            continue

        chunks.append(DeterministicChunk(
            chunk_order=len(chunks),
            text_content=text[start:trimmed_end],
            start_offset=start,
            end_offset=trimmed_end,
        ))

        if trimmed_end >= len(text):
            break

        cursor = max(trimmed_end - opts.overlap, cursor + 1)

    return chunks
