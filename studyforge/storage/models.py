from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class DocumentStatus(str, Enum):
    UPLOADING = 'uploading'
    EXTRACTING = 'extracting'
    GENERATING = 'generating'
    READY = 'ready'
    ERROR = 'error'


_TRANSITIONS = {
    DocumentStatus.UPLOADING: {DocumentStatus.EXTRACTING, DocumentStatus.ERROR},
    DocumentStatus.EXTRACTING: {DocumentStatus.GENERATING, DocumentStatus.ERROR},
    DocumentStatus.GENERATING: {DocumentStatus.READY, DocumentStatus.ERROR},
    DocumentStatus.READY: set(),
    # explicit user retry
    DocumentStatus.ERROR: {DocumentStatus.EXTRACTING},
}


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    current, target = DocumentStatus(current), DocumentStatus(target)
    return current == target or target in _TRANSITIONS[current]


def allowed_predecessors(target: DocumentStatus) -> List[DocumentStatus]:
    target = DocumentStatus(target)
    return [s for s in DocumentStatus if s == target or target in _TRANSITIONS[s]]


class Document(BaseModel):
    id: int
    user_id: int
    folder_id: int
    title: str
    original_file_url: Optional[str] = None
    extracted_text: Optional[str] = None
    ocr_confidence: Optional[str] = None
    text_hash: Optional[str] = None
    status: DocumentStatus = DocumentStatus.UPLOADING
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'folderId': self.folder_id,
            'title': self.title,
            'status': self.status.value,
            'ocrConfidence': self.ocr_confidence,
            'originalFileUrl': self.original_file_url,
            'createdAt': self.created_at,
        }


class ChunkInsert(BaseModel):
    chunk_order: int
    text_content: str
    start_offset: int
    end_offset: int


class Chunk(ChunkInsert):
    id: int
    document_id: int

    def to_row(self) -> Dict[str, Any]:
        return {'id': self.id, 'order': self.chunk_order, 'text': self.text_content}


class ArtifactInsert(BaseModel):
    document_id: int
    type: str
    mode: str
    content: Dict[str, Any]
    source_chunk_ids: List[int] = []
    source_hash: str


class Artifact(ArtifactInsert):
    id: int
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'mode': self.mode,
            'content': self.content,
            'sourceChunkIds': list(self.source_chunk_ids),
        }


class ReviewItemInsert(BaseModel):
    user_id: int
    artifact_id: int
    document_id: int
    next_review_at: datetime
    ease_factor: float = 2.5
    interval: int = 1
    streak: int = 0


class ReviewItem(ReviewItemInsert):
    id: int


class ReviewQueueItem(ReviewItem):
    artifact_content: Dict[str, Any] = {}
    front: Optional[str] = None
    back: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'artifactId': self.artifact_id,
            'documentId': self.document_id,
            'front': self.front,
            'back': self.back,
            'interval': self.interval,
            'streak': self.streak,
            'easeFactor': self.ease_factor,
            'nextReviewAt': self.next_review_at,
        }


def flashcard_sides(content: Any):
    if not isinstance(content, dict):
        return None, None
    front = content.get('front') if isinstance(content.get('front'), str) else None
    back = content.get('back') if isinstance(content.get('back'), str) else None
    return front, back
