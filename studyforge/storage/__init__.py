"""Persistence for documents, chunks, artifacts and review items."""
from .models import (
    Document, DocumentStatus, Chunk, ChunkInsert, Artifact, ArtifactInsert,
    ReviewItem, ReviewItemInsert, ReviewQueueItem, can_transition,
)
from .memory import InMemoryRepository
from .postgres import PostgresRepository

__all__ = [
    'Document', 'DocumentStatus', 'Chunk', 'ChunkInsert', 'Artifact', 'ArtifactInsert',
    'ReviewItem', 'ReviewItemInsert', 'ReviewQueueItem', 'can_transition',
    'InMemoryRepository', 'PostgresRepository',
]
