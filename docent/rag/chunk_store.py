"""
In-memory chunk collection management for RAG retrieval.

Holds the chunks of every collection plus a separate embedding side-table
keyed by (collection_id, chunk_id). Chunks are immutable; attaching an
embedding never touches the chunk itself. Nothing here survives a restart:
embeddings are rebuilt on every startup.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from docent.models.catalog import Chunk, EmbeddingRecord

logger = logging.getLogger(__name__)


class ChunkStore:
    def __init__(self):
        # collection_id -> chunks in insertion order
        self._chunks: Dict[str, List[Chunk]] = {}
        self._embeddings: Dict[Tuple[str, str], EmbeddingRecord] = {}
        self._by_key: Dict[Tuple[str, str], Chunk] = {}

    def replace_all(self, chunks: Iterable[Chunk]) -> None:
        """Drop every chunk and embedding and store `chunks` instead."""
        self._chunks = {}
        self._embeddings = {}
        self._by_key = {}
        self.add_chunks(chunks)

    def add_chunks(self, chunks: Iterable[Chunk]) -> int:
        count = 0
        for chunk in chunks:
            self._chunks.setdefault(chunk.collection_id, []).append(chunk)
            self._by_key[chunk.key] = chunk
            count += 1
        return count

    def replace_artwork_chunks(
        self, collection_id: str, artwork_id: str, chunks: List[Chunk]
    ) -> None:
        """Swap one artwork's chunks, dropping their old embeddings.

        The new chunks take the position of the old ones so scan order stays
        stable; a new artwork's chunks are appended.
        """
        existing = self._chunks.get(collection_id, [])
        for chunk in existing:
            if chunk.artwork_id == artwork_id:
                self._embeddings.pop(chunk.key, None)
                self._by_key.pop(chunk.key, None)
        for chunk in chunks:
            self._by_key[chunk.key] = chunk

        updated: List[Chunk] = []
        inserted = False
        for chunk in existing:
            if chunk.artwork_id == artwork_id:
                if not inserted:
                    updated.extend(chunks)
                    inserted = True
                continue
            updated.append(chunk)
        if not inserted:
            updated.extend(chunks)
        self._chunks[collection_id] = updated
        logger.info(
            f"[CHUNK_STORE] Replaced chunks for {collection_id}:{artwork_id} ({len(chunks)} chunks)"
        )

    def get_chunks(self, collection_id: Optional[str] = None) -> List[Chunk]:
        if collection_id:
            return list(self._chunks.get(collection_id, []))
        return [chunk for chunks in self._chunks.values() for chunk in chunks]

    def get_artwork_chunks(self, collection_id: str, artwork_id: str) -> List[Chunk]:
        return [c for c in self._chunks.get(collection_id, []) if c.artwork_id == artwork_id]

    def set_embedding(self, record: EmbeddingRecord, chunk: Optional[Chunk] = None) -> bool:
        """Attach an embedding.

        With `chunk`, the record is only kept if the store still holds that exact
        chunk; a vector computed from text that has since been replaced is dropped.
        """
        key = (record.collection_id, record.chunk_id)
        if chunk is not None and self._by_key.get(key) != chunk:
            return False
        self._embeddings[key] = record
        return True

    def get_embedding(self, chunk: Chunk) -> Optional[EmbeddingRecord]:
        return self._embeddings.get(chunk.key)

    def has_embedding(self, chunk: Chunk) -> bool:
        return chunk.key in self._embeddings

    def embedded_chunks(self, collection_id: Optional[str] = None) -> List[Tuple[Chunk, EmbeddingRecord]]:
        """Chunks in scope that have an embedding, in stored order."""
        pairs = []
        for chunk in self.get_chunks(collection_id):
            record = self._embeddings.get(chunk.key)
            if record is not None:
                pairs.append((chunk, record))
        return pairs

    def get_collection_info(self) -> Dict[str, Any]:
        chunks = self.get_chunks()
        return {
            "collections": len(self._chunks),
            "count": len(chunks),
            "embedded": sum(1 for chunk in chunks if chunk.key in self._embeddings),
        }
