from docent.models.catalog import (
    Artwork,
    Chunk,
    ChunkType,
    Collection,
    CuratorNote,
    EmbeddingRecord,
    NoteType,
    qualified_key,
)

__all__ = [
    "Artwork",
    "Chunk",
    "ChunkType",
    "Collection",
    "CuratorNote",
    "EmbeddingRecord",
    "NoteType",
    "qualified_key",
]
