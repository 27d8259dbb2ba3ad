"""Catalog and retrieval data model.

Defines the collection/artwork records produced by every catalog backend, the
immutable `Chunk` units derived from them, and the `EmbeddingRecord` rows kept
in a separate side-table so chunks never carry vectors.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class NoteType(Enum):
    """Curator note categories."""
    INTERPRETATION = "interpretation"
    HISTORICAL_CONTEXT = "historical_context"
    TECHNICAL_ANALYSIS = "technical_analysis"
    VISITOR_INFO = "visitor_info"


class ChunkType(Enum):
    """Content category of a retrievable chunk."""
    SUMMARY = "summary"
    DESCRIPTION = "description"
    PROVENANCE = "provenance"
    TECHNICAL = "technical"
    CURATOR_NOTE = "curator_note"


def qualified_key(collection_id: str, artwork_id: str) -> str:
    """Artwork ids are only unique per collection; this is the real primary key."""
    return f"{collection_id}:{artwork_id}"


@dataclass
class Collection:
    id: str
    name: str
    description: Optional[str] = None
    location: Optional[str] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CuratorNote:
    id: str
    content: str
    curator_name: str
    created_at: str
    type: NoteType = NoteType.INTERPRETATION

    def to_public_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


@dataclass
class Artwork:
    """Normalized artwork record.

    Attributes:
        id: Identifier, unique only within `collection_id`.
        curator_notes: Notes ordered most recent first.
        collection_id / collection_name: Owning collection, filled at load time.
        image_url, gallery, accession_number, period: Display fields carried
            through untouched from the source data.
    """
    id: str
    title: str
    artist: str
    collection_id: str
    collection_name: str
    year: Optional[int] = None
    description: Optional[str] = None
    medium: Optional[str] = None
    dimensions: Optional[str] = None
    location: Optional[str] = None
    provenance: Optional[str] = None
    curator_notes: List[CuratorNote] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    image_url: Optional[str] = None
    gallery: Optional[str] = None
    accession_number: Optional[str] = None
    period: Optional[str] = None

    @property
    def key(self) -> str:
        return qualified_key(self.collection_id, self.id)

    def to_public_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["curator_notes"] = [note.to_public_dict() for note in self.curator_notes]
        return data


@dataclass(frozen=True)
class Chunk:
    """One retrievable unit of text derived from an artwork."""
    artwork_id: str
    collection_id: str
    chunk_id: str
    content: str
    chunk_type: ChunkType
    source_title: str
    source_artist: str
    source_year: Optional[int] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.collection_id, self.chunk_id)

    def to_public_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["chunk_type"] = self.chunk_type.value
        return data


@dataclass(frozen=True)
class EmbeddingRecord:
    collection_id: str
    chunk_id: str
    vector: Tuple[float, ...]
    model: str
