"""Abstract base interface for catalog storage backends.

Backends read raw collection/artwork records from their storage and hand them
to the shared normalizers below, so callers cannot tell from the returned
data which backend is active.

Note: Keep storage-specific code in the concrete stores.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from docent.catalog.catalog import Catalog
from docent.models.catalog import Artwork, Collection, CuratorNote, NoteType

logger = logging.getLogger(__name__)

BYTE_ORDER_MARK = "\ufeff"

SEED_COLLECTION_ID = "default"

# Accepts both snake_case and camelCase spellings of the note type
_NOTE_TYPE_ALIASES = {
    "interpretation": NoteType.INTERPRETATION,
    "historical_context": NoteType.HISTORICAL_CONTEXT,
    "historicalcontext": NoteType.HISTORICAL_CONTEXT,
    "technical_analysis": NoteType.TECHNICAL_ANALYSIS,
    "technicalanalysis": NoteType.TECHNICAL_ANALYSIS,
    "visitor_info": NoteType.VISITOR_INFO,
    "visitorinfo": NoteType.VISITOR_INFO,
}


def strip_bom(text: str) -> str:
    """Remove leading byte-order marks left by some editors/exporters."""
    return text.lstrip(BYTE_ORDER_MARK)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_year(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return None


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def parse_note_type(value: Any) -> NoteType:
    if isinstance(value, NoteType):
        return value
    if not value:
        return NoteType.INTERPRETATION
    return _NOTE_TYPE_ALIASES.get(str(value).strip().lower(), NoteType.INTERPRETATION)


def normalize_curator_note(
    raw: Dict[str, Any], artwork_id: str, index: int, loaded_at: str
) -> CuratorNote:
    """Normalize one note from the canonical or the legacy key layout.

    Canonical: {content, curatorName|curator_name, createdAt|created_at, type}
    Legacy:    {note, author, date}
    """
    return CuratorNote(
        id=str(_first(raw, "id") or f"{artwork_id}_note_{index}"),
        content=str(_first(raw, "content", "note") or ""),
        curator_name=str(_first(raw, "curatorName", "curator_name", "author") or "Unknown Curator"),
        created_at=str(_first(raw, "createdAt", "created_at", "date") or loaded_at),
        type=parse_note_type(raw.get("type")),
    )


def normalize_curator_notes(
    raw_notes: Optional[Iterable[Dict[str, Any]]], artwork_id: str, loaded_at: str
) -> List[CuratorNote]:
    notes = [
        normalize_curator_note(raw, artwork_id, index, loaded_at)
        for index, raw in enumerate(raw_notes or [])
        if isinstance(raw, dict)
    ]
    # Most recent first; sorted() is stable so equal timestamps keep source order
    return sorted(notes, key=lambda note: note.created_at, reverse=True)


def normalize_collection(raw: Dict[str, Any]) -> Collection:
    if not isinstance(raw, dict) or not _clean(raw.get("id")):
        raise ValueError(f"Collection record without id: {raw!r}")
    collection_id = str(raw["id"]).strip()
    return Collection(
        id=collection_id,
        name=_clean(raw.get("name")) or collection_id,
        description=_clean(raw.get("description")),
        location=_clean(raw.get("location")),
    )


def normalize_artwork(
    raw: Dict[str, Any], collection: Collection, loaded_at: Optional[str] = None
) -> Artwork:
    """Turn a raw artwork record (file row or SQL row) into an `Artwork`.

    Raises:
        ValueError: If the record lacks an id.
    """
    loaded_at = loaded_at or now_iso()
    artwork_id = _clean(raw.get("id"))
    if not artwork_id:
        raise ValueError(f"Artwork record without id in collection {collection.id}")

    raw_notes = raw.get("curator_notes")
    if raw_notes is None:
        raw_notes = raw.get("curatorNotes")

    gallery = _clean(raw.get("gallery"))
    return Artwork(
        id=artwork_id,
        title=_clean(raw.get("title")) or "Untitled",
        artist=_clean(raw.get("artist")) or "Unknown Artist",
        collection_id=collection.id,
        collection_name=collection.name,
        year=_parse_year(raw.get("year")),
        description=_clean(raw.get("description")),
        medium=_clean(raw.get("medium")),
        dimensions=_clean(raw.get("dimensions")),
        location=_clean(raw.get("location")) or gallery,
        provenance=_clean(raw.get("provenance")),
        curator_notes=normalize_curator_notes(raw_notes, artwork_id, loaded_at),
        created_at=_clean(_first(raw, "created_at", "createdAt")),
        updated_at=_clean(_first(raw, "updated_at", "updatedAt")),
        image_url=_clean(_first(raw, "image_url", "imageUrl")),
        gallery=gallery,
        accession_number=_clean(_first(raw, "accession_number", "accessionNumber")),
        period=_clean(raw.get("period")),
    )


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_seed_catalog() -> Catalog:
    """Minimal catalog used when the manifest itself cannot be read."""
    collection = Collection(
        id=SEED_COLLECTION_ID,
        name="Default Museum",
        description="Fallback museum used when data files are missing",
    )
    catalog = Catalog(degraded=True)
    catalog.add_collection(collection)
    catalog.put_artwork(Artwork(
        id="test-artwork-1",
        title="Test Artwork",
        artist="Test Artist",
        collection_id=collection.id,
        collection_name=collection.name,
        year=2024,
        medium="Test Medium",
        dimensions="100x100 cm",
        description="This is a test artwork created when the system cannot load museum data files.",
    ))
    return catalog


class CatalogStore(ABC):
    """Read/write contract shared by every catalog backend."""

    name = "base"

    def __init__(self):
        self._write_locks: Dict[str, asyncio.Lock] = {}

    @abstractmethod
    async def load_all(self) -> Catalog:
        """Load every collection and artwork into an in-memory `Catalog`.

        Must not raise for bad collection data: a broken collection is logged
        and skipped. An unreadable manifest yields the seed catalog.
        """
        raise NotImplementedError

    @abstractmethod
    async def _write_artwork(
        self, collection: Collection, artwork: Artwork, siblings: List[Artwork]
    ) -> None:
        """Persist `artwork`; `siblings` is the full, updated artwork list of its collection."""
        raise NotImplementedError

    def _lock_for(self, collection_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(collection_id)
        if lock is None:
            lock = asyncio.Lock()
            self._write_locks[collection_id] = lock
        return lock

    async def save_artwork(
        self, collection: Collection, artwork: Artwork, siblings: List[Artwork]
    ) -> None:
        """Persist an artwork; one in-flight write per collection."""
        async with self._lock_for(collection.id):
            logger.info(f"[CATALOG] Writing {artwork.key} via {self.name} backend")
            await self._write_artwork(collection, artwork, siblings)
