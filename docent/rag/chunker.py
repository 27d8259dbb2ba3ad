"""
Chunker module for splitting artwork records into retrievable text chunks.

Every artwork yields:
    - one summary chunk (title, artist, year, first 200 chars of description)
    - description chunks when the description is longer than 300 chars,
      built by greedy sentence accumulation up to ~400 chars each
    - one provenance chunk if provenance is set
    - one technical chunk if medium or dimensions is set
    - one curator note chunk per note, in note order

chunk_artwork() is pure: same artwork in, same chunks out.
"""

import logging
import re
from typing import Iterable, List

from docent.models.catalog import Artwork, Chunk, ChunkType

logger = logging.getLogger(__name__)

SUMMARY_DESCRIPTION_CHARS = 200
LONG_DESCRIPTION_THRESHOLD = 300
DESCRIPTION_CHUNK_CHARS = 400

# A sentence is a run of non-terminators followed by its terminators
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]


def split_text(text: str, max_chars: int = DESCRIPTION_CHUNK_CHARS) -> List[str]:
    """Greedily pack whole sentences into pieces of at most `max_chars`.

    A sentence is never split; a single sentence longer than `max_chars`
    becomes a piece of its own.
    """
    pieces = []
    current = ""
    for sentence in split_sentences(text):
        if current and len(current) + 1 + len(sentence) > max_chars:
            pieces.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence
    if current:
        pieces.append(current)
    return pieces


def _make_chunk(artwork: Artwork, suffix: str, content: str, chunk_type: ChunkType) -> Chunk:
    return Chunk(
        artwork_id=artwork.id,
        collection_id=artwork.collection_id,
        chunk_id=f"{artwork.id}_{suffix}",
        content=content,
        chunk_type=chunk_type,
        source_title=artwork.title,
        source_artist=artwork.artist,
        source_year=artwork.year,
    )


def chunk_artwork(artwork: Artwork) -> List[Chunk]:
    """Split one artwork into typed chunks.

    Args:
        artwork: Normalized artwork record.

    Returns:
        List of chunks; chunk ids are unique within the artwork's collection.
    """
    description = artwork.description or ""
    year = f" ({artwork.year})" if artwork.year is not None else ""
    summary = f"{artwork.title} by {artwork.artist}{year}. {description[:SUMMARY_DESCRIPTION_CHARS]}"
    chunks = [_make_chunk(artwork, "summary", summary.strip(), ChunkType.SUMMARY)]

    if len(description) > LONG_DESCRIPTION_THRESHOLD:
        for idx, piece in enumerate(split_text(description)):
            chunks.append(_make_chunk(
                artwork, f"desc_{idx}", f"{artwork.title}: {piece}", ChunkType.DESCRIPTION
            ))

    if artwork.provenance:
        chunks.append(_make_chunk(
            artwork,
            "provenance",
            f"Provenance for {artwork.title}: {artwork.provenance}",
            ChunkType.PROVENANCE,
        ))

    if artwork.medium or artwork.dimensions:
        technical = ". ".join(
            part for part in (
                artwork.medium and f"Medium: {artwork.medium}",
                artwork.dimensions and f"Dimensions: {artwork.dimensions}",
            ) if part
        )
        chunks.append(_make_chunk(
            artwork,
            "technical",
            f"Technical details for {artwork.title}: {technical}",
            ChunkType.TECHNICAL,
        ))

    for idx, note in enumerate(artwork.curator_notes):
        chunks.append(_make_chunk(
            artwork,
            f"curator_{idx}",
            f"Curator note for {artwork.title} ({note.type.value}): {note.content}",
            ChunkType.CURATOR_NOTE,
        ))

    logger.debug(f"[CHUNKER] {artwork.key}: {len(chunks)} chunks")
    return chunks


def chunk_artworks(artworks: Iterable[Artwork]) -> List[Chunk]:
    chunks = []
    for artwork in artworks:
        chunks.extend(chunk_artwork(artwork))
    logger.info(f"[CHUNKER] Created {len(chunks)} chunks")
    return chunks


if __name__ == "__main__":
    # Standalone check: show chunk summary for the configured catalog
    import asyncio
    from collections import Counter

    from docent.catalog import get_catalog_store

    logging.basicConfig(level=logging.INFO)
    catalog = asyncio.run(get_catalog_store().load_all())
    all_chunks = chunk_artworks(catalog.all_artworks())
    print(f"\nTotal chunks: {len(all_chunks)}")
    print(f"Total content chars: {sum(len(c.content) for c in all_chunks):,}")
    print("\nChunks by type:")
    for chunk_type, count in sorted(Counter(c.chunk_type.value for c in all_chunks).items()):
        print(f"  {chunk_type}: {count}")
