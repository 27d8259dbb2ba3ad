"""
Shared fakes and fixtures for the docent tests.

FakeEmbedder maps text to a small bag-of-keywords vector so similarity is
predictable; FakeCompletion records what the engine would have sent to OpenAI.
"""
import json
import os
from typing import Any, Dict, List, Optional

import pytest

from docent.errors import UpstreamServiceError
from docent.models.catalog import Artwork, ChunkType, Chunk, CuratorNote, NoteType

VOCABULARY = ["delaware", "washington", "gogh", "night", "watch", "memory", "marble", "bronze"]


def keyword_vector(text: str) -> List[float]:
    lowered = text.lower()
    # trailing constant keeps every vector non-zero
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]


class FakeEmbedder:
    model = "fake-embedding"

    def __init__(self, fail_on_call: Optional[int] = None, fail_queries: bool = False):
        self.fail_on_call = fail_on_call
        self.fail_queries = fail_queries
        self.calls: List[List[str]] = []
        self.queries: List[str] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise UpstreamServiceError(f"embedding call {len(self.calls)} failed")
        return [keyword_vector(text) for text in texts]

    async def embed_query(self, query: str):
        self.queries.append(query)
        if self.fail_queries:
            raise UpstreamServiceError("query embedding failed")
        return keyword_vector(query)


class FakeCompletion:
    def __init__(self, answer: str = "Here is what I know."):
        self.answer = answer
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, prompt, history, options=None):
        self.calls.append({"prompt": prompt, "history": list(history), "options": options})
        if options is not None and options.stream:
            async def pieces():
                yield "Here is "
                yield "what I know."
            return pieces()
        return self.answer


SAMPLE_MANIFEST = [
    {"id": "met", "name": "The Met", "location": "New York"},
    {"id": "moma", "name": "MoMA", "location": "New York"},
]

SAMPLE_COLLECTIONS = {
    "met": {
        "id": "met",
        "name": "The Met",
        "artworks": [
            {
                "id": "x",
                "title": "Washington Crossing the Delaware",
                "artist": "Emanuel Leutze",
                "year": 1851,
                "medium": "Oil on canvas",
                "dimensions": "378.5 x 647.7 cm",
                "description": "Washington stands in the boat crossing the icy Delaware.",
                "provenance": "Gift of John Stewart Kennedy, 1897",
                "curator_notes": [
                    {
                        "note": "The first version burned in Bremen.",
                        "author": "James Whitfield",
                        "date": "2023-11-15T09:30:00Z",
                        "type": "historicalContext",
                    },
                    {
                        "content": "Note the bonnet on the rower.",
                        "curatorName": "Ellen Park",
                        "createdAt": "2024-03-02T10:00:00Z",
                    },
                ],
            },
            {
                "id": "a1",
                "title": "Marble Bust",
                "artist": "Unknown Roman",
                "description": "A marble bust of a Roman senator.",
            },
        ],
    },
    "moma": {
        "id": "moma",
        "name": "MoMA",
        "artworks": [
            {
                "id": "x",
                "title": "The Persistence of Memory",
                "artist": "Salvador Dali",
                "year": "1931",
                "medium": "Oil on canvas",
                "description": "Melting watch faces draped over a barren landscape.",
                "gallery": "Gallery 517",
            },
            {
                "id": "starry-night",
                "title": "The Starry Night",
                "artist": "Vincent van Gogh",
                "year": 1889,
                "description": "Van Gogh painted the night sky from the asylum window.",
            },
        ],
    },
}


def write_catalog(data_dir, manifest=None, collections=None) -> str:
    data_dir = str(data_dir)
    manifest = SAMPLE_MANIFEST if manifest is None else manifest
    collections = SAMPLE_COLLECTIONS if collections is None else collections
    with open(os.path.join(data_dir, "museums.json"), "w", encoding="utf-8") as f:
        json.dump(manifest, f)
    for collection_id, payload in collections.items():
        with open(os.path.join(data_dir, f"{collection_id}.json"), "w", encoding="utf-8") as f:
            json.dump(payload, f)
    return data_dir


def make_artwork(**overrides) -> Artwork:
    fields = dict(
        id="a1",
        title="Test Piece",
        artist="Test Artist",
        collection_id="met",
        collection_name="The Met",
    )
    fields.update(overrides)
    return Artwork(**fields)


def make_chunk(chunk_id: str, content: str, chunk_type: ChunkType = ChunkType.SUMMARY,
               collection_id: str = "met", title: str = "Test Piece") -> Chunk:
    return Chunk(
        artwork_id=chunk_id.split("_")[0],
        collection_id=collection_id,
        chunk_id=chunk_id,
        content=content,
        chunk_type=chunk_type,
        source_title=title,
        source_artist="Test Artist",
    )


def make_note(content: str, created_at: str, note_id: str = "n1") -> CuratorNote:
    return CuratorNote(
        id=note_id,
        content=content,
        curator_name="Curator",
        created_at=created_at,
        type=NoteType.INTERPRETATION,
    )


@pytest.fixture
def catalog_dir(tmp_path):
    return write_catalog(tmp_path)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_completion():
    return FakeCompletion()
