#!/usr/bin/env python3
"""
Tests for the catalog loaders (JSON files and SQLite) and the shared normalizer.
"""
import asyncio
import json
import os

import pytest

from docent.catalog import JsonCatalogStore, SqlCatalogStore, get_catalog_store
from docent.catalog.base_store import (
    SEED_COLLECTION_ID,
    normalize_artwork,
    normalize_curator_note,
)
from docent.errors import CatalogParseError, StorageError
from docent.catalog.json_store import read_json_file
from docent.models.catalog import Collection, NoteType

from conftest import SAMPLE_COLLECTIONS, SAMPLE_MANIFEST, make_artwork, write_catalog

MET = Collection(id="met", name="The Met")


def load(store):
    return asyncio.run(store.load_all())


# ============================================================================
# Normalizer
# ============================================================================

def test_legacy_curator_note_keys():
    note = normalize_curator_note(
        {"note": "Old style", "author": "J. Doe", "date": "2020-01-01", "type": "technicalAnalysis"},
        artwork_id="a1", index=3, loaded_at="2025-01-01T00:00:00Z",
    )
    assert note.content == "Old style"
    assert note.curator_name == "J. Doe"
    assert note.created_at == "2020-01-01"
    assert note.type == NoteType.TECHNICAL_ANALYSIS
    assert note.id == "a1_note_3"


def test_curator_note_defaults():
    note = normalize_curator_note({}, artwork_id="a1", index=0, loaded_at="2025-01-01T00:00:00Z")
    assert note.content == ""
    assert note.curator_name == "Unknown Curator"
    assert note.created_at == "2025-01-01T00:00:00Z"
    assert note.type == NoteType.INTERPRETATION


def test_unknown_note_type_falls_back_to_interpretation():
    note = normalize_curator_note({"content": "c", "type": "gossip"}, "a1", 0, "2025-01-01")
    assert note.type == NoteType.INTERPRETATION


def test_notes_sorted_most_recent_first():
    raw = {
        "id": "a1",
        "title": "T",
        "artist": "A",
        "curatorNotes": [
            {"content": "old", "createdAt": "2021-01-01"},
            {"content": "new", "createdAt": "2024-01-01"},
            {"content": "mid", "created_at": "2022-06-01"},
        ],
    }
    artwork = normalize_artwork(raw, MET)
    assert [n.content for n in artwork.curator_notes] == ["new", "mid", "old"]


def test_normalizer_field_cleanup():
    raw = {"id": " a1 ", "title": "T", "artist": "A", "year": "1889", "description": "",
           "gallery": "Room 4", "imageUrl": "http://img"}
    artwork = normalize_artwork(raw, MET)
    assert artwork.id == "a1"
    assert artwork.year == 1889
    assert artwork.description is None
    assert artwork.location == "Room 4"
    assert artwork.image_url == "http://img"
    assert artwork.collection_id == "met"
    assert artwork.collection_name == "The Met"


def test_artwork_without_id_is_rejected():
    with pytest.raises(ValueError):
        normalize_artwork({"title": "No id"}, MET)


# ============================================================================
# JSON backend
# ============================================================================

def test_json_store_loads_collections_in_manifest_order(catalog_dir):
    catalog = load(JsonCatalogStore(catalog_dir))

    assert not catalog.degraded
    assert [c.id for c in catalog.list_collections()] == ["met", "moma"]
    assert len(catalog) == 4
    washington = catalog.lookup("met", "x")
    assert washington.title == "Washington Crossing the Delaware"
    # legacy note is older, so it sorts last
    assert [n.curator_name for n in washington.curator_notes] == ["Ellen Park", "James Whitfield"]
    assert washington.curator_notes[1].type == NoteType.HISTORICAL_CONTEXT
    assert catalog.lookup("moma", "x").year == 1931


def test_json_store_strips_byte_order_mark(tmp_path):
    write_catalog(tmp_path)
    path = os.path.join(str(tmp_path), "museums.json")
    with open(path, "w", encoding="utf-8") as f:
        f.write("\ufeff" + json.dumps(SAMPLE_MANIFEST))

    assert read_json_file(path) == SAMPLE_MANIFEST
    catalog = load(JsonCatalogStore(str(tmp_path)))
    assert not catalog.degraded
    assert len(catalog.list_collections()) == 2


def test_broken_collection_file_is_skipped(tmp_path):
    collections = dict(SAMPLE_COLLECTIONS)
    del collections["met"]
    write_catalog(tmp_path, collections=collections)
    with open(os.path.join(str(tmp_path), "met.json"), "w", encoding="utf-8") as f:
        f.write("{not json")

    catalog = load(JsonCatalogStore(str(tmp_path)))
    assert [c.id for c in catalog.list_collections()] == ["met", "moma"]
    assert catalog.list_collection_artworks("met") == []
    assert len(catalog.list_collection_artworks("moma")) == 2


def test_missing_collection_file_is_skipped(tmp_path):
    write_catalog(tmp_path, collections={"moma": SAMPLE_COLLECTIONS["moma"]})
    catalog = load(JsonCatalogStore(str(tmp_path)))
    assert catalog.get_collection("met") is not None
    assert catalog.list_collection_artworks("met") == []
    assert len(catalog) == 2


def test_missing_manifest_uses_seed_catalog(tmp_path):
    catalog = load(JsonCatalogStore(str(tmp_path)))
    assert catalog.degraded
    assert [c.id for c in catalog.list_collections()] == [SEED_COLLECTION_ID]
    seed = catalog.lookup(SEED_COLLECTION_ID, "test-artwork-1")
    assert seed.title == "Test Artwork"
    assert seed.collection_name == "Default Museum"


def test_non_list_manifest_uses_seed_catalog(tmp_path):
    write_catalog(tmp_path, manifest={"museums": []}, collections={})
    assert load(JsonCatalogStore(str(tmp_path))).degraded


def test_unreadable_file_raises_parse_error(tmp_path):
    with pytest.raises(CatalogParseError) as exc_info:
        read_json_file(os.path.join(str(tmp_path), "nope.json"))
    assert exc_info.value.kind == "parse_error"


def test_json_save_rewrites_collection_file(catalog_dir):
    store = JsonCatalogStore(catalog_dir)
    catalog = load(store)
    collection = catalog.get_collection("met")
    updated = make_artwork(id="a1", title="Marble Bust, restored", artist="Unknown Roman",
                           collection_id="met", collection_name="The Met")
    siblings = [updated if a.id == "a1" else a for a in catalog.list_collection_artworks("met")]

    asyncio.run(store.save_artwork(collection, updated, siblings))

    with open(os.path.join(catalog_dir, "met.json"), encoding="utf-8") as f:
        payload = json.load(f)
    assert [a["id"] for a in payload["artworks"]] == ["x", "a1"]
    assert payload["artworks"][1]["title"] == "Marble Bust, restored"
    # notes are written back with canonical keys
    note = payload["artworks"][0]["curator_notes"][1]
    assert set(note) == {"id", "content", "curatorName", "createdAt", "type"}
    assert note["type"] == "historical_context"

    reloaded = load(JsonCatalogStore(catalog_dir))
    assert reloaded.lookup("met", "a1").title == "Marble Bust, restored"
    assert reloaded.lookup("met", "x") == catalog.lookup("met", "x")


def test_json_save_failure_raises_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = JsonCatalogStore(str(blocker / "data"))
    artwork = make_artwork()
    with pytest.raises(StorageError):
        asyncio.run(store.save_artwork(MET, artwork, [artwork]))


# ============================================================================
# SQLite backend
# ============================================================================

def test_sql_store_matches_json_store(catalog_dir, tmp_path):
    json_catalog = load(JsonCatalogStore(catalog_dir))
    sql_store = SqlCatalogStore(str(tmp_path / "catalog.db"))
    assert sql_store.import_catalog(json_catalog) == 4

    sql_catalog = load(sql_store)
    assert not sql_catalog.degraded
    assert sql_catalog.list_collections() == json_catalog.list_collections()
    assert sql_catalog.all_artworks() == json_catalog.all_artworks()


def test_sql_store_without_tables_uses_seed_catalog(tmp_path):
    catalog = load(SqlCatalogStore(str(tmp_path / "empty.db")))
    assert catalog.degraded
    assert catalog.lookup(SEED_COLLECTION_ID, "test-artwork-1") is not None


def test_sql_save_on_fresh_database_persists(tmp_path):
    store = SqlCatalogStore(str(tmp_path / "fresh.db"))
    catalog = load(store)
    assert catalog.degraded
    collection = catalog.get_collection(SEED_COLLECTION_ID)

    artwork = make_artwork(id="fresh-1", title="First Save", artist="Someone",
                           collection_id=collection.id, collection_name=collection.name)
    siblings = catalog.list_collection_artworks(collection.id) + [artwork]
    asyncio.run(store.save_artwork(collection, artwork, siblings))

    reloaded = load(store)
    assert not reloaded.degraded
    assert reloaded.lookup(SEED_COLLECTION_ID, "fresh-1").title == "First Save"


def test_sql_store_skips_inactive_rows(catalog_dir, tmp_path):
    store = SqlCatalogStore(str(tmp_path / "catalog.db"))
    store.import_catalog(load(JsonCatalogStore(catalog_dir)))
    with store.get_conn() as conn:
        conn.execute("UPDATE artworks SET is_active = 0 WHERE collection_id = 'moma' AND id = 'x'")
        conn.execute("UPDATE collections SET is_active = 0 WHERE id = 'met'")
        conn.commit()

    catalog = load(store)
    assert [c.id for c in catalog.list_collections()] == ["moma"]
    assert [a.id for a in catalog.list_collection_artworks("moma")] == ["starry-night"]


def test_sql_save_upserts_artwork_and_notes(catalog_dir, tmp_path):
    store = SqlCatalogStore(str(tmp_path / "catalog.db"))
    catalog = load(JsonCatalogStore(catalog_dir))
    store.import_catalog(catalog)

    original = catalog.lookup("met", "x")
    edited = make_artwork(id="x", title=original.title, artist=original.artist,
                          collection_id="met", collection_name="The Met",
                          curator_notes=original.curator_notes[:1])
    siblings = [edited if a.id == "x" else a for a in catalog.list_collection_artworks("met")]
    asyncio.run(store.save_artwork(catalog.get_collection("met"), edited, siblings))

    reloaded = load(store).lookup("met", "x")
    assert reloaded.medium is None
    assert [n.id for n in reloaded.curator_notes] == [original.curator_notes[0].id]
    assert [a.id for a in load(store).list_collection_artworks("met")] == ["x", "a1"]


def test_backend_factory(tmp_path):
    assert isinstance(get_catalog_store("json", data_dir=str(tmp_path)), JsonCatalogStore)
    assert isinstance(get_catalog_store("SQL", db_path=str(tmp_path / "c.db")), SqlCatalogStore)
    with pytest.raises(ValueError):
        get_catalog_store("mongo")
