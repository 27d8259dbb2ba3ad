#!/usr/bin/env python3
"""
Tests for the HTTP surface, with the engine dependency swapped for one backed by fakes.
"""
import pytest
from fastapi.testclient import TestClient

from docent.catalog import JsonCatalogStore
from docent.engine import DocentEngine
from docent.main import app, get_engine

from conftest import FakeCompletion, FakeEmbedder


@pytest.fixture
def client(catalog_dir):
    engine = DocentEngine(
        store=JsonCatalogStore(catalog_dir),
        embedder=FakeEmbedder(),
        completion=FakeCompletion(answer="A grounded answer."),
    )
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root_reports_status(client):
    client.get("/museums")
    body = client.get("/").json()
    assert body["service"] == "docent"
    assert body["initialized"] is True
    assert body["backend"] == "json"
    assert body["artworks"] == 4


def test_list_museums(client):
    response = client.get("/museums")
    assert response.status_code == 200
    assert [m["id"] for m in response.json()["museums"]] == ["met", "moma"]


def test_museum_artworks(client):
    body = client.get("/museums/moma/artworks").json()
    assert body["museum"]["name"] == "MoMA"
    assert [a["id"] for a in body["artworks"]] == ["x", "starry-night"]


def test_unknown_museum_is_404(client):
    response = client.get("/museums/louvre/artworks")
    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "not_found"


def test_get_artwork_with_and_without_hint(client):
    assert client.get("/artworks/x").json()["artwork"]["collection_id"] == "met"
    artwork = client.get("/artworks/x", params={"museum_id": "moma"}).json()["artwork"]
    assert artwork["title"] == "The Persistence of Memory"
    assert artwork["location"] == "Gallery 517"
    assert client.get("/artworks/ghost").status_code == 404


def test_search(client):
    body = client.get("/search", params={"q": "van gogh night", "top_k": 2}).json()
    assert len(body["chunks"]) == 2
    assert body["chunks"][0]["artwork_id"] == "starry-night"
    assert "vector" not in body["chunks"][0]
    assert client.get("/search").status_code == 422


def test_chat_json(client):
    response = client.post("/chat", json={
        "message": "What am I looking at?",
        "artwork_id": "x",
        "museum_id": "moma",
        "history": [{"role": "user", "content": "Hello"}, {"role": "assistant", "content": "Hi!"}],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "A grounded answer."
    assert body["artwork"]["collection_id"] == "moma"
    assert "The Persistence of Memory" in body["referenced_titles"]


def test_chat_stream(client):
    response = client.post("/chat", json={"message": "Tell me more", "artwork_id": "starry-night",
                                          "stream": True})
    assert response.status_code == 200
    assert response.text == "Here is what I know."
    assert response.headers["x-museum-id"] == "moma"


def test_chat_validation_error_shape(client):
    response = client.post("/chat", json={"message": "  "})
    assert response.status_code == 400
    assert response.json() == {"error": {"kind": "validation_error", "message": "Message is required"}}
