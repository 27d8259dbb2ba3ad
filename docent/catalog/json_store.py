"""
File-backed catalog store.

Layout under the data directory:
    museums.json         ordered manifest: [{id, name, description?, location?}, ...]
    <collection_id>.json {id, name, description?, artworks: [RawArtwork, ...]}

A broken collection file only costs that collection's artworks; a broken
manifest drops the whole store into the built-in seed catalog.
"""

import asyncio
import json
import logging
import os
import tempfile
from typing import Any, Dict, List

from docent.catalog.base_store import (
    CatalogStore,
    build_seed_catalog,
    normalize_artwork,
    normalize_collection,
    now_iso,
    strip_bom,
)
from docent.catalog.catalog import Catalog
from docent.errors import CatalogParseError, StorageError
from docent.models.catalog import Artwork, Collection

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "museums.json"


def read_json_file(path: str) -> Any:
    """Read a JSON file, tolerating a leading byte-order mark.

    Raises:
        CatalogParseError: If the file is missing or is not valid JSON.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise CatalogParseError(f"Cannot read {path}: {e}") from e
    try:
        return json.loads(strip_bom(raw))
    except json.JSONDecodeError as e:
        raise CatalogParseError(f"Invalid JSON in {path}: {e}") from e


def artwork_to_record(artwork: Artwork) -> Dict[str, Any]:
    """Serialize an artwork back to the on-disk shape (canonical note keys)."""
    record = {
        "id": artwork.id,
        "title": artwork.title,
        "artist": artwork.artist,
        "year": artwork.year,
        "description": artwork.description,
        "medium": artwork.medium,
        "dimensions": artwork.dimensions,
        "location": artwork.location,
        "provenance": artwork.provenance,
        "image_url": artwork.image_url,
        "gallery": artwork.gallery,
        "accession_number": artwork.accession_number,
        "period": artwork.period,
        "created_at": artwork.created_at,
        "updated_at": artwork.updated_at,
    }
    record = {key: value for key, value in record.items() if value is not None}
    record["curator_notes"] = [
        {
            "id": note.id,
            "content": note.content,
            "curatorName": note.curator_name,
            "createdAt": note.created_at,
            "type": note.type.value,
        }
        for note in artwork.curator_notes
    ]
    return record


class JsonCatalogStore(CatalogStore):
    name = "json"

    def __init__(self, data_dir: str):
        super().__init__()
        self.data_dir = data_dir

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.data_dir, MANIFEST_FILENAME)

    def collection_path(self, collection_id: str) -> str:
        return os.path.join(self.data_dir, f"{collection_id}.json")

    async def load_all(self) -> Catalog:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load_all_sync)

    def _load_all_sync(self) -> Catalog:
        logger.info(f"[CATALOG] Loading manifest from {self.manifest_path}")
        try:
            manifest = read_json_file(self.manifest_path)
            if not isinstance(manifest, list):
                raise CatalogParseError(f"{self.manifest_path} must contain a JSON list")
        except CatalogParseError as e:
            logger.error(f"[CATALOG] Manifest unusable ({e.message}); falling back to seed catalog")
            return build_seed_catalog()

        catalog = Catalog()
        loaded_at = now_iso()
        for raw_collection in manifest:
            try:
                collection = normalize_collection(raw_collection)
            except ValueError as e:
                logger.error(f"[CATALOG] Skipping manifest entry: {e}")
                continue

            catalog.add_collection(collection)
            try:
                count = self._load_collection(catalog, collection, loaded_at)
            except CatalogParseError as e:
                logger.error(
                    f"[CATALOG] Failed to load artworks for {collection.id} "
                    f"({collection.name}): {e.message}"
                )
                continue
            logger.info(f"[CATALOG] Loaded {count} artworks for {collection.name}")

        logger.info(
            f"[CATALOG] Catalog ready: {len(catalog.list_collections())} collections, "
            f"{len(catalog)} artworks"
        )
        return catalog

    def _load_collection(self, catalog: Catalog, collection: Collection, loaded_at: str) -> int:
        data = read_json_file(self.collection_path(collection.id))
        if not isinstance(data, dict):
            raise CatalogParseError(f"{self.collection_path(collection.id)} must contain an object")

        raw_artworks = data.get("artworks")
        if not isinstance(raw_artworks, list):
            logger.warning(f"[CATALOG] No artworks array in {collection.id} data file")
            return 0

        count = 0
        for raw in raw_artworks:
            if not isinstance(raw, dict):
                logger.warning(f"[CATALOG] Ignoring non-object artwork entry in {collection.id}")
                continue
            try:
                catalog.put_artwork(normalize_artwork(raw, collection, loaded_at))
            except ValueError as e:
                logger.warning(f"[CATALOG] {e}")
                continue
            count += 1
        return count

    async def _write_artwork(
        self, collection: Collection, artwork: Artwork, siblings: List[Artwork]
    ) -> None:
        payload = {
            "id": collection.id,
            "name": collection.name,
            "description": collection.description,
            "artworks": [artwork_to_record(a) for a in siblings],
        }
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, self._replace_file, self.collection_path(collection.id), payload
        )
        logger.info(f"[CATALOG] Saved {len(siblings)} artworks to {self.collection_path(collection.id)}")

    @staticmethod
    def _replace_file(path: str, payload: Dict[str, Any]) -> None:
        directory = os.path.dirname(path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
