"""
Relational (SQLite) catalog store.

Same read contract as the file store: rows are turned into raw dicts and fed
through the shared normalizers, so artworks come back in exactly the same
shape. sqlite3 calls are blocking and run in the default executor.
"""

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List

from docent.catalog.base_store import (
    CatalogStore,
    build_seed_catalog,
    normalize_artwork,
    normalize_collection,
    now_iso,
)
from docent.catalog.catalog import Catalog
from docent.errors import CatalogParseError, StorageError
from docent.models.catalog import Artwork, Collection

logger = logging.getLogger(__name__)

_ARTWORK_COLUMNS = (
    "id", "title", "artist", "year", "description", "medium", "dimensions",
    "location", "provenance", "image_url", "gallery", "accession_number",
    "period", "created_at", "updated_at",
)


class SqlCatalogStore(CatalogStore):
    name = "sql"

    def __init__(self, db_path: str):
        super().__init__()
        self.db_path = db_path

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Return rows as dict-like objects
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Create the catalog tables if they do not exist yet."""
        with self.get_conn() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                location TEXT,
                sort_order INTEGER DEFAULT 0 NOT NULL,
                is_active BOOLEAN DEFAULT 1 NOT NULL
            )
            """)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS artworks (
                collection_id TEXT NOT NULL,
                id TEXT NOT NULL,
                title TEXT NOT NULL,
                artist TEXT NOT NULL,
                year INTEGER,
                description TEXT,
                medium TEXT,
                dimensions TEXT,
                location TEXT,
                provenance TEXT,
                image_url TEXT,
                gallery TEXT,
                accession_number TEXT,
                period TEXT,
                position INTEGER DEFAULT 0 NOT NULL,
                is_active BOOLEAN DEFAULT 1 NOT NULL,
                created_at TIMESTAMP,
                updated_at TIMESTAMP,
                PRIMARY KEY (collection_id, id)
            )
            """)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS curator_notes (
                id TEXT NOT NULL,
                collection_id TEXT NOT NULL,
                artwork_id TEXT NOT NULL,
                content TEXT NOT NULL,
                curator_name TEXT,
                type TEXT DEFAULT 'interpretation',
                created_at TIMESTAMP,
                PRIMARY KEY (collection_id, artwork_id, id)
            )
            """)
            try:
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_notes_artwork "
                    "ON curator_notes(collection_id, artwork_id, created_at DESC)"
                )
            except sqlite3.OperationalError:
                pass
            conn.commit()

    async def load_all(self) -> Catalog:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load_all_sync)

    def _load_all_sync(self) -> Catalog:
        logger.info(f"[CATALOG] Loading catalog from database {self.db_path}")
        try:
            self.init_db()
            with self.get_conn() as conn:
                rows = conn.execute(
                    "SELECT id, name, description, location FROM collections "
                    "WHERE is_active = 1 ORDER BY sort_order, id"
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"[CATALOG] Collections table unusable ({e}); falling back to seed catalog")
            return build_seed_catalog()

        if not rows:
            logger.warning(f"[CATALOG] No active collections in {self.db_path}; falling back to seed catalog")
            return build_seed_catalog()

        catalog = Catalog()
        loaded_at = now_iso()
        for row in rows:
            try:
                collection = normalize_collection(dict(row))
            except ValueError as e:
                logger.error(f"[CATALOG] Skipping collection row: {e}")
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
        try:
            with self.get_conn() as conn:
                artwork_rows = conn.execute(
                    f"SELECT {', '.join(_ARTWORK_COLUMNS)} FROM artworks "
                    "WHERE collection_id = ? AND is_active = 1 ORDER BY position, id",
                    (collection.id,),
                ).fetchall()
                note_rows = conn.execute(
                    "SELECT id, artwork_id, content, curator_name, type, created_at "
                    "FROM curator_notes WHERE collection_id = ? ORDER BY created_at DESC, rowid",
                    (collection.id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise CatalogParseError(f"Database error reading {collection.id}: {e}") from e

        notes_by_artwork: Dict[str, List[Dict[str, Any]]] = {}
        for note in note_rows:
            notes_by_artwork.setdefault(note["artwork_id"], []).append(dict(note))

        count = 0
        for row in artwork_rows:
            raw = dict(row)
            raw["curator_notes"] = notes_by_artwork.get(raw["id"], [])
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
        position = next(
            (index for index, sibling in enumerate(siblings) if sibling.id == artwork.id),
            len(siblings),
        )
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._upsert_artwork, collection, artwork, position)

    def _upsert_artwork(self, collection: Collection, artwork: Artwork, position: int) -> None:
        try:
            self.init_db()
            with self.get_conn() as conn:
                # the seed collection has no row until its first write
                conn.execute(
                    "INSERT INTO collections (id, name, description, location) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(id) DO NOTHING",
                    (collection.id, collection.name, collection.description, collection.location),
                )
                self._upsert_artwork_rows(conn, collection, artwork, position)
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save {artwork.key}: {e}") from e

    @staticmethod
    def _upsert_artwork_rows(conn, collection: Collection, artwork: Artwork, position: int) -> None:
        values = [getattr(artwork, column) for column in _ARTWORK_COLUMNS]
        placeholders = ", ".join("?" for _ in _ARTWORK_COLUMNS)
        updates = ", ".join(f"{column} = excluded.{column}" for column in _ARTWORK_COLUMNS[1:])
        conn.execute(
            f"""
            INSERT INTO artworks (collection_id, {', '.join(_ARTWORK_COLUMNS)}, position, is_active)
            VALUES (?, {placeholders}, ?, 1)
            ON CONFLICT(collection_id, id) DO UPDATE SET
                {updates},
                position = excluded.position,
                is_active = 1;
            """,
            [collection.id, *values, position],
        )
        conn.execute(
            "DELETE FROM curator_notes WHERE collection_id = ? AND artwork_id = ?",
            (collection.id, artwork.id),
        )
        conn.executemany(
            "INSERT INTO curator_notes (id, collection_id, artwork_id, content, curator_name, type, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    note.id,
                    collection.id,
                    artwork.id,
                    note.content,
                    note.curator_name,
                    note.type.value,
                    note.created_at,
                )
                for note in artwork.curator_notes
            ],
        )

    def import_catalog(self, catalog: Catalog) -> int:
        """Copy a loaded catalog (e.g. from the JSON files) into the database.

        Returns:
            Number of artworks written.
        """
        self.init_db()
        count = 0
        try:
            with self.get_conn() as conn:
                for sort_order, collection in enumerate(catalog.list_collections()):
                    conn.execute(
                        """
                        INSERT INTO collections (id, name, description, location, sort_order, is_active)
                        VALUES (?, ?, ?, ?, ?, 1)
                        ON CONFLICT(id) DO UPDATE SET
                            name = excluded.name,
                            description = excluded.description,
                            location = excluded.location,
                            sort_order = excluded.sort_order;
                        """,
                        (collection.id, collection.name, collection.description,
                         collection.location, sort_order),
                    )
                    for position, artwork in enumerate(catalog.list_collection_artworks(collection.id)):
                        self._upsert_artwork_rows(conn, collection, artwork, position)
                        count += 1
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Catalog import failed: {e}") from e
        logger.info(f"[CATALOG] Imported {count} artworks into {self.db_path}")
        return count
