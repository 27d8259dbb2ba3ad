#!/usr/bin/env python3
"""
Import the JSON museum catalog into the SQLite catalog database.

Reads museums.json and every <collection_id>.json from CATALOG_DATA_DIR through
the same loader the service uses, then upserts collections, artworks and
curator notes into CATALOG_DB_PATH. Safe to run repeatedly.

Usage:
    python import_json_to_db.py [data_dir] [db_path]
"""

import asyncio
import logging
import sys

from docent import config
from docent.catalog import JsonCatalogStore, SqlCatalogStore
from docent.errors import DocentError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def import_json_to_db(data_dir: str, db_path: str) -> bool:
    logger.info(f"🚀 Importing JSON catalog from {data_dir} into {db_path}")

    catalog = asyncio.run(JsonCatalogStore(data_dir).load_all())
    if catalog.degraded:
        logger.error(f"❌ No readable manifest in {data_dir}, nothing to import")
        return False

    for collection in catalog.list_collections():
        artworks = catalog.list_collection_artworks(collection.id)
        notes = sum(len(a.curator_notes) for a in artworks)
        logger.info(f"🏛️  {collection.name} ({collection.id}): {len(artworks)} artworks, {notes} curator notes")

    try:
        count = SqlCatalogStore(db_path).import_catalog(catalog)
    except DocentError as e:
        logger.exception(f"❌ Import failed: {e.message}")
        return False

    logger.info(f"🎉 Imported {count} artworks from {len(catalog.list_collections())} museums")
    return True


if __name__ == "__main__":
    data_dir = sys.argv[1] if len(sys.argv) > 1 else config.CATALOG_DATA_DIR
    db_path = sys.argv[2] if len(sys.argv) > 2 else config.CATALOG_DB_PATH
    success = import_json_to_db(data_dir, db_path)
    exit(0 if success else 1)
