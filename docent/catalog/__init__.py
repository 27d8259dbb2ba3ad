"""Catalog package entry.

Provides a factory that picks the storage backend once, from configuration.
"""
from typing import Optional

from docent.catalog.base_store import CatalogStore
from docent.catalog.catalog import Catalog
from docent.catalog.json_store import JsonCatalogStore
from docent.catalog.resolver import resolve_artwork
from docent.catalog.sql_store import SqlCatalogStore


def get_catalog_store(
    backend: Optional[str] = None,
    data_dir: Optional[str] = None,
    db_path: Optional[str] = None,
) -> CatalogStore:
    """Return the catalog store for the given (or configured) backend name."""
    from docent import config

    backend = (backend or config.CATALOG_BACKEND).lower()
    if backend == "json":
        return JsonCatalogStore(data_dir or config.CATALOG_DATA_DIR)
    if backend == "sql":
        return SqlCatalogStore(db_path or config.CATALOG_DB_PATH)
    raise ValueError(f"No catalog backend: {backend}")


__all__ = [
    "Catalog",
    "CatalogStore",
    "JsonCatalogStore",
    "SqlCatalogStore",
    "get_catalog_store",
    "resolve_artwork",
]
