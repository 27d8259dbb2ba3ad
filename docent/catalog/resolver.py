"""
Cross-collection artwork resolution.

Artwork ids are only unique inside a collection, yet visitors (QR codes,
links) often supply a bare id. Resolution order:

1. If a collection hint is given, try the qualified key ``hint:artwork_id``.
2. Otherwise, or on a miss, scan collections in load order and return the
   first artwork with that bare id.

When the same bare id lives in several collections the scan returns whichever
collection was loaded first. That is a side effect of manifest ordering, not an
agreed policy; see DESIGN.md before relying on it.
"""

import logging
from typing import Optional

from docent.catalog.catalog import Catalog
from docent.models.catalog import Artwork

logger = logging.getLogger(__name__)


def resolve_artwork(
    catalog: Catalog,
    artwork_id: str,
    collection_id_hint: Optional[str] = None,
) -> Optional[Artwork]:
    """Resolve a possibly-unqualified artwork id.

    Args:
        catalog: Loaded in-memory catalog.
        artwork_id: Bare artwork id.
        collection_id_hint: Optional collection to try first.

    Returns:
        The matching artwork, or None if no collection contains the id.
    """
    if not artwork_id:
        return None

    if collection_id_hint:
        artwork = catalog.lookup(collection_id_hint, artwork_id)
        if artwork is not None:
            return artwork
        logger.info(
            f"[RESOLVER] {artwork_id} not in collection {collection_id_hint}, "
            f"scanning all collections"
        )

    matches = [
        artwork
        for collection in catalog.list_collections()
        for artwork in [catalog.lookup(collection.id, artwork_id)]
        if artwork is not None
    ]
    if not matches:
        logger.info(f"[RESOLVER] {artwork_id} not found in any collection")
        return None

    if len(matches) > 1:
        logger.warning(
            f"[RESOLVER] Bare id {artwork_id} exists in {len(matches)} collections "
            f"({', '.join(m.collection_id for m in matches)}); using load-order first: "
            f"{matches[0].collection_id}"
        )
    return matches[0]
