"""In-memory catalog shared by every backend.

Collections keep their load order (manifest order for files, ``sort_order``
for the database). Artworks are keyed by ``collection_id:artwork_id``.
"""
from typing import Dict, List, Optional

from docent.models.catalog import Artwork, Collection, qualified_key


class Catalog:
    def __init__(self, degraded: bool = False):
        self.degraded = degraded
        self._collections: Dict[str, Collection] = {}
        self._artworks: Dict[str, Artwork] = {}

    def add_collection(self, collection: Collection) -> None:
        self._collections[collection.id] = collection

    def put_artwork(self, artwork: Artwork) -> None:
        self._artworks[artwork.key] = artwork

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        return self._collections.get(collection_id)

    def lookup(self, collection_id: str, artwork_id: str) -> Optional[Artwork]:
        return self._artworks.get(qualified_key(collection_id, artwork_id))

    def list_collections(self) -> List[Collection]:
        return list(self._collections.values())

    def list_collection_artworks(self, collection_id: str) -> List[Artwork]:
        return [a for a in self._artworks.values() if a.collection_id == collection_id]

    def all_artworks(self) -> List[Artwork]:
        """Every artwork, grouped by collection load order."""
        artworks: List[Artwork] = []
        for collection_id in self._collections:
            artworks.extend(self.list_collection_artworks(collection_id))
        return artworks

    def search_text(self, text: str, collection_id: Optional[str] = None) -> List[Artwork]:
        """Case-insensitive substring match on title, artist and description."""
        needle = text.strip().lower()
        if not needle:
            return []
        pool = (
            self.list_collection_artworks(collection_id)
            if collection_id
            else self.all_artworks()
        )
        return [
            artwork for artwork in pool
            if needle in artwork.title.lower()
            or needle in artwork.artist.lower()
            or (artwork.description and needle in artwork.description.lower())
        ]

    def __len__(self) -> int:
        return len(self._artworks)
