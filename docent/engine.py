"""
Docent engine: the composition root and public interface.

One explicitly constructed DocentEngine owns the loaded catalog, the chunk
store with its embeddings, and the collaborators that talk to OpenAI. The
catalog is loaded lazily by the first caller; concurrent callers await the same
in-flight initialization task, so the catalog is loaded once per engine.

Chat flow:
1. Resolve the artwork the visitor is looking at (if an id was given)
2. Semantic search scoped to that artwork's collection
3. Budgeted grounding context and trimmed history
4. System prompt
5. Completion (text or stream)
"""

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

from docent.catalog import Catalog, CatalogStore, get_catalog_store, resolve_artwork
from docent.catalog.base_store import normalize_artwork, now_iso, parse_note_type
from docent.completion import CompletionBridge, CompletionOptions
from docent.errors import DocentError, StorageError, UpstreamServiceError, ValidationError
from docent.models.catalog import Artwork, Chunk, Collection, CuratorNote
from docent.rag.chunk_store import ChunkStore
from docent.rag.chunker import chunk_artwork, chunk_artworks
from docent.rag.embedder import OpenAIEmbedder, index_chunks
from docent.rag.grounding import (
    DEFAULT_ESTIMATOR,
    TokenEstimator,
    build_grounding_context,
    trim_conversation_history,
)
from docent.rag.prompt import build_prompt
from docent.rag.rate_limiter import TokenBucket
from docent.rag import retriever
from docent.usage import UsageMonitor

logger = logging.getLogger(__name__)

KEYWORD_RESULTS_LIMIT = 3


@dataclass
class ChatResult:
    """Answer plus what it was grounded on.

    `response` is a string, or an async iterator of text pieces when streaming.
    """
    response: Union[str, AsyncIterator[str]]
    artwork: Optional[Dict[str, Any]] = None
    referenced_titles: List[str] = field(default_factory=list)
    chunks_used: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class HybridSearchResult:
    chunks: List[Chunk] = field(default_factory=list)
    artworks: List[Artwork] = field(default_factory=list)


class DocentEngine:
    def __init__(
        self,
        store: CatalogStore,
        embedder,
        completion: CompletionBridge,
        chunk_store: Optional[ChunkStore] = None,
        limiter: Optional[TokenBucket] = None,
        estimator: TokenEstimator = DEFAULT_ESTIMATOR,
        grounding_token_limit: Optional[int] = None,
        history_token_limit: Optional[int] = None,
        top_k: Optional[int] = None,
    ):
        from docent import config

        self.store = store
        self.embedder = embedder
        self.completion = completion
        self.chunk_store = chunk_store or ChunkStore()
        self.limiter = limiter
        self.estimator = estimator
        self.grounding_token_limit = grounding_token_limit or config.GROUNDING_TOKEN_LIMIT
        self.history_token_limit = history_token_limit or config.HISTORY_TOKEN_LIMIT
        self.top_k = top_k or config.SEMANTIC_TOP_K

        self._catalog: Optional[Catalog] = None
        self._init_task: Optional[asyncio.Future] = None
        self._update_locks: Dict[str, asyncio.Lock] = {}
        self.index_error: Optional[DocentError] = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._catalog is not None

    async def initialize(self) -> Catalog:
        """Load the catalog and index its chunks, once.

        Every caller awaits the same task. If loading fails, the task is
        forgotten so a later call can try again.
        """
        if self._catalog is not None:
            return self._catalog

        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load())
        task = self._init_task
        try:
            # shield: a cancelled caller must not cancel the shared load
            await asyncio.shield(task)
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise
        return self._catalog

    async def _load(self) -> None:
        logger.info(f"[ENGINE] Loading catalog via {self.store.name} backend")
        catalog = await self.store.load_all()
        chunks = chunk_artworks(catalog.all_artworks())
        self.chunk_store.replace_all(chunks)
        logger.info(
            f"[ENGINE] Catalog loaded: {len(catalog.list_collections())} collections, "
            f"{len(catalog)} artworks, {len(chunks)} chunks"
            + (" (degraded: seed catalog)" if catalog.degraded else "")
        )

        try:
            await index_chunks(chunks, self.embedder, self.chunk_store, self.limiter)
            self.index_error = None
        except UpstreamServiceError as e:
            # Unembedded chunks are invisible to semantic search until reindex()
            self.index_error = e
            info = self.chunk_store.get_collection_info()
            logger.error(
                f"[ENGINE] Indexing failed, continuing with {info['embedded']}/{info['count']} "
                f"chunks embedded: {e.message}"
            )
        self._catalog = catalog

    async def _get_catalog(self) -> Catalog:
        return self._catalog if self._catalog is not None else await self.initialize()

    # ------------------------------------------------------------------
    # Catalog reads
    # ------------------------------------------------------------------

    async def get_artwork(self, artwork_id: str, collection_id: Optional[str] = None) -> Optional[Artwork]:
        """Resolve an artwork, using `collection_id` as a hint when given."""
        catalog = await self._get_catalog()
        return resolve_artwork(catalog, artwork_id, collection_id)

    async def list_collection_artworks(self, collection_id: str) -> List[Artwork]:
        catalog = await self._get_catalog()
        return catalog.list_collection_artworks(collection_id)

    async def list_collections(self) -> List[Collection]:
        catalog = await self._get_catalog()
        return catalog.list_collections()

    async def get_collection(self, collection_id: str) -> Optional[Collection]:
        catalog = await self._get_catalog()
        return catalog.get_collection(collection_id)

    async def search_artworks_by_text(self, text: str, collection_id: Optional[str] = None) -> List[Artwork]:
        catalog = await self._get_catalog()
        return catalog.search_text(text, collection_id)

    async def semantic_search(
        self, text: str, collection_id: Optional[str] = None, top_k: Optional[int] = None
    ) -> List[Chunk]:
        """Most similar embedded chunks, best first.

        Raises:
            UpstreamServiceError: If the query cannot be embedded.
        """
        await self._get_catalog()
        top_k = self.top_k if top_k is None else top_k
        results = await retriever.semantic_search(
            text, self.embedder, self.chunk_store, collection_id, top_k
        )
        return [chunk for chunk, _score in results]

    async def hybrid_search(
        self, text: str, collection_id: Optional[str] = None, top_k: Optional[int] = None
    ) -> HybridSearchResult:
        """Semantic chunks plus the top keyword-matched artworks.

        A failing query embedding degrades to keyword results only.
        """
        try:
            chunks = await self.semantic_search(text, collection_id, top_k)
        except UpstreamServiceError as e:
            logger.warning(f"[ENGINE] Semantic half of hybrid search failed: {e.message}")
            chunks = []
        artworks = await self.search_artworks_by_text(text, collection_id)
        return HybridSearchResult(chunks=chunks, artworks=artworks[:KEYWORD_RESULTS_LIMIT])

    def status(self) -> Dict[str, Any]:
        info = self.chunk_store.get_collection_info()
        catalog = self._catalog
        return {
            "initialized": catalog is not None,
            "backend": self.store.name,
            "degraded": bool(catalog and catalog.degraded),
            "collections": len(catalog.list_collections()) if catalog else 0,
            "artworks": len(catalog) if catalog else 0,
            "chunks": info["count"],
            "embedded_chunks": info["embedded"],
            "index_error": self.index_error.to_dict() if self.index_error else None,
        }

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat_complete(
        self,
        message: str,
        artwork_id: Optional[str] = None,
        collection_id: Optional[str] = None,
        history: Optional[Sequence[Dict[str, str]]] = None,
        stream: bool = False,
    ) -> ChatResult:
        """Answer a visitor question grounded in the catalog.

        Args:
            message: The visitor's question.
            artwork_id: Artwork the visitor is viewing, possibly unqualified.
            collection_id: Collection hint and search scope.
            history: Earlier turns, oldest first, as ``{"role", "content"}`` dicts.
            stream: Return an async iterator of text pieces instead of a string.

        Raises:
            ValidationError: If `message` is empty.
        """
        if not message or not message.strip():
            raise ValidationError("Message is required")

        catalog = await self._get_catalog()
        artwork = resolve_artwork(catalog, artwork_id, collection_id) if artwork_id else None
        scope = artwork.collection_id if artwork else collection_id

        candidates: List[Chunk] = []
        if artwork:
            candidates.extend(self.chunk_store.get_artwork_chunks(artwork.collection_id, artwork.id))
        try:
            related = await self.semantic_search(message, scope)
        except UpstreamServiceError as e:
            logger.warning(f"[ENGINE] Semantic search failed, grounding on focus artwork only: {e.message}")
            related = []
        seen = {chunk.key for chunk in candidates}
        for chunk in related:
            if chunk.key not in seen:
                seen.add(chunk.key)
                candidates.append(chunk)

        messages = list(history or []) + [{"role": "user", "content": message}]
        trimmed = trim_conversation_history(messages, self.history_token_limit, self.estimator)
        grounding = build_grounding_context(candidates, self.grounding_token_limit, self.estimator)
        prompt = build_prompt(grounding, artwork)

        logger.info(
            f"[ENGINE] Chat: artwork={artwork.key if artwork else None}, scope={scope or 'all'}, "
            f"{len(grounding.selected_chunks)}/{len(candidates)} chunks, "
            f"{len(trimmed)}/{len(messages)} messages"
        )
        response = await self.completion.complete(prompt, trimmed, CompletionOptions(stream=stream))
        return ChatResult(
            response=response,
            artwork=artwork.to_public_dict() if artwork else None,
            referenced_titles=grounding.referenced_titles,
            chunks_used=[chunk.to_public_dict() for chunk in grounding.selected_chunks],
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _lock_for(self, collection_id: str) -> asyncio.Lock:
        lock = self._update_locks.get(collection_id)
        if lock is None:
            lock = asyncio.Lock()
            self._update_locks[collection_id] = lock
        return lock

    async def _update_artwork(
        self,
        collection: Collection,
        artwork_id: str,
        build: Callable[[Optional[Artwork]], Artwork],
    ) -> Artwork:
        """Read-modify-write one artwork under its collection's lock, then re-index it."""
        catalog = await self._get_catalog()
        async with self._lock_for(collection.id):
            existing = catalog.lookup(collection.id, artwork_id)
            artwork = build(existing)

            siblings = catalog.list_collection_artworks(collection.id)
            if existing is None:
                siblings.append(artwork)
            else:
                siblings = [artwork if a.id == artwork.id else a for a in siblings]

            try:
                await self.store.save_artwork(collection, artwork, siblings)
            except DocentError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to save {artwork.key}: {type(e).__name__}: {e}") from e
            catalog.put_artwork(artwork)

        # The write above stands even if re-indexing fails
        chunks = chunk_artwork(artwork)
        self.chunk_store.replace_artwork_chunks(collection.id, artwork.id, chunks)
        await index_chunks(chunks, self.embedder, self.chunk_store, self.limiter)
        return artwork

    async def save_artwork(self, collection_id: str, artwork_data: Dict[str, Any]) -> Artwork:
        """Create or update an artwork and re-index its chunks.

        Curator notes are kept from the stored artwork unless `artwork_data`
        supplies its own.

        Raises:
            ValidationError: Unknown collection, or missing id/title/artist.
            StorageError: The backend write failed.
            UpstreamServiceError: Saved, but re-indexing failed.
        """
        catalog = await self._get_catalog()
        collection = catalog.get_collection(collection_id)
        if collection is None:
            raise ValidationError(f"Unknown collection: {collection_id}")
        missing = [f for f in ("id", "title", "artist") if not str(artwork_data.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        has_notes = "curator_notes" in artwork_data or "curatorNotes" in artwork_data

        def build(existing: Optional[Artwork]) -> Artwork:
            timestamp = now_iso()
            artwork = normalize_artwork(artwork_data, collection, loaded_at=timestamp)
            artwork.updated_at = timestamp
            artwork.created_at = (existing.created_at if existing else None) or artwork.created_at or timestamp
            if existing is not None and not has_notes:
                artwork.curator_notes = list(existing.curator_notes)
            return artwork

        artwork_id = str(artwork_data["id"]).strip()
        return await self._update_artwork(collection, artwork_id, build)

    async def add_curator_note(
        self,
        artwork_id: str,
        collection_id: Optional[str],
        content: str,
        curator_name: str,
        note_type: str = "interpretation",
    ) -> Optional[CuratorNote]:
        """Prepend a curator note to an artwork and re-index it.

        Returns:
            The new note, or None if the artwork cannot be resolved.
        """
        if not content or not content.strip():
            raise ValidationError("Note content is required")

        artwork = await self.get_artwork(artwork_id, collection_id)
        if artwork is None:
            return None
        collection = self._catalog.get_collection(artwork.collection_id)

        note = CuratorNote(
            id=f"{artwork.id}_note_{uuid.uuid4().hex[:8]}",
            content=content.strip(),
            curator_name=(curator_name or "").strip() or "Unknown Curator",
            created_at=now_iso(),
            type=parse_note_type(note_type),
        )

        def build(existing: Optional[Artwork]) -> Artwork:
            base = existing or artwork
            return dataclasses.replace(
                base,
                curator_notes=[note] + list(base.curator_notes),
                updated_at=note.created_at,
            )

        await self._update_artwork(collection, artwork.id, build)
        logger.info(f"[ENGINE] Added {note.type.value} note to {artwork.key} by {note.curator_name}")
        return note

    async def reindex(self, collection_id: Optional[str] = None) -> int:
        """Re-chunk and re-embed one collection, or everything.

        Raises:
            UpstreamServiceError: From the first failing embedding batch.
        """
        catalog = await self._get_catalog()
        if collection_id:
            chunks: List[Chunk] = []
            for artwork in catalog.list_collection_artworks(collection_id):
                artwork_chunks = chunk_artwork(artwork)
                self.chunk_store.replace_artwork_chunks(collection_id, artwork.id, artwork_chunks)
                chunks.extend(artwork_chunks)
        else:
            chunks = chunk_artworks(catalog.all_artworks())
            self.chunk_store.replace_all(chunks)

        logger.info(f"[ENGINE] Re-indexing {len(chunks)} chunks ({collection_id or 'all collections'})")
        indexed = await index_chunks(chunks, self.embedder, self.chunk_store, self.limiter)
        if not collection_id:
            self.index_error = None
        return indexed


def build_engine() -> DocentEngine:
    """Construct an engine wired from docent.config."""
    from docent import config

    usage = UsageMonitor(
        daily_limit=config.DAILY_COST_LIMIT,
        monthly_limit=config.MONTHLY_COST_LIMIT,
    )
    return DocentEngine(
        store=get_catalog_store(),
        embedder=OpenAIEmbedder(usage=usage),
        completion=CompletionBridge(usage=usage),
        limiter=TokenBucket(rate=config.EMBEDDING_BATCHES_PER_SECOND),
    )
