"""
Embedder module for generating embeddings and indexing chunks.

Uses the OpenAI embeddings endpoint (text-embedding-3-small by default) to
embed artwork chunks in batches of at most 100 texts, and stores the vectors in
the ChunkStore side-table. Can also embed individual queries at retrieval time.

Failure policy is fail-fast, the opposite of the catalog loader: the first
batch that fails aborts indexing and raises UpstreamServiceError. Batches that
already succeeded keep their embeddings; the rest stay unembedded and are
invisible to semantic search until a re-index.
"""

import logging
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from docent.errors import UpstreamServiceError
from docent.models.catalog import Chunk, EmbeddingRecord
from docent.openai_client import call_with_retry, get_openai_client
from docent.rag.chunk_store import ChunkStore
from docent.rag.rate_limiter import TokenBucket
from docent.usage import UsageMonitor

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100


class OpenAIEmbedder:
    """Embedding service: embed(texts) -> vectors."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        usage: Optional[UsageMonitor] = None,
    ):
        from docent import config

        self.model = model or config.EMBEDDING_MODEL
        self.timeout_seconds = timeout_seconds or config.EMBEDDING_TIMEOUT_SECONDS
        self._client = client
        self.usage = usage

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client(self.timeout_seconds)
        return self._client

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Generate embeddings for a list of texts.

        Raises:
            UpstreamServiceError: On API failure, timeout or a short response.
        """
        if not texts:
            return []
        try:
            response = await call_with_retry(
                lambda: self.client.embeddings.create(
                    model=self.model,
                    input=list(texts),
                    encoding_format="float",
                ),
                operation_name=f"embeddings ({len(texts)} texts)",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as e:
            raise UpstreamServiceError(f"Embedding request failed: {type(e).__name__}: {e}") from e

        embeddings = [item.embedding for item in response.data]
        if len(embeddings) != len(texts):
            raise UpstreamServiceError(
                f"Embedding service returned {len(embeddings)} vectors for {len(texts)} texts"
            )

        usage = getattr(response, "usage", None)
        total_tokens = getattr(usage, "total_tokens", None)
        if isinstance(total_tokens, int):
            logger.info(
                f"[EMBEDDER] Generated {len(embeddings)} embeddings ({self.model}), "
                f"usage: {total_tokens} tokens"
            )
            if self.usage is not None:
                self.usage.record_embedding(self.model, total_tokens)
        return embeddings

    async def embed_query(self, query: str) -> List[float]:
        """Generate an embedding for a single query string."""
        return (await self.embed([query]))[0]


async def index_chunks(
    chunks: Sequence[Chunk],
    embedder,
    chunk_store: ChunkStore,
    limiter: Optional[TokenBucket] = None,
    batch_size: Optional[int] = None,
) -> int:
    """Embed chunks in rate-limited batches and record them in `chunk_store`.

    Args:
        chunks: Chunks to embed (already stored in `chunk_store`).
        embedder: Object with ``async embed(texts) -> vectors``.
        chunk_store: Side-table receiving one EmbeddingRecord per chunk.
        limiter: Paces batches; no pacing when None.
        batch_size: Texts per call, capped at 100.

    Returns:
        Number of chunks embedded.

    Raises:
        UpstreamServiceError: From the first failing batch; later batches are not attempted.
    """
    from docent import config

    batch_size = min(batch_size or config.EMBEDDING_BATCH_SIZE, MAX_BATCH_SIZE)
    model = getattr(embedder, "model", "unknown")
    indexed = 0

    logger.info(f"[EMBEDDER] Indexing {len(chunks)} chunks in batches of {batch_size}")
    for start in range(0, len(chunks), batch_size):
        batch = chunks[start:start + batch_size]
        if limiter is not None:
            await limiter.acquire()
        try:
            vectors = await embedder.embed([chunk.content for chunk in batch])
            if len(vectors) != len(batch):
                raise UpstreamServiceError(
                    f"Embedding service returned {len(vectors)} vectors for {len(batch)} texts"
                )
        except UpstreamServiceError as e:
            logger.error(
                f"[EMBEDDER] Batch at offset {start} failed, aborting after {indexed} chunks: {e.message}"
            )
            raise
        except Exception as e:
            logger.error(
                f"[EMBEDDER] Batch at offset {start} failed, aborting after {indexed} chunks: {e}"
            )
            raise UpstreamServiceError(f"Embedding batch failed: {type(e).__name__}: {e}") from e

        stale = 0
        for chunk, vector in zip(batch, vectors):
            attached = chunk_store.set_embedding(EmbeddingRecord(
                collection_id=chunk.collection_id,
                chunk_id=chunk.chunk_id,
                vector=tuple(vector),
                model=model,
            ), chunk)
            if not attached:
                stale += 1
        if stale:
            logger.info(f"[EMBEDDER] Dropped {stale} vectors for chunks replaced during indexing")
        indexed += len(batch) - stale

    logger.info(f"[EMBEDDER] Indexing complete: {indexed} chunks embedded")
    return indexed
