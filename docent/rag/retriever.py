"""
Retriever module for semantic chunk retrieval at query time.

Embeds the visitor query once, scores every embedded chunk in scope (one
collection, or the whole catalog) by cosine similarity and returns the top-K.

This is a linear scan per query with no approximate nearest-neighbour index;
fine for a few museums' worth of chunks, a known limit beyond that.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

from docent.models.catalog import Chunk
from docent.rag.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors."""
    if len(vec_a) != len(vec_b):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)


def rank_chunks(
    query_embedding: Sequence[float],
    chunk_store: ChunkStore,
    collection_id: Optional[str] = None,
    top_k: int = 5,
) -> List[Tuple[Chunk, float]]:
    """Score embedded chunks in scope; highest similarity first, ties in stored order."""
    if top_k <= 0:
        return []
    scored = [
        (chunk, cosine_similarity(query_embedding, record.vector))
        for chunk, record in chunk_store.embedded_chunks(collection_id)
    ]
    # sorted() is stable, so equal scores keep their original order
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return scored[:top_k]


async def semantic_search(
    query_text: str,
    embedder,
    chunk_store: ChunkStore,
    collection_id: Optional[str] = None,
    top_k: int = 5,
) -> List[Tuple[Chunk, float]]:
    """Retrieve the chunks most similar to `query_text`.

    Args:
        query_text: Visitor question.
        embedder: Object with ``async embed_query(text) -> vector``.
        chunk_store: Chunk and embedding side-table.
        collection_id: Restrict to one collection; whole catalog when None.
        top_k: Maximum number of results.

    Returns:
        (chunk, similarity) pairs sorted by non-increasing similarity.

    Raises:
        UpstreamServiceError: If the query embedding fails.
    """
    if top_k <= 0:
        return []
    query_embedding = await embedder.embed_query(query_text)
    results = rank_chunks(query_embedding, chunk_store, collection_id, top_k)

    if not results:
        logger.warning(
            f"[RETRIEVER] No embedded chunks in scope {collection_id or 'all collections'}"
        )
    else:
        logger.info(
            f"[RETRIEVER] Retrieved {len(results)} chunks (best {results[0][1]:.2f}) "
            f"for query: {query_text[:80]}..."
        )
    return results
