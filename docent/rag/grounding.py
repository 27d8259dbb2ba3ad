"""
Grounding context assembly and conversation-history trimming.

Both work against a token budget measured by a pluggable estimator. The
default estimator is the ``ceil(chars / 4)`` heuristic; it is not a real
tokenizer.

Overflowing a budget is never an error: chunks and history are simply cut.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence

from docent.models.catalog import Chunk, ChunkType

logger = logging.getLogger(__name__)

# Lower sorts first; types not listed sort last
CHUNK_PRIORITY = {
    ChunkType.SUMMARY: 0,
    ChunkType.DESCRIPTION: 0,
    ChunkType.TECHNICAL: 1,
    ChunkType.CURATOR_NOTE: 2,
    ChunkType.PROVENANCE: 3,
}
UNKNOWN_PRIORITY = 99


class TokenEstimator(Protocol):
    def estimate(self, text: str) -> int:
        ...


class CharHeuristicEstimator:
    """Roughly 1 token per 4 characters."""

    chars_per_token = 4

    def estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)


DEFAULT_ESTIMATOR = CharHeuristicEstimator()


@dataclass
class GroundingContext:
    selected_chunks: List[Chunk] = field(default_factory=list)
    referenced_titles: List[str] = field(default_factory=list)
    estimated_tokens: int = 0


def build_grounding_context(
    chunks: Sequence[Chunk],
    max_tokens: int,
    estimator: TokenEstimator = DEFAULT_ESTIMATOR,
) -> GroundingContext:
    """Pick a priority-ordered, budgeted subset of chunks.

    Chunks are stably sorted by type priority (summary/description, technical,
    curator note, provenance, anything else) and accepted first-fit: selection
    stops at the first chunk that would push the total past `max_tokens`, even
    if a smaller chunk later on would still fit.
    """
    ordered = sorted(chunks, key=lambda c: CHUNK_PRIORITY.get(c.chunk_type, UNKNOWN_PRIORITY))
    context = GroundingContext()
    titles: Dict[str, None] = {}

    for chunk in ordered:
        chunk_tokens = estimator.estimate(chunk.content)
        if context.estimated_tokens + chunk_tokens > max_tokens:
            logger.info(
                f"[GROUNDING] Budget {max_tokens} reached, "
                f"stopping at {len(context.selected_chunks)}/{len(ordered)} chunks"
            )
            break
        context.selected_chunks.append(chunk)
        titles.setdefault(chunk.source_title, None)
        context.estimated_tokens += chunk_tokens

    context.referenced_titles = list(titles)
    return context


def trim_conversation_history(
    messages: Sequence[Dict[str, str]],
    max_tokens: int,
    estimator: TokenEstimator = DEFAULT_ESTIMATOR,
) -> List[Dict[str, str]]:
    """Keep the most recent messages that fit in `max_tokens`.

    The newest message is always kept, even when it alone exceeds the budget.
    Walking backwards, the first older message that would overflow ends the
    walk. Output is in chronological order.
    """
    kept: List[Dict[str, str]] = []
    total = 0
    for message in reversed(messages):
        message_tokens = estimator.estimate(message.get("content", ""))
        if kept and total + message_tokens > max_tokens:
            break
        kept.append(message)
        total += message_tokens

    kept.reverse()
    if len(kept) < len(messages):
        logger.info(f"[GROUNDING] Trimmed history from {len(messages)} to {len(kept)} messages")
    return kept
