"""
System prompt builder for grounded artwork chat.

The prompt is rebuilt for every request from the grounding context selected by
build_grounding_context() and, when the visitor is looking at a specific
piece, the focus artwork's own fields.
"""

import logging
from typing import List, Optional

from docent.models.catalog import Artwork
from docent.rag.grounding import GroundingContext

logger = logging.getLogger(__name__)

PROMPT_HEADER = (
    "You are a knowledgeable museum guide assistant. Help visitors understand "
    "and appreciate the artworks they're viewing."
)

PROMPT_INSTRUCTIONS = """INSTRUCTIONS:
- Provide engaging, educational responses about the artworks
- Use the provided information as your primary source
- Focus on the current artwork context when available
- If asked about artworks not in the provided information, politely explain you don't have details about those specific pieces
- Keep responses conversational but informative
- Encourage deeper engagement with the artworks
- If technical details aren't provided, focus on visual elements and artistic significance

Respond naturally and helpfully to the visitor's questions."""


def format_artwork_context(artwork: Artwork) -> str:
    """Render the CURRENT ARTWORK CONTEXT block, skipping empty fields."""
    lines = [
        "CURRENT ARTWORK CONTEXT:",
        f"Title: {artwork.title}",
        f"Artist: {artwork.artist}",
    ]
    if artwork.year is not None:
        lines.append(f"Year: {artwork.year}")
    if artwork.medium:
        lines.append(f"Medium: {artwork.medium}")
    if artwork.description:
        lines.append(f"Description: {artwork.description}")
    lines.append(f"Museum: {artwork.collection_name or artwork.collection_id}")
    return "\n".join(lines)


def format_grounding_lines(grounding: GroundingContext) -> List[str]:
    return [
        f"[{chunk.chunk_type.value.upper()}] {chunk.content}"
        for chunk in grounding.selected_chunks
    ]


def build_prompt(grounding: GroundingContext, focus_artwork: Optional[Artwork] = None) -> str:
    """Build the system prompt for one chat turn.

    Args:
        grounding: Budgeted chunks and the titles they came from.
        focus_artwork: The artwork the visitor is currently viewing, if any.

    Returns:
        The complete system prompt string.
    """
    sections = [PROMPT_HEADER]

    if grounding.referenced_titles:
        sections.append(f"Available artworks: {', '.join(grounding.referenced_titles)}")
    if focus_artwork is not None:
        sections.append(format_artwork_context(focus_artwork))

    sections.append("RELEVANT INFORMATION:\n" + "\n\n".join(format_grounding_lines(grounding)))
    sections.append(PROMPT_INSTRUCTIONS)

    prompt = "\n\n".join(sections)
    logger.info(
        f"[PROMPT] Built system prompt: {len(prompt):,} chars, "
        f"{len(grounding.selected_chunks)} chunks, ~{grounding.estimated_tokens} grounding tokens"
    )
    return prompt
