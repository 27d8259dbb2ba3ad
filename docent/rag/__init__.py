"""
RAG (Retrieval Augmented Generation) module for the docent engine.

This package turns catalog artworks into searchable chunks and assembles the
token-budgeted grounding that goes into every chat prompt.

Components:
    - chunker: Splits artworks into summary, description, provenance,
      technical and curator-note chunks
    - chunk_store: In-memory chunks plus the embedding side-table
    - rate_limiter: Token bucket pacing embedding batches
    - embedder: Generates embeddings via OpenAI text-embedding-3-small
    - retriever: Cosine-similarity retrieval at query time
    - grounding: Priority-ordered, budgeted chunk selection and history trimming
    - prompt: Builds the system prompt from the grounding context
"""
