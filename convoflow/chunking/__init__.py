"""Text chunking for knowledge retrieval."""

from .chunker import Chunk, chunk_text, estimate_tokens

__all__ = ["Chunk", "chunk_text", "estimate_tokens"]
