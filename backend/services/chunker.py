"""
Fixed-size sliding-window chunking.

Chunks are raw slices of the input (no stripping), so consecutive chunks
overlap by exactly `overlap` characters and together cover the whole text.
An overlap >= chunk_size is accepted but degenerates to a single chunk.
"""

import logging
from typing import List

from services.exceptions import ChunkingError

logger = logging.getLogger(__name__)


def chunk_text(text: str, chunk_size: int, overlap: int) -> List[str]:
    """Split text into overlapping fixed-size chunks."""
    if chunk_size <= 0:
        raise ChunkingError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ChunkingError(f"overlap must not be negative, got {overlap}")
    if overlap >= chunk_size:
        logger.warning(
            "⚠️  chunk overlap (%d) >= chunk size (%d): only the first window will be indexed",
            overlap, chunk_size,
        )

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end >= len(text):
            break
        next_start = start + chunk_size - overlap
        if next_start <= start:
            break
        start = next_start
    return chunks
