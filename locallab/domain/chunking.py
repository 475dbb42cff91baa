import logging

logger = logging.getLogger(__name__)


def chunk_text(content: str | None, chunk_size: int, overlap: int) -> list[str]:
    """Split text into fixed-size windows that overlap by ``overlap`` characters.

    The window advances by ``chunk_size - overlap``; the last window is
    truncated to whatever content remains.
    """
    if chunk_size <= 0:
        raise ValueError("Chunk size must be positive")
    if overlap < 0:
        raise ValueError("Chunk overlap must not be negative")
    if overlap >= chunk_size:
        raise ValueError("Chunk overlap must be less than chunk size")

    if not content:
        return []

    stride = chunk_size - overlap
    chunks = [
        content[start : start + chunk_size]
        for start in range(0, len(content), stride)
    ]

    logger.debug(
        "Created %d chunks (chunk_size=%d, overlap=%d, length=%d)",
        len(chunks),
        chunk_size,
        overlap,
        len(content),
    )
    return chunks
