"""
Text chunking for course documents
Splits raw document text into bounded segments at natural boundaries
"""

from typing import List

DEFAULT_MAX_CHARS = 1200

# A boundary closer to the window start than this fraction is rejected
MIN_CHUNK_FRACTION = 0.5


def normalize_line_endings(text: str) -> str:
    """Convert CRLF and bare CR line endings to LF"""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _find_break(text: str, start: int, max_chars: int) -> int:
    """Pick the end offset of the chunk that begins at ``start``.

    Preference order: last newline in the window, then the last sentence end
    (". "), then a hard cut at the window boundary. A newline or sentence
    boundary that would leave the chunk under half of ``max_chars`` is skipped.
    """
    end = start + max_chars
    midpoint = start + max_chars * MIN_CHUNK_FRACTION

    newline_index = text.rfind("\n", start, end + 1)
    if newline_index >= midpoint:
        return newline_index

    # The period stays with its sentence, so the break is one past it
    period_index = text.rfind(". ", start, end + 1)
    if period_index >= midpoint:
        return period_index + 1

    return end


def chunk_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> List[str]:
    """
    Split text into chunks of at most ``max_chars`` characters

    Deterministic: the same text and limit always produce the same chunks.
    Whitespace around chunk boundaries is trimmed and blank chunks are dropped,
    so empty or whitespace-only input yields an empty list.

    Args:
        text: Raw document text
        max_chars: Maximum chunk length in characters

    Returns:
        Ordered list of non-empty chunks

    Raises:
        ValueError: If max_chars is smaller than 1
    """
    if max_chars < 1:
        raise ValueError(f"max_chars must be a positive integer, got {max_chars}")

    cleaned = normalize_line_endings(text or "")
    chunks: List[str] = []
    start = 0

    while start < len(cleaned):
        if start + max_chars >= len(cleaned):
            chunks.append(cleaned[start:].strip())
            break

        break_index = _find_break(cleaned, start, max_chars)
        chunks.append(cleaned[start:break_index].strip())
        start = break_index

    return [chunk for chunk in chunks if chunk]
