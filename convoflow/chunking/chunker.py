"""Split long-form text into overlapping, size-bounded retrieval chunks.

Every chunk is a contiguous slice of the normalised source text. A chunk
that follows another starts with an overlap tail copied from the end of its
predecessor, so stitching the chunks back together while dropping the
shared prefix reproduces the normalised source.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

CHARS_PER_TOKEN = 4
TARGET_CHUNK_TOKENS = 500
CHUNK_OVERLAP_TOKENS = 50

TARGET_CHARS = TARGET_CHUNK_TOKENS * CHARS_PER_TOKEN
OVERLAP_CHARS = CHUNK_OVERLAP_TOKENS * CHARS_PER_TOKEN

PARAGRAPH_BREAK = "\n\n"

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")
_SENTENCE_BOUNDARY = re.compile(r"[.!?]\s+")
_WORD_BOUNDARY = re.compile(r"\s+")


@dataclass(frozen=True)
class Chunk:
    """A retrieval unit derived from one source document.

    Attributes:
        content: Chunk text.
        chunk_index: Dense, 0-based position within the source.
        start: Offset of ``content`` within the normalised source text.
        url: Optional source URL.
        title: Optional source title.
        extra: Additional caller-supplied metadata.
    """

    content: str
    chunk_index: int
    start: int = 0
    url: str | None = None
    title: str | None = None
    extra: Dict[str, object] = field(default_factory=dict)

    @property
    def end(self) -> int:
        return self.start + len(self.content)

    def metadata(self) -> Dict[str, object]:
        data: Dict[str, object] = dict(self.extra)
        if self.url is not None:
            data["url"] = self.url
        if self.title is not None:
            data["title"] = self.title
        data["chunk_index"] = self.chunk_index
        return data


def normalize_text(content: str) -> str:
    """Collapse whitespace runs and limit blank lines to one paragraph break."""

    text = content.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _EXTRA_NEWLINES.sub(PARAGRAPH_BREAK, text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Approximate the token count of ``text`` at four characters per token."""

    return math.ceil(len(text) / CHARS_PER_TOKEN)


def overlap_tail(text: str, overlap_chars: int = OVERLAP_CHARS) -> str:
    """Return the tail of ``text`` to repeat at the start of the next chunk.

    Within the last ``overlap_chars`` characters the tail starts after the
    first sentence boundary, else after the first word boundary, else it is
    the raw suffix.
    """

    if len(text) <= overlap_chars:
        return text
    last_part = text[-overlap_chars:]
    match = _SENTENCE_BOUNDARY.search(last_part) or _WORD_BOUNDARY.search(last_part)
    if match is not None:
        return last_part[match.end():]
    return last_part


def _last_whitespace(text: str, lo: int, hi: int) -> int:
    window = text[lo : hi + 1]
    pos = max(window.rfind(" "), window.rfind("\n"))
    return -1 if pos < 0 else lo + pos


def _paragraph_spans(text: str) -> List[tuple[int, int]]:
    spans: List[tuple[int, int]] = []
    pos = 0
    for paragraph in text.split(PARAGRAPH_BREAK):
        spans.append((pos, pos + len(paragraph)))
        pos += len(paragraph) + len(PARAGRAPH_BREAK)
    return spans


def _split_spans(text: str, max_chars: int, overlap_chars: int) -> List[tuple[int, int]]:
    spans: List[tuple[int, int]] = []
    start: int | None = None
    end = 0

    def close(span_start: int, span_end: int) -> int:
        spans.append((span_start, span_end))
        return span_end - len(overlap_tail(text[span_start:span_end], overlap_chars))

    for para_start, para_end in _paragraph_spans(text):
        if start is None:
            start, end = para_start, para_end
        elif para_end - start <= max_chars:
            end = para_end
            continue
        else:
            start = close(start, end)
            end = para_end

        while end - start > max_chars:
            # Cut at whitespace far enough past the overlap to make progress.
            cut = _last_whitespace(text, start + overlap_chars + 2, start + max_chars)
            if cut < 0:
                cut = start + max_chars
            else:
                while text[cut - 1].isspace():
                    cut -= 1
            start = close(start, cut)

    if start is not None and end > start:
        spans.append((start, end))
    return spans


def chunk_text(content: str, metadata: Mapping[str, object] | None = None) -> List[Chunk]:
    """Split ``content`` into overlapping chunks of at most ``TARGET_CHARS``.

    Args:
        content: Arbitrary long-form text.
        metadata: Optional source metadata; ``url`` and ``title`` are lifted
            onto each chunk, everything else lands in :attr:`Chunk.extra`.

    Returns:
        list[Chunk]: Chunks with sequential ``chunk_index`` values starting
        at zero. Empty or whitespace-only input yields an empty list.
    """

    if not content or not content.strip():
        return []

    meta = dict(metadata or {})
    url = meta.pop("url", None)
    title = meta.pop("title", None)
    normalized = normalize_text(content)

    if len(normalized) <= TARGET_CHARS:
        spans = [(0, len(normalized))]
    else:
        spans = _split_spans(normalized, TARGET_CHARS, OVERLAP_CHARS)

    return [
        Chunk(
            content=normalized[start:end],
            chunk_index=index,
            start=start,
            url=str(url) if url is not None else None,
            title=str(title) if title is not None else None,
            extra=dict(meta),
        )
        for index, (start, end) in enumerate(spans)
    ]


__all__ = [
    "CHARS_PER_TOKEN",
    "Chunk",
    "OVERLAP_CHARS",
    "TARGET_CHARS",
    "chunk_text",
    "estimate_tokens",
    "normalize_text",
    "overlap_tail",
]
