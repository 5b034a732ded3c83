from convoflow.chunking import chunk_text, estimate_tokens
from convoflow.chunking.chunker import (
    OVERLAP_CHARS,
    TARGET_CHARS,
    normalize_text,
    overlap_tail,
)


def _paragraphs(count: int, words: int = 60) -> str:
    return "\n\n".join(
        " ".join(f"word{p}_{w}." if w % 12 == 11 else f"word{p}_{w}" for w in range(words))
        for p in range(count)
    )


def test_empty_and_whitespace_input_yield_no_chunks():
    assert chunk_text("") == []
    assert chunk_text("   \n\n\t ") == []


def test_short_text_is_a_single_chunk_with_metadata():
    chunks = chunk_text(
        "Our office   opens at 9am.\n\n\n\nWe close at 5pm.",
        {"url": "https://example.com/hours", "title": "Hours", "filename": "hours.txt"},
    )

    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.content == "Our office opens at 9am.\n\nWe close at 5pm."
    assert chunk.chunk_index == 0
    assert chunk.metadata() == {
        "filename": "hours.txt",
        "url": "https://example.com/hours",
        "title": "Hours",
        "chunk_index": 0,
    }


def test_long_text_chunks_are_bounded_and_sequential():
    text = _paragraphs(40)
    chunks = chunk_text(text)

    assert len(chunks) > 1
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    assert all(len(c.content) <= TARGET_CHARS for c in chunks)
    assert all(c.content.strip() for c in chunks)


def test_chunks_are_slices_of_the_normalized_text():
    normalized = normalize_text(_paragraphs(30))
    chunks = chunk_text(normalized)

    for chunk in chunks:
        assert normalized[chunk.start : chunk.end] == chunk.content
    assert chunks[0].start == 0
    assert chunks[-1].end == len(normalized)


def test_consecutive_chunks_share_the_overlap_tail():
    chunks = chunk_text(_paragraphs(30))

    for previous, current in zip(chunks, chunks[1:]):
        tail = overlap_tail(previous.content)
        assert current.content.startswith(tail)
        assert len(tail) <= OVERLAP_CHARS


def test_paragraph_longer_than_limit_is_split_at_whitespace():
    long_paragraph = " ".join(f"token{i}" for i in range(1200))
    chunks = chunk_text(long_paragraph)

    assert len(chunks) > 1
    assert all(len(c.content) <= TARGET_CHARS for c in chunks)
    for chunk in chunks:
        assert not chunk.content.startswith(" ")
        assert not chunk.content.endswith(" ")


def test_text_without_whitespace_is_hard_cut():
    chunks = chunk_text("x" * (TARGET_CHARS * 2 + 10))

    assert len(chunks) >= 3
    assert all(len(c.content) <= TARGET_CHARS for c in chunks)


def test_overlap_tail_prefers_sentence_boundary():
    text = "a" * 300 + ". Next sentence starts here and keeps going for a while"
    tail = overlap_tail(text, overlap_chars=80)

    assert tail == "Next sentence starts here and keeps going for a while"


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
