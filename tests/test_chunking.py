import pytest

from locallab.domain.chunking import chunk_text


def test_chunk_text_overlapping_windows():
    assert chunk_text("0123456789", 4, 1) == ["0123", "3456", "6789", "9"]


def test_chunk_text_without_overlap():
    assert chunk_text("abcdefgh", 4, 0) == ["abcd", "efgh"]


def test_chunk_text_shorter_than_chunk_size():
    assert chunk_text("abc", 10, 2) == ["abc"]


@pytest.mark.parametrize("content", ["", None])
def test_chunk_text_empty_content(content):
    assert chunk_text(content, 10, 2) == []


def test_chunk_text_consecutive_chunks_share_overlap():
    content = "the quick brown fox jumps over the lazy dog"
    chunks = chunk_text(content, 10, 3)

    for previous, current in zip(chunks, chunks[1:]):
        if len(previous) == 10:
            assert previous[-3:] == current[:3]


def test_chunk_text_covers_whole_content():
    content = "x" * 25 + "y" * 25
    chunks = chunk_text(content, 10, 4)

    rebuilt = chunks[0] + "".join(chunk[4:] for chunk in chunks[1:])
    assert rebuilt.startswith(content)


@pytest.mark.parametrize(
    "chunk_size,overlap,message",
    [
        (0, 0, "Chunk size must be positive"),
        (-5, 0, "Chunk size must be positive"),
        (10, -1, "Chunk overlap must not be negative"),
        (10, 10, "Chunk overlap must be less than chunk size"),
        (10, 15, "Chunk overlap must be less than chunk size"),
    ],
)
def test_chunk_text_rejects_invalid_parameters(chunk_size, overlap, message):
    with pytest.raises(ValueError, match=message):
        chunk_text("some content", chunk_size, overlap)


def test_chunk_text_validates_before_empty_check():
    with pytest.raises(ValueError):
        chunk_text("", 5, 5)
