"""Tests for text chunking."""

import pytest

from glados.utils import split_text_chunks


class TestSplitTextChunks:
    def test_short_text_single_chunk(self) -> None:
        assert split_text_chunks("hello", max_length=10) == ["hello"]

    def test_empty_text(self) -> None:
        assert split_text_chunks("", max_length=10) == [""]

    def test_prefers_newlines(self) -> None:
        text = "first line\nsecond line"
        assert split_text_chunks(text, max_length=15) == ["first line", "second line"]

    def test_falls_back_to_spaces(self) -> None:
        assert split_text_chunks("aaa bbb ccc", max_length=8) == ["aaa bbb", "ccc"]

    def test_hard_splits_long_words(self) -> None:
        assert split_text_chunks("a" * 25, max_length=10) == ["a" * 10, "a" * 10, "a" * 5]

    def test_chunks_respect_limit(self) -> None:
        text = " ".join(["word"] * 1000)
        chunks = split_text_chunks(text, max_length=2000)
        assert all(len(chunk) <= 2000 for chunk in chunks)
        assert " ".join(chunks).split() == text.split()

    def test_invalid_max_length(self) -> None:
        with pytest.raises(ValueError):
            split_text_chunks("text", max_length=0)
