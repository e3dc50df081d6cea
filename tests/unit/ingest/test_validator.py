"""Tests for content validation."""

from __future__ import annotations

import pytest

from lumen.errors import BinaryContent, EmptyContent, FileTooLarge, InvalidContent
from lumen.ingest.validator import DEFAULT_MAX_BYTES, looks_binary, validate_content


def test_default_limit_is_ten_megabytes():
    assert DEFAULT_MAX_BYTES == 10_000_000


def test_valid_text_returned_unchanged():
    assert validate_content("Hello\tworld\r\n") == "Hello\tworld\r\n"


def test_valid_bytes_decoded():
    assert validate_content("héllo".encode("utf-8")) == "héllo"


def test_too_large_rejected():
    with pytest.raises(FileTooLarge) as exc_info:
        validate_content("abcdef", max_bytes=5)
    assert exc_info.value.reason == "too large"
    assert exc_info.value.size == 6


def test_size_counts_utf8_bytes():
    # two characters, four bytes
    with pytest.raises(FileTooLarge):
        validate_content("éé", max_bytes=3)


def test_size_checked_before_binary():
    with pytest.raises(FileTooLarge):
        validate_content(b"\x00" * 10, max_bytes=5)


def test_nul_byte_is_binary():
    with pytest.raises(BinaryContent):
        validate_content(b"abc\x00def")
    with pytest.raises(BinaryContent):
        validate_content("abc\x00def")


def test_control_characters_over_one_percent_is_binary():
    text = "a" * 197 + "\x01\x02\x03"
    with pytest.raises(BinaryContent) as exc_info:
        validate_content(text)
    assert exc_info.value.reason == "binary"


def test_control_characters_at_one_percent_allowed():
    text = "a" * 198 + "\x01\x02"
    assert looks_binary(text) is False
    assert validate_content(text) == text


def test_tabs_and_newlines_are_not_control_noise():
    assert looks_binary("\t\n\r" * 100) is False


def test_invalid_utf8_rejected():
    with pytest.raises(InvalidContent) as exc_info:
        validate_content(b"caf\xe9 au lait")
    assert exc_info.value.reason == "invalid"


def test_whitespace_only_is_empty():
    with pytest.raises(EmptyContent) as exc_info:
        validate_content("  \n\t ")
    assert exc_info.value.reason == "empty"
