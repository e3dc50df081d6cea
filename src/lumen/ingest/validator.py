"""Content validation run before anything is chunked or embedded."""

from __future__ import annotations

from lumen.errors import BinaryContent, EmptyContent, FileTooLarge, InvalidContent

DEFAULT_MAX_BYTES = 10_000_000

_ALLOWED_CONTROL = frozenset("\t\n\r")


def looks_binary(text: str) -> bool:
    """True if *text* holds a NUL or more than 1% control characters."""
    if "\x00" in text:
        return True
    threshold = len(text) // 100
    controls = sum(1 for ch in text if ord(ch) < 32 and ch not in _ALLOWED_CONTROL)
    return controls > threshold


def validate_content(content: str | bytes, max_bytes: int = DEFAULT_MAX_BYTES) -> str:
    """Return *content* as text if it is indexable.

    Checks run in order: size, binary, encoding, emptiness.

    Raises:
        FileTooLarge: UTF-8 size (raw size for bytes) exceeds *max_bytes*.
        BinaryContent: NUL byte or too many control characters.
        InvalidContent: *content* is bytes that are not UTF-8.
        EmptyContent: Nothing but whitespace.
    """
    size = len(content) if isinstance(content, bytes) else len(content.encode("utf-8"))
    if size > max_bytes:
        raise FileTooLarge(size, max_bytes)

    if isinstance(content, bytes):
        if b"\x00" in content:
            raise BinaryContent()
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidContent("not valid UTF-8") from None
    else:
        text = content

    if looks_binary(text):
        raise BinaryContent()
    if not text.strip():
        raise EmptyContent()
    return text
