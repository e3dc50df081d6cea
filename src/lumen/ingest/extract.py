"""Text extraction for imported files.

Strategies are tried in order and the first non-empty result wins:

1. UTF-8 (skipped for rich text and PDF suffixes)
2. UTF-16 when the file starts with a byte-order mark
3. Rich text: ``.rtf`` via striprtf, ``.html``/``.htm`` via bs4 + html2text
4. PDF via pypdf

Nothing is returned for a file no strategy can read; the caller raises
``ExtractionError``.
"""

from __future__ import annotations

import codecs
import logging
from pathlib import Path

import html2text
import pypdf
from bs4 import BeautifulSoup
from striprtf.striprtf import rtf_to_text

from lumen.errors import ExtractionError

logger = logging.getLogger(__name__)

_RICH_SUFFIXES = frozenset([".rtf", ".html", ".htm"])
_PDF_SUFFIXES = frozenset([".pdf"])

# html2text converter, shared instance
_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0  # no line wrapping


def extract_text(path: Path) -> str:
    """Return the plain text of the file at *path*.

    Raises:
        ExtractionError: If no strategy yields non-empty text.
        OSError: If the file cannot be read at all.
    """
    data = path.read_bytes()
    suffix = path.suffix.lower()

    if suffix not in _RICH_SUFFIXES and suffix not in _PDF_SUFFIXES:
        text = _decode_utf8(data) or _decode_utf16(data)
        if text:
            return text

    if suffix in _RICH_SUFFIXES:
        text = _rich_text(data, suffix)
        if text:
            return text

    if suffix in _PDF_SUFFIXES or data.startswith(b"%PDF"):
        text = _pdf_text(path)
        if text:
            return text

    raise ExtractionError(str(path))


def _decode_utf8(data: bytes) -> str | None:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return None
    return text if text.strip() else None


def _decode_utf16(data: bytes) -> str | None:
    if not data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return None
    try:
        text = data.decode("utf-16")
    except UnicodeDecodeError:
        return None
    return text if text.strip() else None


def _rich_text(data: bytes, suffix: str) -> str | None:
    raw = data.decode("utf-8", errors="replace")
    if suffix == ".rtf":
        text = rtf_to_text(raw, errors="ignore")
    else:
        text = html_to_text(raw)
    text = text.strip()
    return text or None


def html_to_text(html: str) -> str:
    """Strip HTML markup and return plain text via html2text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()


def _pdf_text(path: Path) -> str | None:
    """Extract all page text from the PDF at *path*."""
    try:
        reader = pypdf.PdfReader(str(path))
        parts: list[str] = []
        for page in reader.pages:
            stripped = (page.extract_text() or "").strip()
            if stripped:
                parts.append(stripped)
    except pypdf.errors.PdfReadError as exc:
        logger.debug("pypdf could not read %s: %s", path, exc)
        return None
    text = "\n\n".join(parts)
    return text or None
