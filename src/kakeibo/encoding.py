"""Byte-to-text decoding for imported files.

Card-issuer and bank exports carry no declared encoding.  Modern exports are
UTF-8; most Japanese issuers still emit Shift_JIS (CP932), and a few older
systems emit EUC-JP or ISO-2022-JP.  :func:`decode` sniffs the content and
never raises: a wrong guess degrades to mojibake, which later shows up as
skipped rows rather than an aborted import.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

FALLBACK_ENCODING = "cp932"

_ISO2022_ESCAPES = (b"\x1b$B", b"\x1b$@", b"\x1b(J")

# Lead bytes that exist in Shift_JIS but never in EUC-JP (0x8E/0x8F are the
# EUC single-shift bytes).
_SJIS_ONLY_LEADS = frozenset(range(0x81, 0xA0)) - {0x8E, 0x8F}


def decode(data: bytes) -> str:
    """Decode *data* into text, guessing the encoding.

    ISO-2022-JP is 7-bit and would pass as UTF-8, so its escape sequences
    are checked first.  UTF-8 is then tried with strict validation; a
    leading BOM is dropped.  If that fails, or the result contains U+FFFD
    replacement characters, :func:`detect_encoding` picks a legacy Japanese
    codec and the bytes are decoded with ``errors="replace"``.

    Args:
        data: Raw file content.

    Returns:
        The decoded text.  Always returns a string.
    """
    if not _is_iso2022(data):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            pass
        else:
            text = text.removeprefix("\ufeff")
            if "\ufffd" not in text:
                return text

    encoding = detect_encoding(data)
    logger.debug("Input is not clean UTF-8, decoding as %s", encoding)
    return data.decode(encoding, errors="replace")


def detect_encoding(data: bytes) -> str:
    """Guess the legacy Japanese encoding of *data*.

    Checks, in order: ISO-2022-JP escape sequences; Shift_JIS-only lead
    bytes; a strict EUC-JP decode that yields kana.  Anything else is
    inconclusive and falls back to CP932.

    Returns:
        A Python codec name.
    """
    if _is_iso2022(data):
        return "iso2022_jp"

    if any(b in _SJIS_ONLY_LEADS for b in data):
        return "cp932"

    try:
        text = data.decode("euc_jp")
    except UnicodeDecodeError:
        return FALLBACK_ENCODING
    if _has_kana(text):
        return "euc_jp"

    return FALLBACK_ENCODING


def _is_iso2022(data: bytes) -> bool:
    return any(seq in data for seq in _ISO2022_ESCAPES)


def _has_kana(text: str) -> bool:
    """True if *text* holds any hiragana or full-width katakana."""
    return any("\u3041" <= ch <= "\u30ff" for ch in text)
