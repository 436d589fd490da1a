"""Text normalization and merchant key derivation.

:func:`normalize` is shared by the rule engine and the merchant key deriver.
:func:`derive_merchant_key` produces the lookup key stored in the learned
merchant map, so its output is a persisted schema: any change to either
function orphans every mapping the user has already taught.
"""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")

_DASHES = "－ー−‐―"

# Full-width alphanumerics (U+FF10-FF19, U+FF21-FF3A, U+FF41-FF5A) map to
# ASCII by subtracting 0xFEE0.
_HALF_WIDTH = {
    code: code - 0xFEE0
    for start, end in (("０", "９"), ("Ａ", "Ｚ"), ("ａ", "ｚ"))
    for code in range(ord(start), ord(end) + 1)
}
_HALF_WIDTH.update({ord(dash): "-" for dash in _DASHES})
_HALF_WIDTH[ord("\u3000")] = " "

_DIGITS = re.compile(r"[0-9]")
_PUNCTUATION = re.compile(r"""[.,;:!?@#$%^&*()_+=\[\]{}<>|\\/"'`~-]""")


def normalize(text: str) -> str:
    """Normalize description text for matching.

    Trims, lower-cases, collapses whitespace (including the ideographic
    space) to single spaces, unifies dash variants to ``-`` and converts
    full-width alphanumerics to half-width.
    """
    text = _WHITESPACE.sub(" ", text.strip().lower())
    return text.translate(_HALF_WIDTH)


def derive_merchant_key(description: str) -> str | None:
    """Derive a stable merchant key from a transaction description.

    Digits and common punctuation are removed so that branch numbers,
    receipt sequence numbers and terminal IDs do not split one merchant
    into many keys.  Letters and kana are kept verbatim so distinct
    merchants stay distinct.

    Args:
        description: Raw transaction description.

    Returns:
        The merchant key, or ``None`` if nothing is left after stripping
        (e.g. the description was only digits).
    """
    key = normalize(description)
    key = _DIGITS.sub("", key)
    key = _PUNCTUATION.sub("", key)
    key = _WHITESPACE.sub(" ", key).strip()
    return key or None
