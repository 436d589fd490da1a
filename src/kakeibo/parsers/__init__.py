"""Table parsing with layout auto-detection.

Two incompatible CSV layouts are accepted:

- **Format A** (generic): a header row naming ``date``, ``amount`` and
  ``description`` columns in any order.  See :mod:`kakeibo.parsers.generic`.
- **Format B** (bank/card export): a masked-account metadata row, then
  headerless data rows starting with a ``YYYY/MM/DD`` date.  See
  :mod:`kakeibo.parsers.bank`.

Each format module exposes a ``parse(rows)`` function taking the tokenized
table and returning a list of :class:`~kakeibo.models.RawCandidate`.  The
``PARSERS`` dict maps format names to those functions, and
:func:`parse_rows` ties tokenizing, detection and extraction together.
"""

from __future__ import annotations

import csv
import logging
import re
from collections.abc import Callable

from kakeibo.models import ParseResult, RawCandidate
from kakeibo.parsers import bank, generic

logger = logging.getLogger(__name__)

PARSERS: dict[str, Callable[[list[list[str]]], list[RawCandidate]]] = {
    "A": generic.parse,
    "B": bank.parse,
}

FORMAT_NAMES = {"A": "standard", "B": "bank export"}

_BANK_DATE = re.compile(r"[0-9]{4}/[0-9]{2}/[0-9]{2}")


def get_parser(name: str) -> Callable[[list[list[str]]], list[RawCandidate]]:
    """Look up a format parser by name.

    Raises:
        KeyError: If no parser is registered under *name*.
    """
    return PARSERS[name]


def tokenize(text: str) -> list[list[str]]:
    """Split *text* into rows of stripped fields.

    Blank lines are dropped.  Each line is one row: fields follow CSV
    double-quote rules (a doubled quote inside a quoted field is a literal
    quote, commas inside quotes are not separators, spaces before an
    opening quote are ignored) but a quote left open at the end of a line
    does not swallow the next line.

    Raises:
        csv.Error: If a field exceeds the csv module's field size limit.
    """
    rows: list[list[str]] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        fields = next(csv.reader([line.replace("\0", "")], skipinitialspace=True))
        rows.append([field.strip() for field in fields])
    return rows


def detect_format(rows: list[list[str]]) -> str | None:
    """Return ``"A"``, ``"B"``, or ``None`` for an unrecognized table.

    Format A is checked first: the first row's lower-cased fields include
    ``date``, ``amount`` and ``description``.  Format B: the second row has
    at least six fields and starts with a ``YYYY/MM/DD`` date.
    """
    if len(rows) < 2:
        return None

    header = {col.strip().lower() for col in rows[0]}
    if {"date", "amount", "description"} <= header:
        return "A"

    second = rows[1]
    if len(second) >= 6 and _BANK_DATE.fullmatch(second[0]):
        return "B"

    return None


def parse_rows(text: str) -> ParseResult:
    """Detect the layout of *text* and extract its transaction rows.

    Returns:
        A :class:`ParseResult`.  ``error`` is set, with no rows, when the
        table cannot be tokenized, is too short, the layout is unrecognized, or the layout was
        recognized but no row survived validation.
    """
    try:
        rows = tokenize(text)
    except csv.Error as exc:
        logger.debug("Tokenizing failed: %s", exc)
        return ParseResult(error=f"Unreadable CSV: {exc}")

    if len(rows) < 2:
        return ParseResult(error="CSV must have at least 2 rows")

    fmt = detect_format(rows)
    if fmt is None:
        return ParseResult(
            error=(
                "Unrecognized CSV format. Expected Format A (date,amount,description "
                "header) or Format B (bank export with YYYY/MM/DD dates)"
            )
        )

    candidates = get_parser(fmt)(rows)
    logger.info(
        "Format %s: %d of %d data rows parsed", fmt, len(candidates), len(rows) - 1
    )

    if not candidates:
        return ParseResult(
            format=fmt,
            error=f"No valid transactions found in {FORMAT_NAMES[fmt]} CSV format",
        )

    return ParseResult(format=fmt, rows=candidates)
