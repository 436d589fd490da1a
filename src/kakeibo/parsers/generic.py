"""Format A: generic header-driven CSV.

Format:
    date,amount,description    (any column order, extra columns ignored)
    2024-01-15,1500,Grocery

Columns are located by header name, case-insensitively.  Dates must be
``YYYY-MM-DD`` and real calendar dates; amounts are integers (optional
sign, optional ``,`` thousands separators).  Rows failing any check are
skipped.  Amounts are returned as absolute values.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from kakeibo.models import RawCandidate

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_amount(raw: str) -> int | None:
    """Parse an integer amount, returning its absolute value or ``None``."""
    cleaned = raw.strip().replace(",", "")
    if not _INTEGER.fullmatch(cleaned):
        return None
    return abs(int(cleaned))


def parse(rows: list[list[str]]) -> list[RawCandidate]:
    """Extract candidates from a Format A table (header row first)."""
    header = [col.strip().lower() for col in rows[0]]
    try:
        date_idx = header.index("date")
        amount_idx = header.index("amount")
        desc_idx = header.index("description")
    except ValueError:
        return []
    width = max(date_idx, amount_idx, desc_idx)

    candidates: list[RawCandidate] = []
    for line_no, row in enumerate(rows[1:], start=2):
        if len(row) <= width:
            logger.debug("Row %d: too few columns", line_no)
            continue

        date_str = row[date_idx]
        amount_str = row[amount_idx]
        description = row[desc_idx]
        if not date_str or not amount_str or not description:
            logger.debug("Row %d: missing field", line_no)
            continue

        amount = parse_amount(amount_str)
        if amount is None:
            logger.debug("Row %d: invalid amount", line_no)
            continue

        if not _ISO_DATE.fullmatch(date_str):
            logger.debug("Row %d: invalid date", line_no)
            continue
        try:
            txn_date = date.fromisoformat(date_str)
        except ValueError:
            logger.debug("Row %d: invalid date", line_no)
            continue

        candidates.append(RawCandidate(date=txn_date, amount=amount, description=description))

    return candidates
