"""Format B: Japanese bank/card-issuer export.

Format:
    <holder name>,<masked card number>,<card brand>     (metadata row)
    2025/12/01,セブン-イレブン,159,１,１,159,
    2025/12/02,ＪＲ東日本,,１,１,1200,<note>

The first row identifies the account holder.  It is discarded unread: it is
never stored, logged, or returned.  Data rows carry the date in column 1,
the merchant in column 2 and the amount in column 3; when a note field is
present the issuer leaves column 3 blank and the amount appears in column 6.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from kakeibo.models import RawCandidate
from kakeibo.parsers.generic import parse_amount

logger = logging.getLogger(__name__)

_BANK_DATE = re.compile(r"([0-9]{4})/([0-9]{2})/([0-9]{2})")


def parse(rows: list[list[str]]) -> list[RawCandidate]:
    """Extract candidates from a Format B table, skipping the metadata row."""
    candidates: list[RawCandidate] = []

    for line_no, row in enumerate(rows[1:], start=2):
        if len(row) < 3:
            logger.debug("Row %d: too few columns", line_no)
            continue

        date_raw = row[0]
        description = row[1]
        amount_str = row[2]
        if not amount_str and len(row) > 5:
            amount_str = row[5]

        if not date_raw or not description or not amount_str:
            logger.debug("Row %d: missing field", line_no)
            continue

        match = _BANK_DATE.fullmatch(date_raw)
        if match is None:
            logger.debug("Row %d: invalid date", line_no)
            continue
        try:
            txn_date = date(*(int(part) for part in match.groups()))
        except ValueError:
            logger.debug("Row %d: invalid date", line_no)
            continue

        amount = parse_amount(amount_str)
        if amount is None:
            logger.debug("Row %d: invalid amount", line_no)
            continue

        candidates.append(RawCandidate(date=txn_date, amount=amount, description=description))

    return candidates
