"""Card-usage notification email parser.

Format (plain-text body, other lines ignored):
    ◇利用日：2025/12/01 12:34
    ◇利用先：セブン-イレブン
    ◇利用金額：1,234円
"""

from __future__ import annotations

import re
from datetime import date

from kakeibo.models import RawCandidate

_DATE = re.compile(r"◇利用日：([0-9]{4})/([0-9]{2})/([0-9]{2})\s+[0-9]{2}:[0-9]{2}")
_MERCHANT = re.compile(r"◇利用先：(.+)")
_AMOUNT = re.compile(r"◇利用金額：([0-9,]+)円")


def parse_notification(body: str) -> RawCandidate | None:
    """Extract the usage date, merchant and amount from a notification body.

    Returns:
        A :class:`RawCandidate` with a non-negative amount, or ``None`` if
        any of the three fields is missing or malformed.
    """
    date_match = _DATE.search(body)
    merchant_match = _MERCHANT.search(body)
    amount_match = _AMOUNT.search(body)
    if not date_match or not merchant_match or not amount_match:
        return None

    merchant = merchant_match.group(1).strip()
    if not merchant:
        return None

    try:
        txn_date = date(*(int(part) for part in date_match.groups()))
    except ValueError:
        return None

    digits = amount_match.group(1).replace(",", "")
    if not digits:
        return None
    amount = int(digits)
    return RawCandidate(date=txn_date, amount=amount, description=merchant)
