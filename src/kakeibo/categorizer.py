"""Categorization engine: learned mappings, rule matching, and learning.

Three layers, strict precedence, first match wins (no blending):

1. **Learned** -- the description's merchant key is looked up in the
   caller-supplied learned map.  ``source="learned"``, confidence 1.0.
2. **Rule** -- the normalized description is run through the ordered rule
   table.  ``source="rule"``, confidence 0.8.
3. **Fallback** -- ``UNCATEGORIZED``, ``source="unknown"``, confidence 0.

The learned map is always an explicit argument, never module state, so
:func:`categorize` stays pure and testable without a store.  The
:func:`learn` function is the update path used when the user files a
merchant by hand.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from kakeibo.merchant import derive_merchant_key, normalize
from kakeibo.models import (
    LEARNED_CONFIDENCE,
    RULE_CONFIDENCE,
    UNCATEGORIZED,
    UNKNOWN_CONFIDENCE,
    CategorizationResult,
    MerchantMapping,
)
from kakeibo.rules import DEFAULT_RULES, Rule
from kakeibo.store import MerchantMappingStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rule matching
# ---------------------------------------------------------------------------


def match_rules(text: str, rules: Sequence[Rule] = DEFAULT_RULES) -> str | None:
    """Return the category of the first rule matching *text*.

    Args:
        text: Description already passed through
            :func:`~kakeibo.merchant.normalize`.
        rules: Ordered rule table.

    Returns:
        The matched category, or ``None``.
    """
    for rule in rules:
        if rule.matches(text):
            return rule.category
    return None


# ---------------------------------------------------------------------------
# Categorize
# ---------------------------------------------------------------------------


def categorize(
    description: str,
    learned_map: Mapping[str, str],
    rules: Sequence[Rule] = DEFAULT_RULES,
) -> CategorizationResult:
    """Categorize one description.

    Args:
        description: Raw transaction description.
        learned_map: Merchant key to category, as built by
            :func:`build_learned_map`.
        rules: Ordered rule table (user rules, if any, then the built-in
            table).

    Returns:
        A :class:`CategorizationResult`.  ``merchant_key`` is reported
        whichever layer decided.
    """
    merchant_key = derive_merchant_key(description)

    if merchant_key is not None and merchant_key in learned_map:
        return CategorizationResult(
            category=learned_map[merchant_key],
            source="learned",
            confidence=LEARNED_CONFIDENCE,
            merchant_key=merchant_key,
        )

    category = match_rules(normalize(description), rules)
    if category is not None:
        return CategorizationResult(
            category=category,
            source="rule",
            confidence=RULE_CONFIDENCE,
            merchant_key=merchant_key,
        )

    return CategorizationResult(
        category=UNCATEGORIZED,
        source="unknown",
        confidence=UNKNOWN_CONFIDENCE,
        merchant_key=merchant_key,
    )


def build_learned_map(mappings: Iterable[MerchantMapping]) -> dict[str, str]:
    """Turn stored mappings into the lookup dict :func:`categorize` expects."""
    return {m.merchant_key: m.category for m in mappings}


# ---------------------------------------------------------------------------
# Learn
# ---------------------------------------------------------------------------


def learn(
    mapping_store: MerchantMappingStore,
    merchant_key: str,
    category: str,
) -> MerchantMapping:
    """Record that *merchant_key* belongs to *category*.

    Upserts the mapping and increments its hit counter.  Mappings are only
    ever added or updated here, never deleted.

    Raises:
        ValueError: If *merchant_key* or *category* is empty.
    """
    if not merchant_key:
        raise ValueError("merchant key must not be empty")
    if not category or category == UNCATEGORIZED:
        raise ValueError(f"cannot learn category {category!r}")

    mapping = mapping_store.upsert(merchant_key, category)
    logger.info(
        "Learned %r -> %s (hits=%d)", mapping.merchant_key, mapping.category, mapping.hits
    )
    return mapping
