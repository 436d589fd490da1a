"""Producers: the three ways transactions enter the store, plus corrections.

Every producer follows the same path:

1. **Extract** -- decode and parse a CSV, validate a manual entry, or parse
   notification emails into :class:`~kakeibo.models.RawCandidate` rows.
2. **Categorize** -- load the learned map once and run
   :func:`~kakeibo.categorizer.categorize` on each description.
3. **Commit** -- build negative-amount
   :class:`~kakeibo.models.CanonicalTransaction` records and pass them
   through the dedup gate (:mod:`kakeibo.dedup`).

Unrecoverable format problems are returned in the result object; nothing is
written in that case.  Store failures propagate to the caller, which owns
the session and rolls it back.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from kakeibo.categorizer import build_learned_map, categorize, learn
from kakeibo.dedup import insert_many, insert_one
from kakeibo.encoding import decode
from kakeibo.mail import MailSource
from kakeibo.merchant import derive_merchant_key
from kakeibo.models import (
    LEARNED_CONFIDENCE,
    UNCATEGORIZED,
    CanonicalTransaction,
    ImportResult,
    InsertOutcome,
    RawCandidate,
    SyncResult,
)
from kakeibo.parsers import parse_rows
from kakeibo.parsers.notification import parse_notification
from kakeibo.rules import DEFAULT_RULES, Rule
from kakeibo.store import MerchantMappingStore, SyncStateStore, TransactionStore

logger = logging.getLogger(__name__)


def _build(
    rows: Sequence[RawCandidate],
    learned_map: dict[str, str],
    rules: Sequence[Rule],
    *,
    account: str,
    wallet: str,
    source: str,
    is_pending: bool = False,
) -> list[CanonicalTransaction]:
    """Categorize *rows* and turn them into expense records."""
    records: list[CanonicalTransaction] = []
    for row in rows:
        result = categorize(row.description, learned_map, rules)
        records.append(
            CanonicalTransaction(
                date=row.date,
                amount=-abs(row.amount),
                category=result.category,
                account=account,
                wallet=wallet,
                source=source,
                description=row.description,
                merchant_key=result.merchant_key,
                category_source=result.source,
                confidence=result.confidence,
                is_pending=is_pending,
            )
        )
    return records


# ---------------------------------------------------------------------------
# CSV import
# ---------------------------------------------------------------------------


def preview_csv(
    data: bytes,
    mapping_store: MerchantMappingStore | None = None,
    rules: Sequence[Rule] = DEFAULT_RULES,
    *,
    account: str = "card",
    wallet: str = "personal",
) -> tuple[ImportResult, list[CanonicalTransaction]]:
    """Decode, parse and categorize *data* without writing anything.

    Returns:
        The import summary (``inserted`` and ``skipped`` stay 0) and the
        records an import would commit, in file order.
    """
    parsed = parse_rows(decode(data))
    if parsed.error:
        return ImportResult(format=parsed.format, error=parsed.error), []

    learned_map = build_learned_map(mapping_store.get_all()) if mapping_store else {}
    records = _build(
        parsed.rows, learned_map, rules, account=account, wallet=wallet, source="csv"
    )
    return ImportResult(format=parsed.format, parsed=len(records)), records


def import_csv(
    data: bytes,
    txn_store: TransactionStore,
    mapping_store: MerchantMappingStore,
    *,
    account: str = "card",
    wallet: str = "personal",
    rules: Sequence[Rule] = DEFAULT_RULES,
) -> ImportResult:
    """Import a card/bank CSV export.

    Args:
        data: Raw file bytes in any supported encoding.
        txn_store: Destination store.
        mapping_store: Source of learned merchant mappings.
        account: Account assigned to every row.  Default: ``"card"``.
        wallet: Wallet assigned to every row.  Default: ``"personal"``.
        rules: Ordered rule table.

    Returns:
        An :class:`ImportResult`.  When ``error`` is set nothing was
        written; otherwise ``inserted + skipped == parsed``.
    """
    result, records = preview_csv(
        data, mapping_store, rules, account=account, wallet=wallet
    )
    if result.error:
        logger.warning("Import rejected: %s", result.error)
        return result

    batch = insert_many(txn_store, records)
    result.inserted = batch.inserted
    result.skipped = batch.skipped
    logger.info(
        "Imported Format %s: %d parsed, %d inserted, %d skipped",
        result.format, result.parsed, result.inserted, result.skipped,
    )
    return result


# ---------------------------------------------------------------------------
# Manual entry
# ---------------------------------------------------------------------------


def add_manual(
    txn_store: TransactionStore,
    mapping_store: MerchantMappingStore,
    *,
    date: date,
    amount: int,
    description: str,
    category: str | None = None,
    account: str = "cash",
    wallet: str = "personal",
    rules: Sequence[Rule] = DEFAULT_RULES,
) -> InsertOutcome:
    """Record a hand-entered expense.

    *amount* is the positive amount spent; it is stored negated.  When the
    user picks *category* it is kept as-is with ``category_source="manual"``;
    otherwise the categorization engine decides.

    Raises:
        ValueError: If *amount* is not positive or *description* is blank.
    """
    description = description.strip()
    if amount <= 0:
        raise ValueError("amount must be a positive number")
    if not description:
        raise ValueError("description must not be empty")

    if category:
        txn = CanonicalTransaction(
            date=date,
            amount=-amount,
            category=category,
            account=account,
            wallet=wallet,
            source="manual",
            description=description,
            merchant_key=derive_merchant_key(description),
            category_source="manual",
            confidence=LEARNED_CONFIDENCE,
        )
    else:
        learned_map = build_learned_map(mapping_store.get_all())
        (txn,) = _build(
            [RawCandidate(date=date, amount=amount, description=description)],
            learned_map,
            rules,
            account=account,
            wallet=wallet,
            source="manual",
        )

    outcome = insert_one(txn_store, txn)
    if outcome.duplicate:
        logger.info("Manual entry already recorded as #%s", outcome.transaction.id)
    return outcome


# ---------------------------------------------------------------------------
# Mail sync
# ---------------------------------------------------------------------------


def sync_mail(
    source: MailSource,
    txn_store: TransactionStore,
    mapping_store: MerchantMappingStore,
    sync_state: SyncStateStore,
    *,
    now: datetime | None = None,
    lookback_days: int = 90,
    account: str = "card",
    wallet: str = "personal",
    rules: Sequence[Rule] = DEFAULT_RULES,
) -> SyncResult:
    """Pull card-usage notifications and record them as pending expenses.

    The window starts at the last recorded sync, or *lookback_days* before
    *now* on the first run.  Messages that cannot be read are reported in
    ``SyncResult.errors`` and do not stop the sync.  The sync time is only
    recorded after the batch was written.

    Raises:
        MailError: If the mail source cannot be read.  Nothing is written.
    """
    now = now or datetime.now()
    after = sync_state.last_sync() or now - timedelta(days=lookback_days)
    logger.info("Syncing mail received after %s", after.isoformat(timespec="seconds"))

    messages = source.fetch(after)
    result = SyncResult(fetched=len(messages))

    candidates: list[RawCandidate] = []
    for message in messages:
        if message.body is None:
            result.errors.append(f"Message {message.id}: no plain-text body")
            continue
        candidate = parse_notification(message.body)
        if candidate is None:
            result.errors.append(f"Message {message.id}: not a usage notification")
            continue
        candidates.append(candidate)

    learned_map = build_learned_map(mapping_store.get_all())
    records = _build(
        candidates,
        learned_map,
        rules,
        account=account,
        wallet=wallet,
        source="gmail",
        is_pending=True,
    )
    batch = insert_many(txn_store, records)
    result.inserted = batch.inserted
    result.skipped = batch.skipped

    sync_state.record_sync(now, messages[0].id if messages else "")
    for error in result.errors:
        logger.warning(error)
    logger.info(
        "Mail sync: %d fetched, %d inserted, %d skipped, %d error(s)",
        result.fetched, result.inserted, result.skipped, len(result.errors),
    )
    return result


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------


def correct_category(
    txn_store: TransactionStore,
    mapping_store: MerchantMappingStore,
    txn_id: int,
    category: str,
    learn_merchant: bool = False,
) -> CanonicalTransaction:
    """Set a transaction's category by hand.

    With *learn_merchant*, the transaction's merchant key is also learned so
    later imports from the same merchant are filed the same way.

    Raises:
        KeyError: If no transaction has *txn_id*.
        ValueError: If *category* is blank.
    """
    if not category.strip():
        raise ValueError("category must not be empty")
    txn = txn_store.get(txn_id)
    if txn is None:
        raise KeyError(txn_id)

    merchant_key = txn.merchant_key or derive_merchant_key(txn.description)
    txn_store.update_category(
        txn_id, category, "manual", LEARNED_CONFIDENCE, merchant_key=merchant_key
    )
    if learn_merchant and merchant_key and category != UNCATEGORIZED:
        learn(mapping_store, merchant_key, category)

    txn.category = category
    txn.category_source = "manual"
    txn.confidence = LEARNED_CONFIDENCE
    txn.merchant_key = merchant_key
    return txn


def apply_learned_category(
    txn_store: TransactionStore,
    mapping_store: MerchantMappingStore,
    merchant_key: str,
    category: str,
) -> int:
    """Learn *merchant_key* -> *category* and re-file matching uncategorized records.

    Returns:
        The number of transactions updated.

    Raises:
        ValueError: If *merchant_key* or *category* is empty.
    """
    learn(mapping_store, merchant_key, category)
    updated = txn_store.apply_category(merchant_key, category)
    logger.info(
        "Applied %s to %d uncategorized transaction(s) of %r", category, updated, merchant_key
    )
    return updated


def reclassify_uncategorized(
    txn_store: TransactionStore,
    mapping_store: MerchantMappingStore,
    rules: Sequence[Rule] = DEFAULT_RULES,
) -> int:
    """Re-run categorization on every uncategorized record.

    Useful after rules or learned mappings change.  Records that still do
    not resolve are left untouched.

    Returns:
        The number of transactions that now have a category.
    """
    learned_map = build_learned_map(mapping_store.get_all())
    updated = 0
    for txn in txn_store.uncategorized():
        result = categorize(txn.description, learned_map, rules)
        if result.category == UNCATEGORIZED:
            continue
        txn_store.update_category(
            txn.id,
            result.category,
            result.source,
            result.confidence,
            merchant_key=result.merchant_key,
        )
        updated += 1
    logger.info("Reclassified %d transaction(s)", updated)
    return updated
