"""Dedup/insert gate in front of the transaction store.

Every producer commits records through this module.  A record's identity is
its content hash (see :func:`kakeibo.models.generate_hash`), so re-running
an import, retrying a half-failed one, or syncing the same notification
twice never creates a second record.  Duplicates are counted, not raised.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from kakeibo.models import BatchResult, CanonicalTransaction, InsertOutcome
from kakeibo.store import TransactionStore

logger = logging.getLogger(__name__)


def insert_one(store: TransactionStore, txn: CanonicalTransaction) -> InsertOutcome:
    """Insert *txn* unless a record with the same hash exists.

    Returns:
        An :class:`InsertOutcome` holding either the newly stored record or
        the existing one (``duplicate=True``), unchanged.
    """
    existing = store.find_by_hash(txn.hash)
    if existing is not None:
        logger.debug("Duplicate %s, keeping existing record", txn.hash[:12])
        return InsertOutcome(transaction=existing, duplicate=True)

    stored = store.insert(txn)
    return InsertOutcome(transaction=stored, duplicate=stored is not txn)


def insert_many(store: TransactionStore, txns: Sequence[CanonicalTransaction]) -> BatchResult:
    """Insert every previously unseen record in *txns* with one write.

    Existing hashes for the whole batch are loaded with a single lookup.
    Candidates are then walked in input order; each hash is marked seen as
    soon as it is staged, so a file holding two identical rows yields one
    insert and one skip.  Staged records the store reports as not written
    (another writer won the unique constraint) are counted as skipped, so
    ``inserted + skipped == len(txns)`` always holds and the counts match
    what was persisted.

    If the store write raises, the exception propagates and no counts are
    reported; the batch can be re-run safely.
    """
    existing = store.find_by_hashes([t.hash for t in txns])
    seen = {t.hash for t in existing}

    staged: list[CanonicalTransaction] = []
    skipped = 0
    for txn in txns:
        if txn.hash in seen:
            skipped += 1
            continue
        seen.add(txn.hash)
        staged.append(txn)

    written = store.insert_many(staged) if staged else set()
    lost = sum(1 for t in staged if t.hash not in written)
    if lost:
        logger.warning("%d record(s) were stored concurrently by another writer", lost)

    result = BatchResult(inserted=len(staged) - lost, skipped=skipped + lost)
    logger.info("Batch of %d: %d inserted, %d skipped", len(txns), result.inserted, result.skipped)
    return result
