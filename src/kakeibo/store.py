"""Store protocols and their SQLAlchemy implementations.

The pipeline depends only on the protocols below.  The SQL classes are the
concrete stores used by the CLI; each wraps a session owned by the caller
(see :func:`kakeibo.db.session_scope`).

The transaction store must enforce uniqueness on ``hash``.  The SQL
implementation relies on the table's unique constraint and writes batches
with ``ON CONFLICT DO NOTHING``, so two racing imports can never produce two
records with the same hash.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kakeibo.db import MailSyncRow, MerchantMapRow, TransactionRow
from kakeibo.models import UNCATEGORIZED, CanonicalTransaction, MerchantMapping


class TransactionStore(Protocol):
    """Keyed transaction collection with a unique ``hash``."""

    def find_by_hash(self, hash: str) -> CanonicalTransaction | None: ...

    def find_by_hashes(self, hashes: Sequence[str]) -> list[CanonicalTransaction]: ...

    def insert(self, txn: CanonicalTransaction) -> CanonicalTransaction: ...

    def insert_many(self, txns: Sequence[CanonicalTransaction]) -> set[str]:
        """Persist *txns* in one write and return the hashes actually stored."""
        ...

    def get(self, txn_id: int) -> CanonicalTransaction | None: ...

    def uncategorized(self) -> list[CanonicalTransaction]: ...

    def update_category(
        self,
        txn_id: int,
        category: str,
        category_source: str,
        confidence: float,
        merchant_key: str | None = None,
    ) -> None: ...

    def apply_category(self, merchant_key: str, category: str) -> int:
        """File every uncategorized transaction with *merchant_key* under *category*."""
        ...


class MerchantMappingStore(Protocol):
    """Learned merchant-key mappings."""

    def get_all(self) -> list[MerchantMapping]: ...

    def upsert(self, merchant_key: str, category: str) -> MerchantMapping: ...


class SyncStateStore(Protocol):
    """Bookkeeping for incremental mail sync."""

    def last_sync(self) -> datetime | None: ...

    def record_sync(self, at: datetime, last_message_id: str) -> None: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------


def _to_model(row: TransactionRow) -> CanonicalTransaction:
    return CanonicalTransaction(
        id=row.id,
        date=row.date,
        amount=row.amount,
        category=row.category,
        account=row.account,
        wallet=row.wallet,
        source=row.source,
        description=row.description,
        hash=row.hash,
        merchant_key=row.merchant_key,
        category_source=row.category_source,
        confidence=row.confidence,
        is_pending=row.is_pending,
    )


def _to_values(txn: CanonicalTransaction) -> dict:
    return {
        "date": txn.date,
        "month_key": txn.month_key,
        "amount": txn.amount,
        "category": txn.category,
        "account": txn.account,
        "wallet": txn.wallet,
        "source": txn.source,
        "description": txn.description,
        "hash": txn.hash,
        "merchant_key": txn.merchant_key,
        "category_source": txn.category_source,
        "confidence": txn.confidence,
        "is_pending": txn.is_pending,
        "created_at": datetime.now(),
    }


class SqlTransactionStore:
    """:class:`TransactionStore` backed by the ``transactions`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_hash(self, hash: str) -> CanonicalTransaction | None:
        row = self.session.scalars(
            select(TransactionRow).where(TransactionRow.hash == hash)
        ).first()
        return _to_model(row) if row is not None else None

    def find_by_hashes(self, hashes: Sequence[str]) -> list[CanonicalTransaction]:
        if not hashes:
            return []
        rows = self.session.scalars(
            select(TransactionRow).where(TransactionRow.hash.in_(set(hashes)))
        )
        return [_to_model(r) for r in rows]

    def insert(self, txn: CanonicalTransaction) -> CanonicalTransaction:
        row = TransactionRow(**_to_values(txn))
        try:
            with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            # Another writer stored the same hash first.
            existing = self.find_by_hash(txn.hash)
            if existing is None:
                raise
            return existing
        txn.id = row.id
        return txn

    def insert_many(self, txns: Sequence[CanonicalTransaction]) -> set[str]:
        if not txns:
            return set()
        table = TransactionRow.__table__
        dialect = self.session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(table)
            .values([_to_values(t) for t in txns])
            .on_conflict_do_nothing(index_elements=[table.c.hash])
            .returning(table.c.hash)
        )
        return set(self.session.execute(stmt).scalars())

    def get(self, txn_id: int) -> CanonicalTransaction | None:
        row = self.session.get(TransactionRow, txn_id)
        return _to_model(row) if row is not None else None

    def uncategorized(self) -> list[CanonicalTransaction]:
        rows = self.session.scalars(
            select(TransactionRow)
            .where(
                (TransactionRow.category == UNCATEGORIZED)
                | (func.trim(TransactionRow.category) == "")
            )
            .order_by(TransactionRow.date, TransactionRow.id)
        )
        return [_to_model(r) for r in rows]

    def update_category(
        self,
        txn_id: int,
        category: str,
        category_source: str,
        confidence: float,
        merchant_key: str | None = None,
    ) -> None:
        values = {
            "category": category,
            "category_source": category_source,
            "confidence": confidence,
        }
        if merchant_key is not None:
            values["merchant_key"] = merchant_key
        result = self.session.execute(
            update(TransactionRow).where(TransactionRow.id == txn_id).values(**values)
        )
        if result.rowcount == 0:
            raise KeyError(txn_id)

    def apply_category(self, merchant_key: str, category: str) -> int:
        result = self.session.execute(
            update(TransactionRow)
            .where(
                (TransactionRow.merchant_key == merchant_key)
                & (TransactionRow.category == UNCATEGORIZED)
            )
            .values(category=category, category_source="learned", confidence=1.0)
        )
        return result.rowcount


class SqlMerchantMappingStore:
    """:class:`MerchantMappingStore` backed by the ``merchant_map`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_all(self) -> list[MerchantMapping]:
        rows = self.session.scalars(
            select(MerchantMapRow).order_by(
                MerchantMapRow.hits.desc(), MerchantMapRow.merchant_key
            )
        )
        return [_to_mapping(r) for r in rows]

    def upsert(self, merchant_key: str, category: str) -> MerchantMapping:
        now = datetime.now()
        row = self.session.get(MerchantMapRow, merchant_key)
        if row is None:
            row = MerchantMapRow(
                merchant_key=merchant_key, category=category, hits=1, updated_at=now
            )
            self.session.add(row)
        else:
            row.category = category
            row.hits += 1
            row.updated_at = now
        self.session.flush()
        return _to_mapping(row)


def _to_mapping(row: MerchantMapRow) -> MerchantMapping:
    return MerchantMapping(
        merchant_key=row.merchant_key,
        category=row.category,
        hits=row.hits,
        updated_at=row.updated_at,
    )


class SqlSyncStateStore:
    """:class:`SyncStateStore` backed by the single-row ``mail_sync`` table."""

    _ROW_ID = 1

    def __init__(self, session: Session) -> None:
        self.session = session

    def last_sync(self) -> datetime | None:
        row = self.session.get(MailSyncRow, self._ROW_ID)
        return row.last_sync_at if row is not None else None

    def record_sync(self, at: datetime, last_message_id: str) -> None:
        row = self.session.get(MailSyncRow, self._ROW_ID)
        if row is None:
            self.session.add(
                MailSyncRow(id=self._ROW_ID, last_sync_at=at, last_message_id=last_message_id)
            )
        else:
            row.last_sync_at = at
            row.last_message_id = last_message_id
        self.session.flush()

