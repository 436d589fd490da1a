"""Shared pytest fixtures for Kakeibo tests.

Provides reusable fixtures for:
- engine / session: a temporary file-backed SQLite database with all tables
  created, and a session on it that is committed after the test.
- txn_store / mapping_store / sync_state: the SQL stores bound to that
  session.
- Sample CSV payloads in both supported layouts, as bytes.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from kakeibo.db import init_db, make_engine, session_scope
from kakeibo.store import SqlMerchantMappingStore, SqlSyncStateStore, SqlTransactionStore

# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------

FORMAT_A_CSV = (
    "date,amount,description\n"
    "2025-12-01,-1200,スターバックス 渋谷店\n"
    "2025-12-02,-880,JR東日本 モバイルSuica\n"
    "2025-12-03,-3000,謎の店\n"
)

FORMAT_B_CSV = (
    "山田 太郎,****1234,VISA\n"
    "2025/12/01,セブン-イレブン,159,１,１,159,\n"
    "2025/12/02,ＪＲ東日本,,１,１,1200,モバイルＳｕｉｃａ\n"
)


@pytest.fixture
def format_a_bytes() -> bytes:
    """Format A CSV encoded as UTF-8."""
    return FORMAT_A_CSV.encode("utf-8")


@pytest.fixture
def format_b_bytes() -> bytes:
    """Format B CSV encoded as Shift_JIS (cp932), as issuers export it."""
    return FORMAT_B_CSV.encode("cp932")


# ---------------------------------------------------------------------------
# Database and stores
# ---------------------------------------------------------------------------


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    """Engine on a fresh SQLite file with the schema created."""
    eng = make_engine(f"sqlite:///{tmp_path / 'kakeibo.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine: Engine) -> Iterator[Session]:
    """Session committed when the test finishes."""
    with session_scope(engine) as sess:
        yield sess


@pytest.fixture
def txn_store(session: Session) -> SqlTransactionStore:
    return SqlTransactionStore(session)


@pytest.fixture
def mapping_store(session: Session) -> SqlMerchantMappingStore:
    return SqlMerchantMappingStore(session)


@pytest.fixture
def sync_state(session: Session) -> SqlSyncStateStore:
    return SqlSyncStateStore(session)
