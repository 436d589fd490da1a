"""SQLAlchemy schema and engine/session helpers.

Usage
-----
from kakeibo.db import make_engine, init_db, session_scope

engine = make_engine("sqlite:///kakeibo.db")
init_db(engine)
with session_scope(engine) as session:
    ...
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
import datetime as dt
from pathlib import Path

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

DATABASE_URL_ENV = "KAKEIBO_DATABASE_URL"


class Base(DeclarativeBase):
    pass


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    month_key: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    account: Mapped[str] = mapped_column(String, nullable=False)
    wallet: Mapped[str] = mapped_column(String, nullable=False, default="personal")
    source: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    # Dedup safety net: concurrent imports race on this constraint.
    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    merchant_key: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    category_source: Mapped[str] = mapped_column(String, nullable=False, default="unknown")
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_pending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.now
    )


class MerchantMapRow(Base):
    __tablename__ = "merchant_map"

    merchant_key: Mapped[str] = mapped_column(String, primary_key=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    hits: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.now
    )


class MailSyncRow(Base):
    __tablename__ = "mail_sync"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_sync_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    last_message_id: Mapped[str] = mapped_column(String, nullable=False, default="")


def resolve_database_url(url: str, root: Path) -> str:
    """Return *url* with a relative SQLite path anchored at *root*.

    The ``KAKEIBO_DATABASE_URL`` environment variable, when set, wins over
    *url*.
    """
    url = os.getenv(DATABASE_URL_ENV) or url
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return url
    database = parsed.database
    if not database or database == ":memory:" or Path(database).is_absolute():
        return url
    return parsed.set(database=str(root / database)).render_as_string(hide_password=False)


def make_engine(database_url: str) -> Engine:
    """Create an engine for *database_url*.

    For SQLite, pysqlite's implicit transaction handling is replaced by
    explicit ``BEGIN`` so that savepoints behave (see the SQLAlchemy pysqlite
    dialect notes on serializable isolation and savepoints).
    """
    engine = create_engine(database_url)
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_conn, _record):
            dbapi_conn.isolation_level = None

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def init_db(engine: Engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    factory = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
