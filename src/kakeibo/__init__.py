"""Kakeibo: household ledger ingestion and auto-categorization."""

__version__ = "0.1.0"
