"""Core data models for the Kakeibo ingestion pipeline.

This module defines all dataclasses and utility functions used throughout the
pipeline. It has zero internal imports -- everything depends on it, but it
depends on nothing within the package.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime

UNCATEGORIZED = "Uncategorized"

LEARNED_CONFIDENCE = 1.0
RULE_CONFIDENCE = 0.8
UNKNOWN_CONFIDENCE = 0.0


def generate_hash(txn_date: date, amount: int, description: str) -> str:
    """Generate the content hash used for deduplication.

    The hash is the SHA-256 hex digest of the ISO date, the *absolute*
    amount and the description concatenated without separators.  Using the
    absolute amount means the same purchase arriving through two producers
    (one negative, one positive-then-negated) still collides.

    Args:
        txn_date: Transaction date.
        amount: Amount in whole yen, signed or unsigned.
        description: Description exactly as it will be stored.

    Returns:
        A 64-character lowercase hex string.
    """
    raw = f"{txn_date.isoformat()}{abs(amount)}{description}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class RawCandidate:
    """A transaction candidate extracted by a parser.

    Attributes:
        date: Transaction date.
        amount: Non-negative amount in whole yen.  The caller applies the
            expense sign.
        description: Free-text merchant description, possibly containing
            full-width characters.
    """

    date: date
    amount: int
    description: str


@dataclass
class ParseResult:
    """Return type of :func:`kakeibo.parsers.parse_rows`.

    Attributes:
        format: ``"A"`` (generic header layout), ``"B"`` (bank export), or
            ``None`` when the layout could not be detected.
        rows: Extracted candidates in file order.
        error: Human-readable reason the file is unusable, or empty string
            on success.  When set, ``rows`` is always empty.
    """

    format: str | None = None
    rows: list[RawCandidate] = field(default_factory=list)
    error: str = ""


@dataclass
class CategorizationResult:
    """Outcome of categorizing one description.

    ``source`` and ``confidence`` are an audit trail only; nothing downstream
    branches on them.

    Attributes:
        category: Assigned category, or ``UNCATEGORIZED``.
        source: ``"learned"``, ``"rule"`` or ``"unknown"``.
        confidence: 1.0 for learned, 0.8 for rule, 0.0 for unknown.
        merchant_key: Derived merchant key, or ``None``.
    """

    category: str
    source: str
    confidence: float
    merchant_key: str | None


@dataclass
class CanonicalTransaction:
    """A transaction in its stored shape.

    Attributes:
        date: Transaction date.
        amount: Signed amount in whole yen.  Negative means expense.
        category: Category label.
        account: ``"card"`` or ``"cash"``.
        wallet: Owning wallet, e.g. ``"personal"``.
        source: Producer: ``"csv"``, ``"manual"`` or ``"gmail"``.
        description: Merchant description as imported.
        hash: Content hash from :func:`generate_hash`.  Filled in
            automatically when left empty.
        merchant_key: Derived merchant key, or ``None``.
        category_source: ``"learned"``, ``"rule"``, ``"unknown"`` or
            ``"manual"``.
        confidence: Categorization confidence.
        is_pending: True for entries awaiting user review (email-derived).
        id: Store-assigned identifier, ``None`` until persisted.
    """

    date: date
    amount: int
    category: str
    account: str
    description: str
    wallet: str = "personal"
    source: str = "manual"
    hash: str = ""
    merchant_key: str | None = None
    category_source: str = "unknown"
    confidence: float = UNKNOWN_CONFIDENCE
    is_pending: bool = False
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.hash:
            self.hash = generate_hash(self.date, self.amount, self.description)

    @property
    def month_key(self) -> str:
        """The ``YYYY-MM`` month this transaction belongs to."""
        return self.date.isoformat()[:7]


@dataclass
class MerchantMapping:
    """A learned merchant-key to category mapping.

    Attributes:
        merchant_key: Key produced by
            :func:`kakeibo.merchant.derive_merchant_key`.
        category: Category the user filed this merchant under.
        hits: Number of reinforcing updates.
        updated_at: Time of the last update.
    """

    merchant_key: str
    category: str
    hits: int = 1
    updated_at: datetime | None = None


@dataclass
class InsertOutcome:
    """Result of a single insert through the dedup gate."""

    transaction: CanonicalTransaction
    duplicate: bool = False


@dataclass
class BatchResult:
    """Counts from a batch insert.  ``inserted + skipped`` equals the batch size."""

    inserted: int = 0
    skipped: int = 0


@dataclass
class ImportResult:
    """Summary of a CSV import.

    Attributes:
        format: Detected layout, or ``None``.
        parsed: Rows that survived parsing.
        inserted: Rows written to the store.
        skipped: Rows that were already present (or repeated in the file).
        error: Unrecoverable format error; nothing was written when set.
    """

    format: str | None = None
    parsed: int = 0
    inserted: int = 0
    skipped: int = 0
    error: str = ""


@dataclass
class SyncResult:
    """Summary of a mail sync.

    Attributes:
        fetched: Messages retrieved from the mail source.
        inserted: New transactions written.
        skipped: Duplicates of already-stored (or repeated) notifications.
        errors: One message per notification that could not be read.
    """

    fetched: int = 0
    inserted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class MailConfig:
    """Mail sync settings.

    Attributes:
        provider: ``"gmail"`` or ``"none"``.
        query: Search query selecting card-usage notifications.
        token_env: Name of the environment variable holding the OAuth
            access token.
        lookback_days: Window for the first sync, in days.
    """

    provider: str = "gmail"
    query: str = "from:statement@vpass.ne.jp subject:ご利用のお知らせ"
    token_env: str = "KAKEIBO_GMAIL_TOKEN"
    lookback_days: int = 90


@dataclass
class AppConfig:
    """Top-level application configuration loaded from kakeibo.toml.

    Attributes:
        database_url: SQLAlchemy URL.  Relative SQLite paths are resolved
            against the project root.
        import_account: Account assigned to CSV imports.
        import_wallet: Wallet assigned to CSV imports.
        manual_account: Account assigned to manual entries.
        mail: Mail sync settings.
    """

    database_url: str = "sqlite:///kakeibo.db"
    import_account: str = "card"
    import_wallet: str = "personal"
    manual_account: str = "cash"
    mail: MailConfig = field(default_factory=MailConfig)


@dataclass
class MerchantStat:
    """Occurrences of one merchant description and the category it resolves to."""

    merchant: str
    count: int
    category: str


@dataclass
class RuleEvaluation:
    """Rule coverage over a set of parsed rows (see :mod:`kakeibo.report`).

    Attributes:
        total: Rows evaluated.
        merchants: One entry per distinct description, most frequent first.
        category_counts: Rows per category, including ``UNCATEGORIZED``.
        categorized: Rows that resolved to a category.
    """

    total: int = 0
    merchants: list[MerchantStat] = field(default_factory=list)
    category_counts: dict[str, int] = field(default_factory=dict)
    categorized: int = 0

    @property
    def uncategorized(self) -> int:
        return self.total - self.categorized

    @property
    def coverage(self) -> float:
        """Percentage of rows categorized, 0.0 for an empty set."""
        return self.categorized / self.total * 100 if self.total else 0.0
