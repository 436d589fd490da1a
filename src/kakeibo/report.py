"""Summary printers and the rule coverage report.

- :func:`print_import_summary` / :func:`print_sync_summary` print the exact
  counts of an import or mail sync.
- :func:`evaluate_rules` / :func:`print_evaluation` measure how much of a
  CSV the categorization rules cover, and list the merchants they miss.
- :func:`count_by_merchant` / :func:`print_inbox` list uncategorized
  merchant keys waiting for the user to file them.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence

from kakeibo.categorizer import categorize
from kakeibo.models import (
    UNCATEGORIZED,
    CanonicalTransaction,
    ImportResult,
    MerchantStat,
    RawCandidate,
    RuleEvaluation,
    SyncResult,
)
from kakeibo.parsers import FORMAT_NAMES
from kakeibo.rules import DEFAULT_RULES, Rule

COVERAGE_TARGET = 85.0
TOP_MERCHANTS = 10
TOP_UNCATEGORIZED = 15


# ---------------------------------------------------------------------------
# Import / sync summaries
# ---------------------------------------------------------------------------


def print_import_summary(result: ImportResult, name: str, preview: bool = False) -> None:
    """Print the outcome of importing (or previewing) the file *name*."""
    fmt = FORMAT_NAMES.get(result.format or "", "unknown")
    print()
    print(f"== {'Preview' if preview else 'Import'}: {name} ==")
    print(f"Format:   {result.format} ({fmt})")
    print(f"Parsed:   {result.parsed}")
    if not preview:
        print(f"Inserted: {result.inserted}")
        print(f"Skipped:  {result.skipped} (already recorded)")
    print()


def print_preview_rows(records: Sequence[CanonicalTransaction]) -> None:
    """Print the records an import would write, one per line."""
    for txn in records:
        print(
            f"  {txn.date.isoformat()}  {txn.amount:>9,}  {txn.category:<14}"
            f"  {txn.description}"
        )


def print_sync_summary(result: SyncResult) -> None:
    """Print the outcome of a mail sync, including unreadable messages."""
    print()
    print("== Mail Sync ==")
    print(f"Fetched:  {result.fetched} message(s)")
    print(f"Inserted: {result.inserted} (pending review)")
    print(f"Skipped:  {result.skipped} (already recorded)")
    if result.errors:
        print(f"Errors:   {len(result.errors)}")
        for error in result.errors:
            print(f"  {error}")
    print()


# ---------------------------------------------------------------------------
# Rule coverage
# ---------------------------------------------------------------------------


def evaluate_rules(
    rows: Iterable[RawCandidate],
    rules: Sequence[Rule] = DEFAULT_RULES,
    learned_map: Mapping[str, str] | None = None,
) -> RuleEvaluation:
    """Categorize each distinct description in *rows* and tally coverage.

    Each description is categorized once; its count is the number of rows
    carrying it.  Merchants are ordered by count, ties in first-seen order.
    """
    counts: Counter[str] = Counter(row.description for row in rows)
    learned_map = learned_map or {}

    merchants = [
        MerchantStat(merchant, count, categorize(merchant, learned_map, rules).category)
        for merchant, count in counts.most_common()
    ]

    category_counts: Counter[str] = Counter()
    for stat in merchants:
        category_counts[stat.category] += stat.count

    return RuleEvaluation(
        total=sum(counts.values()),
        merchants=merchants,
        category_counts=dict(category_counts.most_common()),
        categorized=sum(
            s.count for s in merchants if s.category != UNCATEGORIZED
        ),
    )


def print_evaluation(evaluation: RuleEvaluation, target: float = COVERAGE_TARGET) -> None:
    """Print a rule coverage report for *evaluation*."""
    total = evaluation.total

    print()
    print("== Rule Evaluation ==")
    print(f"Transactions:     {total}")
    print(f"Unique merchants: {len(evaluation.merchants)}")

    print()
    print("Top merchants:")
    for i, stat in enumerate(evaluation.merchants[:TOP_MERCHANTS], start=1):
        print(f"  {i:>2}. {stat.merchant} ({stat.count}) -> {stat.category}")

    print()
    print("By category:")
    for category, count in evaluation.category_counts.items():
        pct = count / total * 100 if total else 0.0
        print(f"  {category:<14} {count:>5}  ({pct:.1f}%)")

    print()
    print(f"Categorized:   {evaluation.categorized} ({evaluation.coverage:.1f}%)")
    missed_pct = 100 - evaluation.coverage if total else 0.0
    print(f"Uncategorized: {evaluation.uncategorized} ({missed_pct:.1f}%)")

    missed = [s for s in evaluation.merchants if s.category == UNCATEGORIZED]
    if missed:
        print()
        print("Top uncategorized merchants:")
        for i, stat in enumerate(missed[:TOP_UNCATEGORIZED], start=1):
            print(f"  {i:>2}. {stat.merchant} ({stat.count})")
        if len(missed) > TOP_UNCATEGORIZED:
            print(f"  ... and {len(missed) - TOP_UNCATEGORIZED} more")

    print()
    if evaluation.coverage >= target:
        print(f"Coverage target met ({evaluation.coverage:.1f}% >= {target:.0f}%)")
    else:
        print(f"Coverage target missed ({evaluation.coverage:.1f}% < {target:.0f}%)")
        print("  Add rules to rules.toml for the merchants above.")
    print()


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


def count_by_merchant(txns: Iterable[CanonicalTransaction]) -> list[tuple[str, int]]:
    """Count transactions per merchant key, most frequent first.

    Transactions without a merchant key are left out.
    """
    counts = Counter(t.merchant_key for t in txns if t.merchant_key)
    return counts.most_common()


def print_inbox(counts: Sequence[tuple[str, int]]) -> None:
    """Print uncategorized merchant keys with their transaction counts."""
    print()
    if not counts:
        print("Inbox empty: every transaction has a category.")
        print()
        return
    print(f"== Uncategorized merchants ({len(counts)}) ==")
    for key, count in counts:
        print(f"  {count:>4}  {key}")
    print()
    print("File a merchant with: kakeibo learn KEY CATEGORY")
    print()
