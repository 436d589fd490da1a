"""Click CLI entry point for the kakeibo command.

Handles argument parsing, config loading, database setup, and error
display.  All business logic is delegated to ``pipeline``, ``categorizer``,
``config``, and ``report`` modules.
"""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

import click
from sqlalchemy.engine import Engine

from kakeibo import __version__
from kakeibo.models import AppConfig
from kakeibo.rules import CATEGORIES, DEFAULT_RULES, Rule

_verbose_option = click.option(
    "--verbose", is_flag=True, default=False, help="Detailed progress output."
)
_debug_option = click.option(
    "--debug", is_flag=True, default=False, help="Developer-level diagnostics."
)


def _configure_logging(verbose: bool, debug: bool) -> None:
    """Set up logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _load_project(root: Path) -> tuple[AppConfig, list[Rule]]:
    """Load config and the combined rule table, exiting on failure."""
    from kakeibo.config import load_config, load_rules

    try:
        config = load_config(root)
        rules = [*load_rules(root), *DEFAULT_RULES]
    except FileNotFoundError as exc:
        click.echo(
            f"Error: {exc}. Run 'kakeibo init' to create the project files.",
            err=True,
        )
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)
    return config, rules


def _open_database(config: AppConfig, root: Path) -> Engine:
    """Create the engine for the configured database and ensure its tables."""
    from kakeibo.db import init_db, make_engine, resolve_database_url

    try:
        engine = make_engine(resolve_database_url(config.database_url, root))
        init_db(engine)
    except Exception as exc:
        click.echo(f"Error opening database: {exc}", err=True)
        sys.exit(1)
    return engine


@click.group()
@click.version_option(version=__version__, prog_name="kakeibo")
def cli() -> None:
    """Household ledger: import card CSVs, sync card mail, auto-categorize."""


@cli.command()
@click.option(
    "--dir", "target_dir", default=".", type=click.Path(), help="Directory to initialize."
)
def init(target_dir: str) -> None:
    """Create kakeibo.toml and rules.toml in a project directory."""
    from kakeibo.config import initialize

    target = Path(target_dir).resolve()

    try:
        initialize(target)
    except Exception as exc:
        click.echo(f"Error initializing project: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Initialized kakeibo project in {target}")


@cli.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@_verbose_option
@_debug_option
def import_(file: str, verbose: bool, debug: bool) -> None:
    """Import a card or bank CSV export (Shift_JIS or UTF-8)."""
    _configure_logging(verbose, debug)
    root = Path.cwd()
    config, rules = _load_project(root)
    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.pipeline import import_csv
    from kakeibo.report import print_import_summary
    from kakeibo.store import SqlMerchantMappingStore, SqlTransactionStore

    data = Path(file).read_bytes()
    try:
        with session_scope(engine) as session:
            result = import_csv(
                data,
                SqlTransactionStore(session),
                SqlMerchantMappingStore(session),
                account=config.import_account,
                wallet=config.import_wallet,
                rules=rules,
            )
    except Exception as exc:
        click.echo(f"Error importing {file}: {exc}", err=True)
        sys.exit(1)

    if result.error:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)

    print_import_summary(result, Path(file).name)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@_verbose_option
@_debug_option
def preview(file: str, verbose: bool, debug: bool) -> None:
    """Show how a CSV would be imported, without writing anything."""
    _configure_logging(verbose, debug)
    root = Path.cwd()
    config, rules = _load_project(root)
    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.pipeline import preview_csv
    from kakeibo.report import print_import_summary, print_preview_rows
    from kakeibo.store import SqlMerchantMappingStore

    with session_scope(engine) as session:
        result, records = preview_csv(
            Path(file).read_bytes(),
            SqlMerchantMappingStore(session),
            rules,
            account=config.import_account,
            wallet=config.import_wallet,
        )

    if result.error:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)

    print_import_summary(result, Path(file).name, preview=True)
    print_preview_rows(records)


@cli.command()
@click.option("--amount", required=True, type=int, help="Amount spent, in yen.")
@click.option("--description", required=True, help="Merchant or memo.")
@click.option(
    "--date",
    "txn_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Date as YYYY-MM-DD.  Default: today.",
)
@click.option(
    "--category",
    type=click.Choice(CATEGORIES),
    default=None,
    help="Category.  Default: decided by the rules.",
)
@_verbose_option
def add(
    amount: int,
    description: str,
    txn_date,
    category: str | None,
    verbose: bool,
) -> None:
    """Record a cash expense by hand."""
    _configure_logging(verbose, debug=False)
    root = Path.cwd()
    config, rules = _load_project(root)
    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.pipeline import add_manual
    from kakeibo.store import SqlMerchantMappingStore, SqlTransactionStore

    try:
        with session_scope(engine) as session:
            outcome = add_manual(
                SqlTransactionStore(session),
                SqlMerchantMappingStore(session),
                date=txn_date.date() if txn_date else date.today(),
                amount=amount,
                description=description,
                category=category,
                account=config.manual_account,
                rules=rules,
            )
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error saving entry: {exc}", err=True)
        sys.exit(1)

    txn = outcome.transaction
    if outcome.duplicate:
        click.echo(f"Already recorded as #{txn.id}: {txn.description} {txn.amount:,}")
    else:
        click.echo(f"Recorded #{txn.id}: {txn.description} {txn.amount:,} -> {txn.category}")


@cli.command()
@_verbose_option
@_debug_option
def sync(verbose: bool, debug: bool) -> None:
    """Fetch card-usage notification emails and record them as pending."""
    _configure_logging(verbose, debug)
    root = Path.cwd()
    config, rules = _load_project(root)

    from kakeibo.mail import GmailSource, MailError, NullSource

    if config.mail.provider == "none":
        source = NullSource()
        click.echo("Mail sync disabled (mail.provider = \"none\").")
    else:
        source = GmailSource(query=config.mail.query, token_env=config.mail.token_env)

    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.pipeline import sync_mail
    from kakeibo.report import print_sync_summary
    from kakeibo.store import SqlMerchantMappingStore, SqlSyncStateStore, SqlTransactionStore

    try:
        with session_scope(engine) as session:
            result = sync_mail(
                source,
                SqlTransactionStore(session),
                SqlMerchantMappingStore(session),
                SqlSyncStateStore(session),
                lookback_days=config.mail.lookback_days,
                account=config.import_account,
                wallet=config.import_wallet,
                rules=rules,
            )
    except MailError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error during mail sync: {exc}", err=True)
        sys.exit(1)

    print_sync_summary(result)


@cli.command()
@click.argument("merchant_key")
@click.argument("category", type=click.Choice(CATEGORIES))
@click.option(
    "--apply/--no-apply",
    default=True,
    help="Also re-file uncategorized transactions of this merchant.  Default: apply.",
)
@_verbose_option
def learn(merchant_key: str, category: str, apply: bool, verbose: bool) -> None:
    """Remember that MERCHANT_KEY belongs to CATEGORY.

    MERCHANT_KEY goes through the same derivation as imported descriptions,
    so "Store 12" and "ｓｔｏｒｅ" both file under "store".
    """
    _configure_logging(verbose, debug=False)

    from kakeibo.categorizer import learn as categorizer_learn
    from kakeibo.db import session_scope
    from kakeibo.merchant import derive_merchant_key
    from kakeibo.pipeline import apply_learned_category
    from kakeibo.store import SqlMerchantMappingStore, SqlTransactionStore

    typed_key = merchant_key
    merchant_key = derive_merchant_key(typed_key)
    if merchant_key is None:
        click.echo(f"Error: no merchant key can be derived from \"{typed_key}\"", err=True)
        sys.exit(1)

    root = Path.cwd()
    config, _ = _load_project(root)
    engine = _open_database(config, root)

    try:
        with session_scope(engine) as session:
            mappings = SqlMerchantMappingStore(session)
            if apply:
                updated = apply_learned_category(
                    SqlTransactionStore(session), mappings, merchant_key, category
                )
            else:
                categorizer_learn(mappings, merchant_key, category)
                updated = 0
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error during learning: {exc}", err=True)
        sys.exit(1)

    click.echo(f'Learned "{merchant_key}" -> {category}')
    if apply:
        click.echo(f"  Transactions re-filed: {updated}")


@cli.command(name="set-category")
@click.argument("txn_id", type=int)
@click.argument("category", type=click.Choice(CATEGORIES))
@click.option(
    "--learn", "learn_merchant", is_flag=True, default=False,
    help="Also learn the transaction's merchant for future imports.",
)
@_verbose_option
def set_category(txn_id: int, category: str, learn_merchant: bool, verbose: bool) -> None:
    """Correct the category of transaction TXN_ID."""
    _configure_logging(verbose, debug=False)
    root = Path.cwd()
    config, _ = _load_project(root)
    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.pipeline import correct_category
    from kakeibo.store import SqlMerchantMappingStore, SqlTransactionStore

    try:
        with session_scope(engine) as session:
            txn = correct_category(
                SqlTransactionStore(session),
                SqlMerchantMappingStore(session),
                txn_id,
                category,
                learn_merchant=learn_merchant,
            )
    except KeyError:
        click.echo(f"Error: no transaction with id {txn_id}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error updating transaction: {exc}", err=True)
        sys.exit(1)

    click.echo(f"#{txn.id} {txn.description} -> {txn.category}")


@cli.command()
@_verbose_option
def reclassify(verbose: bool) -> None:
    """Re-run categorization on every uncategorized transaction."""
    _configure_logging(verbose, debug=False)
    root = Path.cwd()
    config, rules = _load_project(root)
    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.pipeline import reclassify_uncategorized
    from kakeibo.store import SqlMerchantMappingStore, SqlTransactionStore

    try:
        with session_scope(engine) as session:
            updated = reclassify_uncategorized(
                SqlTransactionStore(session), SqlMerchantMappingStore(session), rules
            )
    except Exception as exc:
        click.echo(f"Error during reclassification: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Reclassified {updated} transaction(s)")


@cli.command()
def inbox() -> None:
    """List uncategorized merchants, most frequent first."""
    root = Path.cwd()
    config, _ = _load_project(root)
    engine = _open_database(config, root)

    from kakeibo.db import session_scope
    from kakeibo.report import count_by_merchant, print_inbox
    from kakeibo.store import SqlTransactionStore

    with session_scope(engine) as session:
        counts = count_by_merchant(SqlTransactionStore(session).uncategorized())

    print_inbox(counts)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--target", default=85.0, type=float, show_default=True, help="Coverage target in percent."
)
@_debug_option
def evaluate(file: str, target: float, debug: bool) -> None:
    """Report how well the categorization rules cover a CSV file.

    Nothing is written.  User rules from rules.toml are included when the
    current directory has one.
    """
    _configure_logging(verbose=False, debug=debug)

    from kakeibo.config import load_rules
    from kakeibo.encoding import decode
    from kakeibo.parsers import parse_rows
    from kakeibo.report import evaluate_rules, print_evaluation

    try:
        rules = [*load_rules(Path.cwd()), *DEFAULT_RULES]
    except Exception as exc:
        click.echo(f"Error loading rules: {exc}", err=True)
        sys.exit(1)

    parsed = parse_rows(decode(Path(file).read_bytes()))
    if parsed.error:
        click.echo(f"Error: {parsed.error}", err=True)
        sys.exit(1)

    print_evaluation(evaluate_rules(parsed.rows, rules), target=target)
