"""Configuration loading, writing, and project initialization.

Reads TOML config files using stdlib ``tomllib`` and writes them using
``tomli_w``.  Two files live in the project root:

- ``kakeibo.toml`` -- database location, account defaults, mail sync.
- ``rules.toml`` -- user categorization rules, checked before the built-in
  rule table.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

import tomli_w

from kakeibo.models import AppConfig, MailConfig
from kakeibo.rules import CATEGORIES, KeywordRule, PatternRule, Rule

CONFIG_FILE = "kakeibo.toml"
RULES_FILE = "rules.toml"

_DEFAULT_RULES_TOML = """\
# User categorization rules, checked before the built-in rules.
# Matching runs on the normalized description: lower-cased, whitespace
# collapsed, full-width letters and digits converted to half-width.
#
# keywords: substrings, any one of which files the transaction.
# patterns: regular expressions, searched anywhere in the description.
#
# Categories: 食費, 交通費, 日用品, 娯楽, サブスク, 医療, その他

# [[rules]]
# category = "食費"
# keywords = ["まいばすけっと", "オーケー"]
#
# [[rules]]
# category = "交通費"
# patterns = ["^jr\\\\s"]
"""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(root: Path) -> AppConfig:
    """Load ``kakeibo.toml`` from *root* and return an :class:`AppConfig`.

    Missing keys fall back to the :class:`AppConfig` defaults.

    Raises:
        FileNotFoundError: If ``kakeibo.toml`` does not exist.
    """
    data = _read_toml(root / CONFIG_FILE)

    general = data.get("general", {})
    imports = data.get("import", {})
    manual = data.get("manual", {})
    mail = data.get("mail", {})
    defaults = AppConfig()

    return AppConfig(
        database_url=general.get("database_url", defaults.database_url),
        import_account=imports.get("account", defaults.import_account),
        import_wallet=imports.get("wallet", defaults.import_wallet),
        manual_account=manual.get("account", defaults.manual_account),
        mail=MailConfig(
            provider=mail.get("provider", defaults.mail.provider),
            query=mail.get("query", defaults.mail.query),
            token_env=mail.get("token_env", defaults.mail.token_env),
            lookback_days=int(mail.get("lookback_days", defaults.mail.lookback_days)),
        ),
    )


def save_config(root: Path, config: AppConfig) -> None:
    """Write *config* to ``kakeibo.toml`` in *root*, replacing the file."""
    data = {
        "general": {"database_url": config.database_url},
        "import": {
            "account": config.import_account,
            "wallet": config.import_wallet,
        },
        "manual": {"account": config.manual_account},
        "mail": {
            "provider": config.mail.provider,
            "query": config.mail.query,
            "token_env": config.mail.token_env,
            "lookback_days": config.mail.lookback_days,
        },
    }
    with open(root / CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)


def load_rules(root: Path) -> list[Rule]:
    """Load user rules from ``rules.toml``.

    Each ``[[rules]]`` entry becomes a :class:`KeywordRule` (from
    ``keywords``) and/or a :class:`PatternRule` (from ``patterns``), in file
    order.  A missing file means no user rules.

    Raises:
        ValueError: If an entry has no category, an unknown category, or
            neither keywords nor patterns.
        re.error: If a pattern is not a valid regular expression.
    """
    path = root / RULES_FILE
    if not path.exists():
        return []

    rules: list[Rule] = []
    for i, entry in enumerate(_read_toml(path).get("rules", []), start=1):
        category = entry.get("category", "")
        if category not in CATEGORIES:
            raise ValueError(f"rules.toml entry {i}: unknown category {category!r}")
        keywords = entry.get("keywords", [])
        patterns = entry.get("patterns", [])
        if not keywords and not patterns:
            raise ValueError(f"rules.toml entry {i}: needs keywords or patterns")
        if keywords:
            rules.append(KeywordRule(category, tuple(keywords)))
        if patterns:
            rules.append(PatternRule(category, tuple(patterns)))
    return rules


def initialize(target_dir: Path) -> None:
    """Create the default ``kakeibo.toml`` and ``rules.toml``.

    Idempotent: existing files are **not** overwritten.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    if not (target_dir / CONFIG_FILE).exists():
        save_config(target_dir, AppConfig())
    _write_if_missing(target_dir / RULES_FILE, _DEFAULT_RULES_TOML)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_toml(path: Path) -> dict:
    """Read and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _write_if_missing(path: Path, content: str) -> None:
    """Write *content* to *path* only if the file does not already exist."""
    if not path.exists():
        path.write_text(content, encoding="utf-8")
