"""Tests for kakeibo.categorizer and kakeibo.rules -- the categorization engine."""

from __future__ import annotations

import pytest

from kakeibo.categorizer import build_learned_map, categorize, learn, match_rules
from kakeibo.merchant import derive_merchant_key, normalize
from kakeibo.models import UNCATEGORIZED, MerchantMapping
from kakeibo.rules import (
    CATEGORIES,
    DEFAULT_RULES,
    ENTERTAINMENT,
    FOOD,
    SUBSCRIPTION,
    TRANSPORT,
    KeywordRule,
    PatternRule,
)

# ---------------------------------------------------------------------------
# Rule variants
# ---------------------------------------------------------------------------


class TestRuleVariants:
    """Tests for KeywordRule and PatternRule."""

    def test_keywords_normalized(self):
        """Keywords written full-width or upper-case still match normalized text."""
        rule = KeywordRule(FOOD, ("ＡＢＣ Mart",))
        assert rule.keywords == ("abc mart",)
        assert rule.matches(normalize("ABC MART 渋谷"))

    def test_pattern_compiled(self):
        """Pattern strings are compiled on construction."""
        rule = PatternRule(TRANSPORT, (r"駅$",))
        assert rule.matches("東京駅")
        assert not rule.matches("駅前食堂")

    def test_every_default_rule_has_known_category(self):
        """The built-in table only files into known categories."""
        assert {rule.category for rule in DEFAULT_RULES} <= set(CATEGORIES)


# ---------------------------------------------------------------------------
# match_rules
# ---------------------------------------------------------------------------


class TestMatchRules:
    """Tests for match_rules()."""

    @pytest.mark.parametrize(
        "description,expected",
        [
            ("セブン-イレブン 新宿店", FOOD),
            ("ファミリーマート", FOOD),
            ("スターバックス 渋谷店", FOOD),
            ("ＪＲ東日本", TRANSPORT),
            ("東京メトロ", TRANSPORT),
            ("東京駅", TRANSPORT),
            ("NETFLIX.COM", SUBSCRIPTION),
            ("TOHOシネマズ", ENTERTAINMENT),
            ("TOKYO BOOK", ENTERTAINMENT),
        ],
    )
    def test_builtin_rules(self, description, expected):
        """Common merchants resolve through the built-in table."""
        assert match_rules(normalize(description)) == expected

    def test_short_brand_needs_word_boundary(self):
        """Short Latin brand names do not match inside other words."""
        assert match_rules(normalize("OK STORE")) == FOOD
        assert match_rules(normalize("TOKYO")) is None

    def test_no_match(self):
        """Unknown merchants return None."""
        assert match_rules(normalize("謎の店")) is None

    def test_first_rule_wins(self):
        """Rules are checked in order and the first match decides."""
        rules = [KeywordRule(ENTERTAINMENT, ("セブン",)), *DEFAULT_RULES]
        assert match_rules(normalize("セブン-イレブン"), rules) == ENTERTAINMENT


# ---------------------------------------------------------------------------
# categorize
# ---------------------------------------------------------------------------


class TestCategorize:
    """Tests for categorize()."""

    def test_rule_layer(self):
        """A rule match reports source 'rule' with confidence 0.8."""
        result = categorize("セブン-イレブン 新宿店", {})
        assert result.category == FOOD
        assert result.source == "rule"
        assert result.confidence == 0.8
        assert result.merchant_key == derive_merchant_key("セブン-イレブン 新宿店")

    def test_learned_beats_rules(self):
        """A learned mapping wins over a matching rule, with confidence 1.0."""
        key = derive_merchant_key("スターバックス 渋谷店")
        result = categorize("スターバックス 渋谷店", {key: ENTERTAINMENT})
        assert result.category == ENTERTAINMENT
        assert result.source == "learned"
        assert result.confidence == 1.0

    def test_learned_ignores_branch_numbers(self):
        """A mapping learned from one branch applies to another."""
        learned = {derive_merchant_key("Store #3"): SUBSCRIPTION}
        assert categorize("Store #7", learned).category == SUBSCRIPTION

    def test_fallback(self):
        """Unmatched descriptions are Uncategorized with confidence 0."""
        result = categorize("謎の店", {})
        assert result.category == UNCATEGORIZED
        assert result.source == "unknown"
        assert result.confidence == 0.0
        assert result.merchant_key == "謎の店"

    def test_digits_only_description(self):
        """A description with no key skips the learned layer."""
        result = categorize("12345", {"": FOOD})
        assert result.merchant_key is None
        assert result.category == UNCATEGORIZED

    def test_pure(self):
        """The same inputs always give the same result."""
        learned = {"ok store": FOOD}
        assert categorize("OK Store", learned) == categorize("OK Store", learned)


# ---------------------------------------------------------------------------
# Learning
# ---------------------------------------------------------------------------


class TestBuildLearnedMap:
    """Tests for build_learned_map()."""

    def test_builds_dict(self):
        """Mappings become a key-to-category dict."""
        mappings = [MerchantMapping("a", FOOD), MerchantMapping("b", TRANSPORT)]
        assert build_learned_map(mappings) == {"a": FOOD, "b": TRANSPORT}


class TestLearn:
    """Tests for learn() against the SQL mapping store."""

    def test_creates_mapping(self, mapping_store):
        """A first correction creates a mapping with one hit."""
        mapping = learn(mapping_store, "謎の店", FOOD)
        assert mapping.category == FOOD
        assert mapping.hits == 1
        assert [(m.merchant_key, m.category) for m in mapping_store.get_all()] == [("謎の店", FOOD)]

    def test_reinforces_and_overwrites(self, mapping_store):
        """A repeat correction bumps hits and takes the latest category."""
        learn(mapping_store, "謎の店", FOOD)
        mapping = learn(mapping_store, "謎の店", ENTERTAINMENT)
        assert mapping.hits == 2
        assert mapping.category == ENTERTAINMENT

    def test_feeds_categorize(self, mapping_store):
        """Learned mappings are used by the next categorization."""
        learn(mapping_store, derive_merchant_key("謎の店 2号店"), TRANSPORT)
        learned = build_learned_map(mapping_store.get_all())
        assert categorize("謎の店 5号店", learned).category == TRANSPORT

    def test_rejects_empty_key(self, mapping_store):
        """An empty merchant key is refused."""
        with pytest.raises(ValueError):
            learn(mapping_store, "", FOOD)

    def test_rejects_uncategorized(self, mapping_store):
        """Learning 'Uncategorized' is refused."""
        with pytest.raises(ValueError):
            learn(mapping_store, "謎の店", UNCATEGORIZED)
