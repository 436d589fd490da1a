"""Tests for kakeibo.parsers -- layout detection and row extraction."""

from __future__ import annotations

from datetime import date

import pytest

from kakeibo.models import RawCandidate
from kakeibo.parsers import PARSERS, detect_format, get_parser, parse_rows, tokenize
from kakeibo.parsers.generic import parse_amount
from kakeibo.parsers.notification import parse_notification

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


class TestTokenize:
    """Tests for tokenize()."""

    def test_strips_fields_and_drops_blank_lines(self):
        """Fields are trimmed and empty lines removed."""
        assert tokenize(" a , b \n\n  \nc,d\n") == [["a", "b"], ["c", "d"]]

    def test_quoted_comma(self):
        """A comma inside quotes is part of the field."""
        assert tokenize('2025-01-01,100,"Foo, Inc."') == [["2025-01-01", "100", "Foo, Inc."]]

    def test_space_before_quoted_field(self):
        """A quoted field after ", " keeps its inner comma."""
        assert tokenize('2024-01-15, 1500, "Foo, Bar"') == [["2024-01-15", "1500", "Foo, Bar"]]

    def test_doubled_quote(self):
        """A doubled quote inside a quoted field is a literal quote."""
        assert tokenize('"say ""hi""",x') == [['say "hi"', "x"]]

    def test_crlf(self):
        """Windows line endings are handled."""
        assert tokenize("a,b\r\nc,d\r\n") == [["a", "b"], ["c", "d"]]

    def test_unclosed_quote_stays_on_line(self):
        """An unclosed quote does not swallow the following line."""
        rows = tokenize('a,"b\nc,d')
        assert len(rows) == 2
        assert rows[1] == ["c", "d"]


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class TestDetectFormat:
    """Tests for detect_format()."""

    def test_format_a(self):
        """A header naming date, amount and description is Format A."""
        rows = [["date", "amount", "description"], ["2025-01-01", "1", "x"]]
        assert detect_format(rows) == "A"

    def test_format_a_any_order_and_case(self):
        """Header columns may appear in any order and case."""
        rows = [["Description", "memo", "AMOUNT", "Date"], ["x", "", "1", "2025-01-01"]]
        assert detect_format(rows) == "A"

    def test_format_b(self):
        """A dated second row with at least six fields is Format B."""
        rows = [["NAME", "****1234", "VISA"], ["2025/12/01", "店", "159", "1", "1", "159"]]
        assert detect_format(rows) == "B"

    def test_format_b_needs_ascii_digits(self):
        """Full-width digits in the date column are not a bank export."""
        rows = [["NAME", "****1234", "VISA"], ["２０２５/１２/０１", "A", "100", "1", "1", "100"]]
        assert detect_format(rows) is None

    def test_format_b_needs_six_fields(self):
        """A dated second row with fewer than six fields is not Format B."""
        rows = [["NAME", "****1234", "VISA"], ["2025/12/01", "店", "159"]]
        assert detect_format(rows) is None

    def test_format_a_wins(self):
        """Format A is checked first, so a table matching both is Format A."""
        rows = [
            ["date", "amount", "description"],
            ["2025/12/01", "店", "159", "1", "1", "159"],
        ]
        assert detect_format(rows) == "A"

    def test_too_short(self):
        """Fewer than two rows cannot be detected."""
        assert detect_format([["date", "amount", "description"]]) is None

    def test_unrecognized(self):
        """Anything else is unrecognized."""
        assert detect_format([["foo", "bar"], ["1", "2"]]) is None


# ---------------------------------------------------------------------------
# Format A
# ---------------------------------------------------------------------------


class TestFormatA:
    """Tests for the generic header-driven layout."""

    def test_parses_rows(self):
        """Valid rows become candidates with absolute amounts."""
        result = parse_rows("date,amount,description\n2025-12-01,-1200,Store A\n")
        assert result.error == ""
        assert result.format == "A"
        assert result.rows == [RawCandidate(date(2025, 12, 1), 1200, "Store A")]

    def test_extra_columns_ignored(self):
        """Columns beyond the three named ones are ignored."""
        text = "memo,description,date,amount\nfoo,Store A,2025-12-01,500\n"
        result = parse_rows(text)
        assert result.rows == [RawCandidate(date(2025, 12, 1), 500, "Store A")]

    def test_invalid_rows_skipped(self):
        """Rows with bad dates, amounts or missing fields are skipped."""
        text = (
            "date,amount,description\n"
            "2025-12-01,100,ok\n"
            "2025/12/01,100,slash date\n"
            "2025-02-30,100,impossible date\n"
            "2025-12-01,abc,bad amount\n"
            "2025-12-01,,no amount\n"
            "2025-12-01,100\n"
        )
        result = parse_rows(text)
        assert [r.description for r in result.rows] == ["ok"]

    def test_spaced_quoted_description(self):
        """A quoted description after a space is stored whole."""
        result = parse_rows('date,amount,description\n2024-01-15, 1500, "Foo, Bar"\n')
        assert result.rows == [RawCandidate(date(2024, 1, 15), 1500, "Foo, Bar")]

    def test_full_width_digits_rejected(self):
        """Dates and amounts must use ASCII digits."""
        text = (
            "date,amount,description\n"
            "２０２５-１２-０１,100,a\n"
            "2025-12-01,１００,b\n"
            "2025-12-01,100,c\n"
        )
        assert [r.description for r in parse_rows(text).rows] == ["c"]

    def test_thousands_separator(self):
        """Quoted amounts with thousands separators parse."""
        result = parse_rows('date,amount,description\n2025-12-01,"1,234",x\n')
        assert result.rows[0].amount == 1234

    def test_no_valid_rows(self):
        """A recognized layout with no usable rows reports an error."""
        result = parse_rows("date,amount,description\nbad,bad,bad\n")
        assert result.format == "A"
        assert result.rows == []
        assert result.error == "No valid transactions found in standard CSV format"


# ---------------------------------------------------------------------------
# Format B
# ---------------------------------------------------------------------------


class TestFormatB:
    """Tests for the bank/card-issuer export layout."""

    def test_metadata_row_never_in_output(self):
        """The holder/card metadata row is discarded."""
        text = (
            "NAME,****1234,VISA\n"
            "2025/12/01,セブン-イレブン,159,１,１,159,\n"
        )
        result = parse_rows(text)
        assert result.format == "B"
        assert result.rows == [RawCandidate(date(2025, 12, 1), 159, "セブン-イレブン")]
        for row in result.rows:
            for value in (row.date.isoformat(), str(row.amount), row.description):
                for secret in ("NAME", "1234", "VISA"):
                    assert secret not in value

    def test_amount_falls_back_to_sixth_column(self):
        """A blank third column takes the amount from the sixth."""
        text = (
            "NAME,****1234,VISA\n"
            "2025/12/02,ＪＲ東日本,,１,１,1200,モバイルＳｕｉｃａ\n"
        )
        result = parse_rows(text)
        assert result.rows == [RawCandidate(date(2025, 12, 2), 1200, "ＪＲ東日本")]

    def test_invalid_rows_skipped(self):
        """Later rows with bad dates or amounts are skipped, not fatal."""
        text = (
            "NAME,****1234,VISA\n"
            "2025/12/01,A,100,1,1,100\n"
            "2025-12-01,B,100,1,1,100\n"
            "2025/12/01,C,abc,1,1,abc\n"
            "2025/12/01,D\n"
        )
        result = parse_rows(text)
        assert [r.description for r in result.rows] == ["A"]

    def test_returns_absolute_amount(self):
        """Refund rows with a sign come back as absolute amounts."""
        text = "NAME,****1234,VISA\n2025/12/01,A,-300,1,1,-300\n"
        assert parse_rows(text).rows[0].amount == 300


# ---------------------------------------------------------------------------
# Errors and registry
# ---------------------------------------------------------------------------


class TestParseRowsErrors:
    """Tests for file-level error reporting."""

    def test_oversized_field(self):
        """A field beyond the csv size limit is an error, not an exception."""
        result = parse_rows("date,amount,description\n" + "x" * 200_000)
        assert result.error.startswith("Unreadable CSV")
        assert result.rows == []

    def test_single_row(self):
        """A single row is rejected."""
        result = parse_rows("date,amount,description\n")
        assert result.error == "CSV must have at least 2 rows"
        assert result.rows == []

    def test_empty(self):
        """An empty file is rejected."""
        assert parse_rows("").error == "CSV must have at least 2 rows"

    def test_unrecognized(self):
        """An unknown layout is rejected with a message naming both formats."""
        result = parse_rows("foo,bar\n1,2\n")
        assert result.format is None
        assert result.error.startswith("Unrecognized CSV format")
        assert "Format A" in result.error
        assert "Format B" in result.error


class TestRegistry:
    """Tests for the parser registry."""

    def test_both_formats_registered(self):
        """PARSERS holds both layouts."""
        assert set(PARSERS) == {"A", "B"}

    def test_unknown_parser(self):
        """get_parser raises KeyError for unknown names."""
        with pytest.raises(KeyError):
            get_parser("C")


class TestParseAmount:
    """Tests for parse_amount()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [("1200", 1200), ("-1200", 1200), ("+5", 5), ("1,234", 1234), (" 7 ", 7)],
    )
    def test_valid(self, raw, expected):
        """Integers with optional sign and separators parse to absolute values."""
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", "12.5", "1 2", "-", "１２"])
    def test_invalid(self, raw):
        """Non-integers return None."""
        assert parse_amount(raw) is None


# ---------------------------------------------------------------------------
# Notification email
# ---------------------------------------------------------------------------

NOTIFICATION = """\
いつもご利用いただきありがとうございます。

◇利用日：2025/12/01 12:34
◇利用先：セブン-イレブン
◇利用取引：買物
◇利用金額：1,234円
"""


class TestParseNotification:
    """Tests for parse_notification()."""

    def test_parses_fields(self):
        """Date, merchant and amount are extracted."""
        assert parse_notification(NOTIFICATION) == RawCandidate(
            date(2025, 12, 1), 1234, "セブン-イレブン"
        )

    def test_full_width_amount_rejected(self):
        """An amount written in full-width digits is not accepted."""
        body = NOTIFICATION.replace("1,234円", "１,２３４円")
        assert parse_notification(body) is None

    def test_missing_amount(self):
        """A body without the amount line is rejected."""
        body = NOTIFICATION.replace("◇利用金額：1,234円", "")
        assert parse_notification(body) is None

    def test_missing_merchant(self):
        """A body without the merchant line is rejected."""
        body = NOTIFICATION.replace("◇利用先：セブン-イレブン", "")
        assert parse_notification(body) is None

    def test_invalid_date(self):
        """An impossible calendar date is rejected."""
        body = NOTIFICATION.replace("2025/12/01", "2025/13/01")
        assert parse_notification(body) is None

    def test_unrelated_mail(self):
        """Mail that is not a usage notification is rejected."""
        assert parse_notification("Your statement is ready.") is None
