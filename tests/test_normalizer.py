"""
Tests for the price normalizer.

Covers TR / US / GB / EU formats, prefix and suffix currency tokens,
bare numbers, and rejection of non-prices.
"""

from __future__ import annotations

import pytest

from pricewatch.extraction.normalizer import parse, parse_amount


class TestTurkishFormats:
    def test_tl_suffix_with_grouping(self) -> None:
        """'1.299,00 TL' → 1299.0 TRY."""
        result = parse("1.299,00 TL")
        assert result is not None
        assert result.amount == pytest.approx(1299.0)
        assert result.currency == "TRY"
        assert result.has_currency is True
        assert result.has_symbol is False

    def test_lira_symbol_prefix(self) -> None:
        """'₺1.299,00' is read as TRY and flagged as a symbol."""
        result = parse("₺1.299,00")
        assert result is not None
        assert result.amount == pytest.approx(1299.0)
        assert result.currency == "TRY"
        assert result.has_symbol is True

    def test_try_code_suffix_decimal_comma(self) -> None:
        """'49,90 TRY' → 49.90."""
        result = parse("49,90 TRY")
        assert result is not None
        assert result.amount == pytest.approx(49.90)

    def test_million_grouping(self) -> None:
        """Multiple dot groups collapse into one number."""
        result = parse("1.250.000 TL")
        assert result is not None
        assert result.amount == pytest.approx(1_250_000.0)


class TestUsAndGbFormats:
    def test_dollar_prefix_with_grouping(self) -> None:
        """'$1,299.50' → 1299.50 USD."""
        result = parse("$1,299.50")
        assert result is not None
        assert result.amount == pytest.approx(1299.50)
        assert result.currency == "USD"
        assert result.has_symbol is True

    def test_usd_code_suffix(self) -> None:
        result = parse("19.99 USD")
        assert result is not None
        assert result.amount == pytest.approx(19.99)
        assert result.currency == "USD"

    def test_pound_prefix(self) -> None:
        result = parse("£24.00")
        assert result is not None
        assert result.amount == pytest.approx(24.0)
        assert result.currency == "GBP"


class TestEuroFormats:
    def test_decimal_comma_suffix(self) -> None:
        """'12,50 €' → 12.50 EUR."""
        result = parse("12,50 €")
        assert result is not None
        assert result.amount == pytest.approx(12.50)
        assert result.currency == "EUR"

    def test_thousands_dot_three_digits(self) -> None:
        """A single separator followed by three digits is a thousands group."""
        result = parse("1.299 €")
        assert result is not None
        assert result.amount == pytest.approx(1299.0)

    def test_mixed_separators_rightmost_wins(self) -> None:
        """'€1,299.95' uses the rightmost separator as the decimal point."""
        result = parse("€1,299.95")
        assert result is not None
        assert result.amount == pytest.approx(1299.95)


class TestBareNumbers:
    def test_tr_grouping_without_token(self) -> None:
        """'1.299,00' parses but carries no currency."""
        result = parse("1.299,00")
        assert result is not None
        assert result.amount == pytest.approx(1299.0)
        assert result.currency is None
        assert result.has_currency is False

    def test_us_decimal_without_token(self) -> None:
        result = parse("49.99")
        assert result is not None
        assert result.amount == pytest.approx(49.99)
        assert result.currency is None


class TestFormatMatrix:
    @pytest.mark.parametrize(
        ("text", "amount", "currency"),
        [
            ("1.299,00 TL", 1299.0, "TRY"),
            ("₺49,90", 49.90, "TRY"),
            ("$1,299.50", 1299.50, "USD"),
            ("£20.00", 20.0, "GBP"),
            ("1.299,50 €", 1299.50, "EUR"),
            ("€1,299.95", 1299.95, "EUR"),
            ("2.499", 2499.0, None),
            ("1299.00", 1299.0, None),
        ],
    )
    def test_parsed(self, text: str, amount: float, currency: str | None) -> None:
        result = parse(text)
        assert result is not None
        assert result.amount == pytest.approx(amount)
        assert result.currency == currency


class TestRejection:
    @pytest.mark.parametrize("text", ["", None, "abc", "Sepete ekle", "0,00 TL"])
    def test_non_prices_return_none(self, text) -> None:
        """Empty, textual and zero values are not prices."""
        assert parse(text) is None

    def test_never_matches_inside_longer_number(self) -> None:
        """'1,299.50' must not yield a trailing fragment like 50."""
        result = parse("1,299.50")
        assert result is not None
        assert result.amount == pytest.approx(1299.50)


class TestParseAmount:
    def test_numeric_values(self) -> None:
        assert parse_amount(849) == pytest.approx(849.0)
        assert parse_amount(12.5) == pytest.approx(12.5)

    def test_machine_formatted_string(self) -> None:
        assert parse_amount("1299.00") == pytest.approx(1299.0)

    def test_display_string_falls_back_to_parse(self) -> None:
        assert parse_amount("1.299,00 TL") == pytest.approx(1299.0)

    @pytest.mark.parametrize("value", [None, True, 0, -5, "nan", "inf", "free"])
    def test_invalid_values(self, value) -> None:
        """Booleans, non-positive and non-finite values are rejected."""
        assert parse_amount(value) is None
