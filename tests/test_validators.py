"""
Tests for URL validation and untrusted product sanitization.
"""

from __future__ import annotations

import pytest

from pricewatch.utils.validators import is_valid_url, sanitize_product_data


@pytest.mark.parametrize(
    ("url", "valid"),
    [
        ("https://shop.example.com/p/1", True),
        ("http://shop.example.com", True),
        ("ftp://shop.example.com/file", False),
        ("javascript:alert(1)", False),
        ("https://", False),
        ("", False),
        (None, False),
        (123, False),
    ],
)
def test_is_valid_url(url, valid: bool) -> None:
    assert is_valid_url(url) is valid


class TestSanitizeProductData:
    def test_minimal_record(self) -> None:
        product = sanitize_product_data(
            {"url": "https://www.trendyol.com/p/1", "name": "  Running Shoes  ", "price": "249.9"}
        )
        assert product is not None
        assert product.name == "Running Shoes"
        assert product.price == pytest.approx(249.9)
        assert product.initial_price == pytest.approx(249.9)
        assert product.site == "trendyol.com"
        assert product.currency == "TRY"

    def test_long_name_truncated(self) -> None:
        product = sanitize_product_data(
            {"url": "https://shop.example.com/p/1", "name": "x" * 500, "price": 10}
        )
        assert len(product.name) == 200

    @pytest.mark.parametrize(
        "data",
        [
            {"url": "https://shop.example.com/p/1", "name": "Good Name", "price": 0},
            {"url": "https://shop.example.com/p/1", "name": "Good Name", "price": "abc"},
            {"url": "https://shop.example.com/p/1", "name": "Good Name", "price": True},
            {"url": "https://shop.example.com/p/1", "name": "Good Name", "price": float("inf")},
            {"url": "https://shop.example.com/p/1", "name": "ab", "price": 10},
            {"url": "not-a-url", "name": "Good Name", "price": 10},
            "not a dict",
        ],
    )
    def test_unusable_records_rejected(self, data) -> None:
        assert sanitize_product_data(data) is None

    def test_bad_optional_fields_dropped(self) -> None:
        """An invalid optional field falls back to a record with the required fields."""
        product = sanitize_product_data({
            "url": "https://shop.example.com/p/1",
            "name": "Good Name",
            "price": 10,
            "confidence": 7,
            "currency": "usd",
        })
        assert product is not None
        assert product.confidence == pytest.approx(0.8)
        assert product.currency == "USD"

    def test_history_preserved(self) -> None:
        product = sanitize_product_data({
            "url": "https://shop.example.com/p/1",
            "name": "Good Name",
            "price": 10,
            "previousPrice": 12,
            "priceHistory": [{"price": 12, "date": "2026-01-01T00:00:00Z"}],
        })
        assert product.previous_price == pytest.approx(12.0)
        assert len(product.price_history) == 1
