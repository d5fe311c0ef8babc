"""
Tests for the candidate scorer.

Covers each scoring signal in isolation and the final ranking, including
stable ordering for equal scores.
"""

from __future__ import annotations

from typing import Any

import pytest

from pricewatch.extraction.document import parse_document
from pricewatch.extraction.scanner import Candidate, scan
from pricewatch.extraction.scorer import (
    area_points,
    centering_points,
    font_size_points,
    font_weight_points,
    position_points,
    score,
    score_candidate,
)


def _candidate(**overrides: Any) -> Candidate:
    fields: dict[str, Any] = {
        "price": 100.0,
        "currency": None,
        "element": None,
        "font_size": 12.0,
        "font_weight": 400,
        "area": 0.0,
        "y_position": 900.0,
        "x_position": 0.0,
        "width": 0.0,
        "has_currency_symbol": False,
        "has_price_keyword": False,
        "text": "100",
        "order": 0,
    }
    fields.update(overrides)
    return Candidate(**fields)


class TestSignals:
    @pytest.mark.parametrize(
        ("size", "points"),
        [(10.0, 0.0), (12.0, 0.0), (16.0, 12.0), (22.0, 30.0), (40.0, 30.0)],
    )
    def test_font_size_points(self, size: float, points: float) -> None:
        """(size - 12) x 3, floored at 0 and capped at 30."""
        assert font_size_points(size) == pytest.approx(points)

    @pytest.mark.parametrize(("weight", "points"), [(400, 0.0), (500, 10.0), (600, 20.0), (900, 20.0)])
    def test_font_weight_points(self, weight: int, points: float) -> None:
        assert font_weight_points(weight) == pytest.approx(points)

    def test_area_points_peak_and_decay(self) -> None:
        assert area_points(10_000) == pytest.approx(20.0)
        assert area_points(5_000) == pytest.approx(10.0)
        assert area_points(20_000) == pytest.approx(0.0)
        assert area_points(50_000) == pytest.approx(0.0)

    def test_position_points(self) -> None:
        assert position_points(0) == pytest.approx(20.0)
        assert position_points(450) == pytest.approx(10.0)
        assert position_points(2_000) == pytest.approx(0.0)

    def test_centering_points(self) -> None:
        """Full bonus when the element's centre sits on the viewport centre."""
        assert centering_points(540, 200) == pytest.approx(10.0)
        assert centering_points(0, 0) == pytest.approx(0.0)

    def test_lexical_bonuses(self) -> None:
        base = score_candidate(_candidate())
        assert score_candidate(_candidate(has_currency_symbol=True)) == pytest.approx(base + 30)
        assert score_candidate(_candidate(has_price_keyword=True)) == pytest.approx(base + 25)


class TestRanking:
    def test_best_candidate_first(self) -> None:
        small = _candidate(price=5.0, order=0)
        big = _candidate(price=1299.0, font_size=28.0, font_weight=700, has_currency_symbol=True, order=1)
        ranked = score([small, big])
        assert ranked[0].price == pytest.approx(1299.0)
        assert ranked[0].score > ranked[1].score

    def test_ties_keep_scan_order(self) -> None:
        first = _candidate(price=1.0, order=0)
        second = _candidate(price=2.0, order=1)
        ranked = score([first, second])
        assert [c.order for c in ranked] == [0, 1]

    def test_inputs_not_mutated(self) -> None:
        candidate = _candidate()
        score([candidate])
        assert candidate.score == 0.0

    def test_prominent_price_beats_strikethrough(self) -> None:
        """A large bold price outranks a small old price on the same page."""
        soup = parse_document(
            "<html><body>"
            '<span class="old-price" style="font-size: 12px">1.499,00 TL</span>'
            '<span class="sale-price" style="font-size: 28px; font-weight: bold">1.299,00 TL</span>'
            "</body></html>"
        )
        ranked = score(scan(soup))
        assert ranked[0].price == pytest.approx(1299.0)

    def test_empty_input(self) -> None:
        assert score([]) == []
