"""
PriceWatch — Price Candidate Scorer

Ranks scanner output by a weighted sum of visual and lexical signals:

    | Signal          | Points                                          |
    |:----------------|:------------------------------------------------|
    | font size       | (size - 12) x 3, capped at 30, never negative    |
    | font weight     | +20 at >= 600, +10 at >= 500                     |
    | area            | up to 20, decaying linearly away from 10,000 px² |
    | currency token  | +30                                             |
    | price keyword   | +25 (element or parent class/id/itemprop)        |
    | vertical        | up to 20, decaying to 0 at the viewport bottom   |
    | centring        | up to 10, decaying to 0 at the viewport edges    |

Pure and deterministic. Ties keep scan order.
"""

from __future__ import annotations

from pricewatch.config import settings
from pricewatch.extraction.scanner import Candidate


def font_size_points(font_size: float) -> float:
    raw = (font_size - settings.SCORE_BASE_FONT_SIZE) * settings.SCORE_FONT_SIZE_FACTOR
    return max(0.0, min(raw, settings.SCORE_FONT_SIZE_CAP))


def font_weight_points(font_weight: int) -> float:
    if font_weight >= 600:
        return settings.SCORE_BOLD_BONUS
    if font_weight >= 500:
        return settings.SCORE_MEDIUM_BONUS
    return 0.0


def area_points(area: float) -> float:
    ideal = settings.SCORE_IDEAL_AREA
    closeness = 1 - abs(area - ideal) / ideal
    return max(0.0, settings.SCORE_AREA_BONUS * closeness)


def position_points(y_position: float) -> float:
    closeness = 1 - max(y_position, 0.0) / settings.VIEWPORT_HEIGHT
    return max(0.0, settings.SCORE_POSITION_BONUS * closeness)


def centering_points(x_position: float, width: float) -> float:
    half = settings.VIEWPORT_WIDTH / 2
    offset = abs(x_position + width / 2 - half)
    return max(0.0, settings.SCORE_CENTER_BONUS * (1 - offset / half))


def score_candidate(candidate: Candidate) -> float:
    """Total points for one candidate."""
    total = (
        font_size_points(candidate.font_size)
        + font_weight_points(candidate.font_weight)
        + area_points(candidate.area)
        + position_points(candidate.y_position)
        + centering_points(candidate.x_position, candidate.width)
    )
    if candidate.has_currency_symbol:
        total += settings.SCORE_CURRENCY_BONUS
    if candidate.has_price_keyword:
        total += settings.SCORE_KEYWORD_BONUS
    return total


def score(candidates: list[Candidate]) -> list[Candidate]:
    """Candidates with `score` filled in, best first."""
    scored = [c._replace(score=score_candidate(c)) for c in candidates]
    # sorted() is stable, so equal scores stay in scan order.
    return sorted(scored, key=lambda c: c.score, reverse=True)
