"""
PriceWatch — Alert Evaluator

Pure threshold checks for user alerts plus the global gate for the generic
"price changed" notification.

    | Type             | Triggers when                          | Severity         |
    |:-----------------|:---------------------------------------|:-----------------|
    | target_price     | current <= target                      | success          |
    | percentage_drop  | (base - current) / base * 100 >= pct   | success          |
    | percentage_rise  | (current - base) / base * 100 >= pct   | warning          |
    | any_change       | |current - base| > 0.01                 | success (down) / |
    |                  |                                        | info (up)        |

Disabled alerts never trigger. Percentage and any_change alerts need a
base price; without one they never trigger.

min_change_percent / notify_on_price_up / notify_on_price_down apply only
to the generic change notification (should_notify_change), never to alerts.
"""

from __future__ import annotations

import math

from pricewatch.config import AlertType, Severity, TrackerSettings, settings
from pricewatch.models.alert import Alert, AlertEvaluation
from pricewatch.utils.currency import calculate_change, format_price

_NOT_TRIGGERED = AlertEvaluation(triggered=False)


def evaluate(alert: Alert, current_price: float | None) -> AlertEvaluation:
    """Check one alert against the latest observed price."""
    if not alert.enabled:
        return _NOT_TRIGGERED
    if current_price is None or not math.isfinite(current_price) or current_price <= 0:
        return _NOT_TRIGGERED

    price = current_price
    name = alert.product_name
    currency = alert.currency

    if alert.type == AlertType.TARGET_PRICE:
        if alert.target_price is not None and price <= alert.target_price:
            return AlertEvaluation(
                triggered=True,
                message=(
                    f"Target price reached! {name} is now {format_price(price, currency)} "
                    f"(target: {format_price(alert.target_price, currency)})"
                ),
                severity=Severity.SUCCESS,
            )
        return _NOT_TRIGGERED

    base = alert.base_price
    if not base:
        return _NOT_TRIGGERED

    if alert.type == AlertType.PERCENTAGE_DROP:
        drop = (base - price) / base * 100
        if alert.target_percent is not None and drop >= alert.target_percent:
            return AlertEvaluation(
                triggered=True,
                message=(
                    f"{drop:.1f}% drop! {name}: "
                    f"{format_price(base, currency)} → {format_price(price, currency)}"
                ),
                severity=Severity.SUCCESS,
            )

    elif alert.type == AlertType.PERCENTAGE_RISE:
        rise = (price - base) / base * 100
        if alert.target_percent is not None and rise >= alert.target_percent:
            return AlertEvaluation(
                triggered=True,
                message=(
                    f"{rise:.1f}% rise! {name}: "
                    f"{format_price(base, currency)} → {format_price(price, currency)}"
                ),
                severity=Severity.WARNING,
            )

    elif alert.type == AlertType.ANY_CHANGE:
        if abs(price - base) > settings.PRICE_CHANGE_EPSILON:
            percent = (price - base) / base * 100
            direction = "went up" if percent > 0 else "went down"
            return AlertEvaluation(
                triggered=True,
                message=(
                    f"Price {direction}! {name}: "
                    f"{format_price(price, currency)} ({abs(percent):.1f}%)"
                ),
                severity=Severity.SUCCESS if percent < 0 else Severity.INFO,
            )

    return _NOT_TRIGGERED


def describe_alert(alert: Alert) -> str:
    """One-line human description of what the alert watches for."""
    if alert.type == AlertType.TARGET_PRICE:
        target = format_price(alert.target_price or 0.0, alert.currency)
        return f"Notify when the price drops to {target} or below"
    if alert.type == AlertType.PERCENTAGE_DROP:
        return f"Notify when the price drops by {alert.target_percent or 0:g}% or more"
    if alert.type == AlertType.PERCENTAGE_RISE:
        return f"Notify when the price rises by {alert.target_percent or 0:g}% or more"
    if alert.type == AlertType.ANY_CHANGE:
        return "Notify on any price change"
    return "Unknown alert type"


def should_notify_change(
    old_price: float,
    new_price: float,
    tracker_settings: TrackerSettings,
) -> bool:
    """Gate for the generic price-change notification."""
    if not tracker_settings.notifications:
        return False
    change = calculate_change(old_price, new_price)
    if change is None:
        return False
    if change["is_increase"] and not tracker_settings.notify_on_price_up:
        return False
    if change["is_decrease"] and not tracker_settings.notify_on_price_down:
        return False
    return abs(change["percent"]) >= tracker_settings.min_change_percent
