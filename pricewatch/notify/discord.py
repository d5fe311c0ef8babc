"""
PriceWatch — Discord Webhook Delivery

Posts notifications as Discord embeds to a channel webhook over httpx.
Disabled (every notify() returns False) when no webhook URL is configured.

Usage:
    async with DiscordNotifier() as notifier:
        await notifier.notify(notification)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from pricewatch.config import Severity, settings
from pricewatch.notify import Notification

logger = structlog.get_logger(__name__)


_SEVERITY_COLORS = {
    Severity.SUCCESS: 0x2ECC71,  # green
    Severity.WARNING: 0xE67E22,  # orange
    Severity.INFO: 0x3498DB,     # blue
}


def _fmt_embed(notification: Notification) -> dict[str, Any]:
    """Format a notification as a Discord embed dict."""
    embed: dict[str, Any] = {
        "title": notification.title,
        "description": notification.message,
        "color": _SEVERITY_COLORS.get(notification.severity, _SEVERITY_COLORS[Severity.INFO]),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if notification.url:
        embed["url"] = notification.url
    return embed


class DiscordNotifier:
    """Delivers notifications to a Discord webhook."""

    def __init__(
        self,
        webhook_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._webhook_url = webhook_url if webhook_url is not None else settings.DISCORD_WEBHOOK_URL
        self._enabled = bool(self._webhook_url)
        self._client = client
        self._owns_client = client is None

        if not self._enabled:
            logger.warning(
                "discord_notifier_disabled",
                reason="DISCORD_WEBHOOK_URL is empty or not set",
                source="discord",
            )

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def __aenter__(self) -> DiscordNotifier:
        if self._enabled and self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def notify(self, notification: Notification) -> bool:
        """
        Send one notification as an embed.

        Returns:
            True if Discord accepted the message, False otherwise.
        """
        if not self._enabled:
            return False
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True

        try:
            response = await self._client.post(
                self._webhook_url,
                json={"embeds": [_fmt_embed(notification)]},
            )
            response.raise_for_status()
            logger.info(
                "discord_notification_sent",
                title=notification.title,
                severity=notification.severity.value,
                source="discord",
            )
            return True
        except httpx.HTTPError as exc:
            logger.error(
                "discord_notification_failed",
                title=notification.title,
                error=str(exc),
                error_type=type(exc).__name__,
                source="discord",
            )
            return False
