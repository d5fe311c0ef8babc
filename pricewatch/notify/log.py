"""PriceWatch — Log Notifier (default delivery target)"""

from __future__ import annotations

import structlog

from pricewatch.notify import Notification

logger = structlog.get_logger(__name__)


class LogNotifier:
    """Writes notifications to the structured log."""

    async def notify(self, notification: Notification) -> bool:
        logger.info(
            "notification",
            title=notification.title,
            message=notification.message,
            severity=notification.severity.value,
            url=notification.url,
            source="notify",
        )
        return True
