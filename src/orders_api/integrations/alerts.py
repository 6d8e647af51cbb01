"""
Operational Alerts

Posts sync alerts to a Discord/Slack-compatible webhook and/or a Telegram
chat. Delivery is best effort: failures are logged, never raised.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)

# Constants
REQUEST_TIMEOUT = 10
MAX_MESSAGE_LENGTH = 4000

LEVEL_COLORS = {
    "info": 3447003,       # blue
    "warning": 16776960,   # yellow
    "error": 16711680,     # red
    "critical": 10038562,  # dark red
}

LEVEL_EMOJI = {
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
    "critical": "🚨",
}


@dataclass
class Alert:
    """One alert: level is info, warning, error or critical."""
    level: str
    title: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def format_webhook_payload(alert: Alert) -> Dict[str, Any]:
    """Discord/Slack-compatible embed for an alert."""
    return {
        "embeds": [
            {
                "title": f"{LEVEL_EMOJI.get(alert.level, '')} {alert.title}".strip(),
                "description": alert.message,
                "color": LEVEL_COLORS.get(alert.level, LEVEL_COLORS["info"]),
                "fields": [
                    {"name": key, "value": str(value), "inline": True}
                    for key, value in alert.context.items()
                ],
                "timestamp": alert.timestamp,
                "footer": {"text": "Order Sync Monitor"},
            }
        ]
    }


def format_telegram_message(alert: Alert) -> str:
    """Plain HTML message for Telegram."""
    lines = [
        f"{LEVEL_EMOJI.get(alert.level, '')} <b>{alert.title}</b>",
        alert.message,
    ]
    for key, value in alert.context.items():
        lines.append(f"<b>{key}:</b> <code>{value}</code>")

    message = "\n".join(lines)
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[: MAX_MESSAGE_LENGTH - 3] + "..."
    return message


class AlertNotifier:
    """Send alerts to the configured sinks."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        telegram_bot_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            webhook_url: Discord/Slack incoming-webhook URL
            telegram_bot_token: Telegram bot token
            telegram_chat_id: Telegram chat or channel id
            transport: Optional httpx transport (tests)
        """
        self.webhook_url = webhook_url
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.transport = transport
        self.telegram_enabled = bool(telegram_bot_token and telegram_chat_id)

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url) or self.telegram_enabled

    async def send_alert(self, alert: Alert) -> bool:
        """
        Deliver an alert to every configured sink.

        Returns:
            True if at least one sink accepted the alert
        """
        if not self.enabled:
            logger.warning(
                f"No alert sink configured - alert not sent: {alert.title}",
                extra={"context": {"level": alert.level, **alert.context}},
            )
            return False

        delivered = False
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self.transport) as client:
            if self.webhook_url:
                delivered |= await self._post(
                    client, self.webhook_url, format_webhook_payload(alert), "webhook"
                )

            if self.telegram_enabled:
                delivered |= await self._post(
                    client,
                    f"https://api.telegram.org/bot{self.telegram_bot_token}/sendMessage",
                    {
                        "chat_id": self.telegram_chat_id,
                        "text": format_telegram_message(alert),
                        "parse_mode": "HTML",
                        "disable_web_page_preview": True,
                    },
                    "telegram",
                )

        if delivered:
            logger.info(f"Alert sent successfully: {alert.title}")
        return delivered

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict, sink: str) -> bool:
        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to send alert via {sink}: {e}")
            return False
