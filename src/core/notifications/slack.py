"""
Slack webhook notification sender.

Posts price-change alerts for monitored competitor products to a Slack
channel via an incoming webhook.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class SlackNotifier:
    """Incoming-webhook sender; a blank URL turns every send into a logged no-op."""

    def __init__(self, webhook_url: str, *, timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def send(self, text: str, *, blocks: list[dict] | None = None) -> bool:
        """
        Send a message to the configured Slack webhook.

        Args:
            text: Fallback text for notifications.
            blocks: Optional Slack Block Kit blocks for rich formatting.

        Returns:
            True if sent successfully, False otherwise.
        """
        if not self.webhook_url:
            logger.warning("SLACK_WEBHOOK_URL not configured. Alert skipped.")
            return False

        payload: dict = {"text": text}
        if blocks:
            payload["blocks"] = blocks

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
                logger.info("Slack alert sent successfully.")
                return True
        except httpx.HTTPError as exc:
            logger.error("Failed to send Slack alert: %s", exc)
            return False

    async def price_alert(
        self,
        competitor_domain: str,
        product_name: str,
        product_url: str | None,
        previous_price: float,
        current_price: float,
        change: float,
    ) -> bool:
        direction = "📈 up" if change > 0 else "📉 down"
        text = (
            f"Price {direction} {abs(change):.1f}% at {competitor_domain}: "
            f"{product_name} {previous_price:.2f} → {current_price:.2f}"
        )
        link = f"<{product_url}|{product_name}>" if product_url else product_name
        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": f"Price change at {competitor_domain}"}},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Product:*\n{link}"},
                    {"type": "mrkdwn", "text": f"*Change:*\n{change:+.1f}%"},
                    {"type": "mrkdwn", "text": f"*Previous:*\n{previous_price:.2f}"},
                    {"type": "mrkdwn", "text": f"*Current:*\n{current_price:.2f}"},
                ],
            },
        ]
        return await self.send(text, blocks=blocks)
