import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    pass


class WebhookNotifier:
    def __init__(self, url: str, client: httpx.Client | None = None) -> None:
        self.url = url
        self.client = client or httpx.Client()

    def send(self, content: dict[str, Any]) -> bool:
        if not self.url:
            logger.warning("WEBHOOK_URL is not configured, notification dropped")
            return False
        try:
            response = self.client.post(self.url, json=content)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook delivery failed: {e}") from e
        return True

    def close(self) -> None:
        self.client.close()
