"""Slack incoming-webhook client"""
from typing import Any, Dict, Optional

import httpx
import structlog

from execution.errors import ExecutorError
from integrations.http import CircuitProtectedClient

logger = structlog.get_logger()


class SlackClient(CircuitProtectedClient):
    """Posts plain-text and block-formatted messages to a Slack webhook"""

    service_name = "Slack"

    def __init__(self, http: httpx.AsyncClient,
                 default_webhook_url: Optional[str] = None, **breaker_options):
        super().__init__(http, **breaker_options)
        self.default_webhook_url = default_webhook_url

    def _resolve_url(self, webhook_url: Optional[str]) -> str:
        url = webhook_url or self.default_webhook_url
        if not url:
            raise ExecutorError("Slack webhook URL not configured")
        return url

    async def send_message(self, message: str, webhook_url: Optional[str] = None) -> Dict[str, Any]:
        """Send a plain text message"""
        url = self._resolve_url(webhook_url)
        await self.request("POST", url, json={"text": message})
        logger.info("Slack message sent")
        return {"status": "ok", "message": "Message sent successfully"}

    async def send_formatted_message(self, payload: Dict[str, Any],
                                     webhook_url: Optional[str] = None) -> Dict[str, Any]:
        """Send a raw Slack payload (blocks, attachments, ...)"""
        if not isinstance(payload, dict):
            raise ExecutorError("Slack formatted payload must be an object")
        url = self._resolve_url(webhook_url)
        await self.request("POST", url, json=payload)
        logger.info("Slack formatted message sent")
        return {"status": "ok", "message": "Formatted message sent successfully"}
