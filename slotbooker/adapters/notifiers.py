"""
Outbound notification adapters.
"""

import asyncio
import logging
from typing import Any, Dict

import requests
from rich.console import Console

from ..domain.exceptions import NotificationError

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    Posts notifications to an HTTP endpoint that fans them out as push or email.

    Request body:
    {
        "target_id": "pat-1",
        "title": "Appointment Update",
        "body": "Your appointment has been rescheduled"
    }
    """

    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None):
        """
        Initialize the notifier.

        Args:
            url: Endpoint receiving the JSON payload
            timeout: Per-request timeout in seconds
            session: Optional requests session (connection pooling, tests)
        """
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}

    async def notify(self, target_id: str, title: str, body: str) -> None:
        # requests is blocking, keep it off the event loop
        await asyncio.to_thread(self._post, target_id, title, body)

    def _post(self, target_id: str, title: str, body: str) -> Dict[str, Any]:
        payload = {"target_id": target_id, "title": title, "body": body}

        try:
            response = self.session.post(
                self.url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Failed to deliver notification to {target_id}: {e}") from e

        logger.debug("Delivered %r to %s", title, target_id)
        return payload


class ConsoleNotifier:
    """Prints notifications instead of delivering them. Used by the CLI."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def notify(self, target_id: str, title: str, body: str) -> None:
        self.console.print(f"[dim]✉  {target_id}: [bold]{title}[/bold] - {body}[/dim]")
