"""
Poll Client - asks the server for pending links.

The consumer cannot accept inbound connections, so it pulls: one GET to
the token's poll endpoint returns up to a batch of links, which the
server removes from the queue as it hands them out.
"""

import httpx
import logging
from typing import Optional

from ..core.config import PollerConfig, settings
from ..core.utils import truncate_string

# Configure logging
logger = logging.getLogger(__name__)


class PollError(Exception):
    """A poll did not produce a usable answer. Retried on the next tick."""


class PollClient:
    """HTTP client for the extension poll endpoint."""

    def __init__(
        self,
        config: PollerConfig = settings.poller,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = config.request_timeout
        self._transport = transport

    async def fetch_links(self, poll_url: str) -> list[str]:
        """
        Fetch the next batch of links.

        Args:
            poll_url: Full URL of the token's poll endpoint

        Returns:
            Links in delivery order (possibly empty)

        Raises:
            PollError: Network failure, non-2xx status or an error body
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport
            ) as client:
                response = await client.get(
                    poll_url,
                    headers={"Accept": "application/json"}
                )
        except httpx.TimeoutException as e:
            raise PollError("Poll request timed out") from e
        except httpx.HTTPError as e:
            raise PollError(f"Poll request failed: {e}") from e

        if not response.is_success:
            raise PollError(
                f"Poll failed with status {response.status_code}: "
                f"{truncate_string(response.text)}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PollError("Poll returned a non-JSON body") from e

        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else None
            raise PollError(f"Poll returned error: {error}")

        links = data.get("links") or []
        return [link for link in links if isinstance(link, str)]
