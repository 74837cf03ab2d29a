"""
Upstash Redis REST adapter.

Talks to Upstash over its REST API, which is connectionless and works
from serverless hosts. Single commands are POSTed as a JSON array to the
base URL; batches go to ``/pipeline`` as an array of commands.
"""

import httpx
import logging
from typing import Any, Optional, Sequence

from ..core.config import UpstashConfig
from .base import Score, StorageError, format_score

# Configure logging
logger = logging.getLogger(__name__)


class UpstashSortedSetBackend:
    """
    Sorted-set backend on top of the Upstash REST API.

    Every call opens a short-lived ``httpx.AsyncClient`` with the
    configured timeout. Failures are raised as ``StorageError`` so the
    caller can answer with a transient error instead of dropping data.
    """

    def __init__(
        self,
        config: UpstashConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize the backend with Upstash configuration."""
        if not config.enabled:
            raise ValueError("Upstash REST URL and token are required")
        self.base_url = config.rest_url.rstrip("/")
        self.headers = config.headers
        self.timeout = config.timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post(self, url: str, payload: list) -> Any:
        try:
            async with self._client() as client:
                response = await client.post(url, headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling Upstash: {payload[0]}")
            raise StorageError("Upstash request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Error calling Upstash: {str(e)}")
            raise StorageError(f"Upstash request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Upstash command failed: "
                f"Status {response.status_code}, Body: {response.text}"
            )
            raise StorageError(f"Upstash returned status {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise StorageError("Upstash returned a non-JSON body") from e

    @staticmethod
    def _unwrap(data: Any) -> Any:
        if not isinstance(data, dict):
            raise StorageError("Unexpected Upstash response shape")
        if data.get("error"):
            raise StorageError(f"Upstash error: {data['error']}")
        return data.get("result")

    async def _command(self, *args: str) -> Any:
        """Execute one Redis command and return its result."""
        return self._unwrap(await self._post(self.base_url, list(args)))

    async def _pipeline(self, commands: list[list[str]]) -> list[Any]:
        """Execute commands in one round trip and return their results in order."""
        data = await self._post(f"{self.base_url}/pipeline", commands)
        if not isinstance(data, list) or len(data) != len(commands):
            raise StorageError("Unexpected Upstash pipeline response")
        return [self._unwrap(item) for item in data]

    async def add(self, key: str, members: dict[str, Score]) -> int:
        if not members:
            return 0
        args = ["ZADD", key]
        for member, score in members.items():
            args.extend([format_score(score), member])
        return int(await self._command(*args) or 0)

    async def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        result = await self._command("ZRANGE", key, str(start), str(stop))
        return [str(member) for member in result or []]

    async def remove_members(self, key: str, members: Sequence[str]) -> list[str]:
        if not members:
            return []
        # One ZREM per member so each result tells whether *we* removed it
        results = await self._pipeline([["ZREM", key, member] for member in members])
        return [member for member, removed in zip(members, results) if int(removed or 0)]

    async def remove_by_score(self, key: str, min_score: Score, max_score: Score) -> int:
        result = await self._command(
            "ZREMRANGEBYSCORE", key, format_score(min_score), format_score(max_score)
        )
        return int(result or 0)

    async def cardinality(self, key: str) -> int:
        return int(await self._command("ZCARD", key) or 0)

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._command("EXPIRE", key, str(int(seconds))))

    async def ping(self) -> bool:
        """
        Check if the Upstash Redis connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            return await self._command("PING") == "PONG"
        except StorageError:
            return False

    async def close(self) -> None:
        """Nothing to release: clients are per request."""
