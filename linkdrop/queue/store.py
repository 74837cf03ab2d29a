"""
Queue Store - per-token link queues on a sorted set.

Each token owns one sorted set keyed ``<prefix><token>``. Members are
serialized ``QueueItem``s scored by their enqueue time in milliseconds,
so the lowest scores are the oldest links. Expired links are purged
opportunistically before any size check or pop.
"""

import logging
from typing import Callable

from ..core.config import QueueConfig, settings
from ..core.utils import make_item_id, mask_token, now_ms
from ..models.schemas import QueueItem
from ..storage.base import SortedSetBackend

# Configure logging
logger = logging.getLogger(__name__)


class QueueStore:
    """
    Ordered, time-bounded link queues, one per token.

    The store holds no state of its own; all of it lives in the backend.
    Concurrent requests for the same token are tolerated without locks:
    dequeue removes the exact members it read, so a link is never handed
    to two pollers.
    """

    def __init__(
        self,
        backend: SortedSetBackend,
        config: QueueConfig = settings.queue,
        clock: Callable[[], int] = now_ms
    ):
        self.backend = backend
        self.key_prefix = config.key_prefix
        self.ttl_seconds = config.item_ttl_seconds
        self._clock = clock

    def key(self, token: str) -> str:
        """Sorted-set key holding a token's queue."""
        return f"{self.key_prefix}{token}"

    async def cleanup(self, token: str) -> int:
        """
        Remove links older than the retention window.

        Returns:
            Number of expired links removed
        """
        cutoff = self._clock() - self.ttl_seconds * 1000
        # Scores are whole milliseconds, so "< cutoff" is "<= cutoff - 1"
        removed = await self.backend.remove_by_score(self.key(token), float("-inf"), cutoff - 1)
        if removed:
            logger.info(f"Purged {removed} expired link(s) for {mask_token(token)}")
        return removed

    async def size(self, token: str) -> int:
        """Number of pending links for a token."""
        return await self.backend.cardinality(self.key(token))

    async def enqueue(self, token: str, urls: list[str]) -> list[QueueItem]:
        """
        Append links to a token's queue.

        The whole batch shares one timestamp; the batch index in each id
        keeps members unique and ordered within the call.

        Args:
            token: Queue owner
            urls: Normalized links, in delivery order

        Returns:
            The stored queue items
        """
        timestamp = self._clock()
        items = [
            QueueItem(id=make_item_id(timestamp, index), url=url, enqueued_at_ms=timestamp)
            for index, url in enumerate(urls)
        ]
        if items:
            await self.backend.add(
                self.key(token),
                {item.to_member(): item.enqueued_at_ms for item in items}
            )
            logger.debug(f"Enqueued {len(items)} link(s) for {mask_token(token)}")
        return items

    async def dequeue(self, token: str, max_count: int) -> list[str]:
        """
        Pop up to ``max_count`` of the oldest links.

        Reads the lowest-scored members, then removes exactly those members.
        Members another poller removed in between are skipped, never
        returned twice.

        Returns:
            URLs in ascending enqueue order
        """
        if max_count <= 0:
            return []

        await self.cleanup(token)

        key = self.key(token)
        members = await self.backend.range_by_rank(key, 0, max_count - 1)
        if not members:
            return []

        removed = await self.backend.remove_members(key, members)
        if len(removed) < len(members):
            logger.info(
                f"{len(members) - len(removed)} link(s) for {mask_token(token)} "
                f"were taken by a concurrent poll"
            )

        urls = []
        for member in removed:
            try:
                urls.append(QueueItem.from_member(member).url)
            except ValueError:
                # Removed already; a corrupt member cannot be delivered
                logger.warning(f"Dropping malformed queue member for {mask_token(token)}")
        return urls

    async def refresh_expiry(self, token: str) -> bool:
        """Reset the queue key's TTL so forgotten queues are reclaimed."""
        return await self.backend.expire(self.key(token), self.ttl_seconds)
