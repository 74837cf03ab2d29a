"""
Delivery Engine - the enqueue and poll request flows.

The engine is stateless per request; everything about a token lives in
the queue store. Validation failures are raised before any storage
access, and a rejected batch leaves the queue untouched.
"""

import logging
from typing import Any, Optional

from ..core.config import QueueConfig, settings
from ..core.links import extract_links
from ..core.token import TokenCodec, codec as default_codec
from ..core.utils import format_link_count, mask_token
from ..models.schemas import DocsInfo, EnqueueResponse, PollResponse
from .errors import InvalidTokenError, NoLinksError, QuotaExceededError
from .store import QueueStore

# Configure logging
logger = logging.getLogger(__name__)


class DeliveryEngine:
    """
    Orchestrates enqueue and poll for one deployment.

    Enqueue: validate -> extract links -> cleanup -> quota check ->
    persist -> refresh expiry.
    Poll: validate -> cleanup -> pop oldest batch -> refresh expiry.
    """

    def __init__(
        self,
        store: QueueStore,
        config: QueueConfig = settings.queue,
        codec: TokenCodec = default_codec,
        public_base_url: str = settings.public_base_url
    ):
        self.store = store
        self.codec = codec
        self.max_queue_size = config.max_queue_size
        self.max_deliver_per_poll = config.max_deliver_per_poll
        self.public_base_url = public_base_url.rstrip("/")

    def docs_for(self, token: Optional[str] = None) -> DocsInfo:
        """Documentation pointer, personalised when the token is valid."""
        if token and self.codec.validate(token):
            return DocsInfo(hyperlink=f"{self.public_base_url}/#{token}")
        return DocsInfo(hyperlink=self.public_base_url)

    def usage_examples(self) -> list[str]:
        return [
            f"{self.public_base_url}/<SECRET>?link=example.com",
            f"curl -X POST {self.public_base_url}/<SECRET> "
            f"-H 'content-type: application/json' -d '{{\"links\":[\"example.com\"]}}'",
        ]

    async def enqueue(
        self,
        token: str,
        query: dict[str, Any],
        body: Optional[dict[str, Any]] = None
    ) -> EnqueueResponse:
        """
        Queue the links carried by a webhook request.

        Raises:
            InvalidTokenError: Token is malformed
            NoLinksError: No valid link in query or body
            QuotaExceededError: The batch does not fit; nothing is queued
            StorageError: Backend unavailable
        """
        if not self.codec.validate(token):
            raise InvalidTokenError(docs=self.docs_for())

        links = extract_links(query, body)
        if not links:
            raise NoLinksError(self.usage_examples(), docs=self.docs_for(token))

        await self.store.cleanup(token)

        current_size = await self.store.size(token)
        if current_size + len(links) > self.max_queue_size:
            logger.warning(
                f"Queue limit reached for {mask_token(token)}: "
                f"{current_size} pending, {len(links)} incoming"
            )
            raise QuotaExceededError(self.max_queue_size, docs=self.docs_for(token))

        await self.store.enqueue(token, links)
        await self.store.refresh_expiry(token)

        logger.info(f"Queued {len(links)} link(s) for {mask_token(token)}")
        return EnqueueResponse(
            queued=len(links),
            links=links,
            message=f"Queued {format_link_count(len(links))} to be opened in your browser.",
            docs=self.docs_for(token)
        )

    async def poll(self, token: str) -> PollResponse:
        """
        Hand out the oldest pending links for a token.

        Raises:
            InvalidTokenError: Token is malformed
            StorageError: Backend unavailable
        """
        if not self.codec.validate(token):
            raise InvalidTokenError()

        # dequeue purges expired links before popping
        links = await self.store.dequeue(token, self.max_deliver_per_poll)

        if links:
            await self.store.refresh_expiry(token)
            logger.info(f"Delivered {len(links)} link(s) to {mask_token(token)}")

        return PollResponse(delivered=len(links), links=links)


_engine: Optional[DeliveryEngine] = None


def get_delivery_engine() -> DeliveryEngine:
    """Engine on the configured storage backend, created on first use."""
    global _engine
    if _engine is None:
        from ..storage import create_backend
        _engine = DeliveryEngine(QueueStore(create_backend()))
    return _engine


async def close_delivery_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.store.backend.close()
        _engine = None
