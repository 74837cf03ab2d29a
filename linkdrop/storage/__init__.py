"""
Storage backends for the per-token queues.
"""

import logging

from ..core.config import Settings, settings as default_settings
from .base import SortedSetBackend, StorageError
from .redis_tcp import RedisSortedSetBackend
from .upstash import UpstashSortedSetBackend

logger = logging.getLogger(__name__)


def create_backend(settings: Settings = default_settings) -> SortedSetBackend:
    """
    Select the storage backend for this deployment.

    Uses the Upstash REST API when its credentials are available and
    falls back to a plain Redis server otherwise.
    """
    if settings.upstash.enabled:
        logger.info("Using Upstash Redis REST backend")
        return UpstashSortedSetBackend(settings.upstash)

    logger.info(f"Using Redis TCP backend at {settings.redis.url}")
    return RedisSortedSetBackend(settings.redis)


__all__ = [
    "SortedSetBackend",
    "StorageError",
    "RedisSortedSetBackend",
    "UpstashSortedSetBackend",
    "create_backend",
]
