"""
Queue module: per-token link queues and the delivery flows on top of them.
"""

from .engine import DeliveryEngine, get_delivery_engine, close_delivery_engine
from .errors import DeliveryError, InvalidTokenError, NoLinksError, QuotaExceededError
from .store import QueueStore

__all__ = [
    "DeliveryEngine",
    "get_delivery_engine",
    "close_delivery_engine",
    "DeliveryError",
    "InvalidTokenError",
    "NoLinksError",
    "QuotaExceededError",
    "QueueStore",
]
