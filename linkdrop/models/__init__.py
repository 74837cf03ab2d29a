"""
Models module containing Pydantic schemas.
"""

from .schemas import (
    QueueItem,
    DocsInfo,
    EnqueueResponse,
    PollResponse,
    ErrorResponse,
    HealthResponse
)

__all__ = [
    "QueueItem",
    "DocsInfo",
    "EnqueueResponse",
    "PollResponse",
    "ErrorResponse",
    "HealthResponse"
]
