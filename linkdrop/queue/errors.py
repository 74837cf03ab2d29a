"""
Errors raised by the delivery engine.

Each error knows its HTTP status and how to render itself as an
``ErrorResponse`` body, so the web layer only needs one handler.
"""

from typing import Optional

from ..core.token import INVALID_TOKEN_ERROR
from ..models.schemas import DocsInfo, ErrorResponse


class DeliveryError(Exception):
    """Base class for request-level failures of enqueue and poll."""

    status_code = 400

    def __init__(self, message: str, docs: Optional[DocsInfo] = None):
        super().__init__(message)
        self.message = message
        self.docs = docs

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, docs=self.docs)


class InvalidTokenError(DeliveryError):
    """The token is malformed. Deliberately does not say why."""

    def __init__(self, docs: Optional[DocsInfo] = None):
        super().__init__(INVALID_TOKEN_ERROR, docs)


class NoLinksError(DeliveryError):
    """The request carried no usable link."""

    def __init__(self, examples: list[str], docs: Optional[DocsInfo] = None):
        super().__init__(
            'Missing link(s). Provide ?link=example.com or POST {"links":[...]}',
            docs
        )
        self.examples = examples

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, examples=self.examples, docs=self.docs)


class QuotaExceededError(DeliveryError):
    """Accepting the batch would push the queue over its limit."""

    status_code = 429

    def __init__(self, limit: int, docs: Optional[DocsInfo] = None):
        super().__init__(
            "Queue limit reached for this endpoint. "
            "Wait for delivery or reduce incoming links.",
            docs
        )
        self.limit = limit

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, limit=self.limit, docs=self.docs)
