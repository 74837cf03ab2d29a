"""
Pydantic models for queue items and API responses.

Defines the stored queue item format and the data contracts of the
enqueue and poll endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


# ============================================================
# Stored Models
# ============================================================

class QueueItem(BaseModel):
    """
    A single pending link, stored as a sorted-set member.

    Field order matters: the serialized member starts with the id, so
    members sharing a score sort in batch order.

    Attributes:
        id: '<enqueue ms>-<batch index>', unique within a token's queue
        url: The normalized link
        enqueued_at_ms: Enqueue time in Unix milliseconds (also the score)
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    enqueued_at_ms: int = Field(..., alias="ts")

    def to_member(self) -> str:
        """Serialize to the sorted-set member string."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_member(cls, member: str | bytes) -> "QueueItem":
        """Parse a sorted-set member string."""
        return cls.model_validate_json(member)


# ============================================================
# Response Models
# ============================================================

class DocsInfo(BaseModel):
    """Pointer to usage documentation, attached to enqueue responses."""
    hyperlink: str
    note: str = (
        "Want to know how to use this tool to open links in your local browser "
        "from automation tools like n8n, Zapier, your own code, or anywhere you "
        "can trigger webhooks?"
    )


class EnqueueResponse(BaseModel):
    """
    Response returned when links were queued.

    The links are echoed back in their normalized form.
    """
    ok: bool = True
    queued: int = Field(..., description="Number of links queued")
    links: list[str] = Field(..., description="The normalized links that were queued")
    message: str
    docs: Optional[DocsInfo] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "ok": True,
            "queued": 1,
            "links": ["https://example.com/"],
            "message": "Queued one link to be opened in your browser."
        }
    })


class PollResponse(BaseModel):
    """Response of the extension poll endpoint."""
    ok: bool = True
    delivered: int = Field(..., description="Number of links handed out")
    links: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Generic error response."""
    ok: bool = False
    error: str
    examples: Optional[list[str]] = None
    limit: Optional[int] = None
    docs: Optional[DocsInfo] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    service: str = "linkdrop"
    version: str
    queue_connected: bool
    timestamp: str
