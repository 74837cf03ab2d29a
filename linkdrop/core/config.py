"""
Configuration module for the link delivery queue.

Manages environment variables for the storage backend, the token format,
queue limits and the consumer-side polling cadence. Every value can be
overridden from the environment; defaults match the hosted service.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_first(*names: str) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class UpstashConfig:
    """
    Immutable configuration for the Upstash Redis REST API.

    Attributes:
        rest_url: The Upstash Redis REST API endpoint
        rest_token: Authentication token for Upstash Redis
        timeout: Per-request timeout in seconds
    """
    rest_url: Optional[str] = None
    rest_token: Optional[str] = None
    timeout: float = 5.0

    @property
    def enabled(self) -> bool:
        """True when both REST credentials are present."""
        return bool(self.rest_url and self.rest_token)

    @property
    def headers(self) -> dict[str, str]:
        """Returns the authorization headers for Upstash REST API."""
        return {
            "Authorization": f"Bearer {self.rest_token}",
            "Content-Type": "application/json"
        }


@dataclass(frozen=True)
class RedisConfig:
    """
    Configuration for a plain TCP Redis server (local development).

    Attributes:
        url: Redis connection URL
        socket_timeout: Socket timeout in seconds for every command
    """
    url: str = "redis://localhost:6379"
    socket_timeout: float = 5.0


@dataclass(frozen=True)
class TokenConfig:
    """
    Format of the per-install capability token.

    Attributes:
        marker: Recognizable substring embedded in every token
        total_len: Total token length including the marker
        insert_pos: Offset at which the marker is inserted
        alphabet: Symbols used for the random part
    """
    marker: str = "OTL"
    total_len: int = 16
    insert_pos: int = 8
    alphabet: str = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"


@dataclass(frozen=True)
class QueueConfig:
    """
    Configuration for the per-token queues.

    Attributes:
        key_prefix: Namespace prefix for queue keys
        max_queue_size: Maximum pending links per token
        max_deliver_per_poll: Maximum links handed out by one poll
        item_ttl_seconds: Retention window for queued links
    """
    key_prefix: str = "otl:q:"
    max_queue_size: int = 100
    max_deliver_per_poll: int = 10
    item_ttl_seconds: int = 259200  # 3 days


@dataclass(frozen=True)
class PollerConfig:
    """
    Configuration for the consumer agent.

    Attributes:
        base_url: Default server base URL used for polling
        poll_interval: Normal polling period (seconds)
        turbo_interval: Delay between turbo polls (seconds)
        turbo_duration: How long a turbo window lasts (seconds)
        initial_delay: Delay before the first normal poll (seconds)
        request_timeout: Timeout for a single poll request (seconds)
        state_path: File holding the persisted consumer state
    """
    base_url: str = "https://openthat.link"
    poll_interval: float = 60.0
    turbo_interval: float = 10.0
    turbo_duration: float = 300.0
    initial_delay: float = 3.0
    request_timeout: float = 10.0
    state_path: str = "~/.linkdrop/state.json"


class Settings:
    """
    Central settings manager that aggregates all configuration.

    Loads configuration from environment variables with fallbacks
    to default values for development.
    """

    def __init__(self):
        # Vercel-style KV integrations use the KV_* names
        self.upstash = UpstashConfig(
            rest_url=_env_first("UPSTASH_REDIS_REST_URL", "KV_REST_API_URL"),
            rest_token=_env_first("UPSTASH_REDIS_REST_TOKEN", "KV_REST_API_TOKEN"),
            timeout=float(os.getenv("UPSTASH_TIMEOUT", "5.0"))
        )

        self.redis = RedisConfig(
            url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5.0"))
        )

        self.token = TokenConfig(
            marker=os.getenv("RECOGNIZABLE_TOKEN", "OTL"),
            total_len=int(os.getenv("SECRET_TOTAL_LEN", "16")),
            insert_pos=int(os.getenv("SECRET_INSERT_POS", "8")),
            alphabet=os.getenv("NANOID_ALPHABET", "23456789ABCDEFGHJKLMNPQRSTUVWXYZ")
        )

        self.queue = QueueConfig(
            key_prefix=os.getenv("QUEUE_KEY_PREFIX", "otl:q:"),
            max_queue_size=int(os.getenv("MAX_QUEUE_SIZE", "100")),
            max_deliver_per_poll=int(os.getenv("MAX_DELIVER_PER_POLL", "10")),
            item_ttl_seconds=int(os.getenv("QUEUE_ITEM_TTL_SECONDS", "259200"))
        )

        self.poller = PollerConfig(
            base_url=os.getenv("PUBLIC_BASE_URL", "https://openthat.link"),
            poll_interval=float(os.getenv("POLL_INTERVAL_SECONDS", "60")),
            turbo_interval=float(os.getenv("TURBO_POLL_INTERVAL_SECONDS", "10")),
            turbo_duration=float(os.getenv("TURBO_DURATION_SECONDS", "300")),
            initial_delay=float(os.getenv("POLL_INITIAL_DELAY_SECONDS", "3")),
            request_timeout=float(os.getenv("POLL_REQUEST_TIMEOUT", "10")),
            state_path=os.getenv("LINKDROP_STATE_PATH", "~/.linkdrop/state.json")
        )

    @property
    def server_port(self) -> int:
        """Server port from environment variable."""
        return int(os.getenv("PORT", "8000"))

    @property
    def public_base_url(self) -> str:
        """Public URL of this deployment, used in usage examples."""
        vercel_host = _env_first("VERCEL_PROJECT_PRODUCTION_URL", "VERCEL_URL")
        default = f"https://{vercel_host}" if vercel_host else "http://localhost:3000"
        return os.getenv("PUBLIC_BASE_URL", default).rstrip("/")

    @property
    def api_title(self) -> str:
        """API title for OpenAPI documentation."""
        return os.getenv("APP_NAME", "OpenThat.Link")

    @property
    def api_version(self) -> str:
        """API version string."""
        return "1.0.0"

    @property
    def api_description(self) -> str:
        """API description for OpenAPI documentation."""
        return (
            "Webhook-to-browser link relay. Automation tools push links to a "
            "secret endpoint; the browser extension polls and opens them."
        )


# Global settings instance - imported throughout the application
settings = Settings()
