"""
Persisted consumer state.

The consumer keeps a handful of values across restarts: its token, an
optional custom server URL, the turbo window end time and delivery
stats. They live in a small key/value store; ``ConsumerState`` is the
typed record on top of it that the scheduler and CLI share.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ..core.config import PollerConfig, settings
from ..core.token import TokenCodec, codec as default_codec
from ..core.utils import now_ms

logger = logging.getLogger(__name__)

STORAGE_KEY_SECRET = "otl_secret"
STORAGE_KEY_BASE_URL = "otl_base_url"
STORAGE_KEY_TURBO_END = "otl_turbo_end"
STORAGE_KEY_OPEN_COUNT = "otl_open_count"
STORAGE_KEY_LAST_LINK = "otl_last_link"

# listener(key, old_value, new_value)
ChangeListener = Callable[[str, Any, Any], None]


class StateStore(ABC):
    """
    Key/value store with change notification.

    Subclasses implement ``_load`` and ``_save``; listeners are told about
    every key whose value actually changed.
    """

    def __init__(self):
        self._listeners: list[ChangeListener] = []

    @abstractmethod
    def _load(self) -> dict[str, Any]:
        """Return a fresh copy of all stored values."""

    @abstractmethod
    def _save(self, data: dict[str, Any]) -> None:
        """Replace all stored values with ``data``."""

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, key: str, old: Any, new: Any) -> None:
        if old == new:
            return
        for listener in list(self._listeners):
            try:
                listener(key, old, new)
            except Exception:
                logger.exception(f"State listener failed for {key}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        old = data.get(key)
        data[key] = value
        self._save(data)
        self._notify(key, old, value)

    def remove(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        old = data.pop(key)
        self._save(data)
        self._notify(key, old, None)


class MemoryStateStore(StateStore):
    """State kept in memory only; lost when the process exits."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        super().__init__()
        self._data = dict(initial or {})

    def _load(self) -> dict[str, Any]:
        return dict(self._data)

    def _save(self, data: dict[str, Any]) -> None:
        self._data = dict(data)


class JsonFileStateStore(StateStore):
    """
    State persisted as a JSON object in a file.

    The file is re-read on every access so values written by another
    process (e.g. the CLI toggling turbo mode) are visible immediately.
    Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"State file {self.path} is corrupt; starting empty")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)


@dataclass(frozen=True)
class OpenStats:
    """How many links this installation opened, and the latest one."""
    count: int = 0
    last_link: Optional[str] = None


class ConsumerState:
    """Typed access to the consumer's persisted values."""

    def __init__(
        self,
        store: StateStore,
        config: PollerConfig = settings.poller,
        codec: TokenCodec = default_codec,
        clock: Callable[[], int] = now_ms
    ):
        self.store = store
        self.default_base_url = config.base_url.rstrip("/")
        self.turbo_duration = config.turbo_duration
        self.codec = codec
        self._clock = clock

    # ---- Token ----

    def token(self) -> Optional[str]:
        """The stored token, or None if missing or malformed."""
        token = self.store.get(STORAGE_KEY_SECRET)
        if isinstance(token, str) and self.codec.validate(token):
            return token
        return None

    def get_or_create_token(self) -> tuple[str, bool]:
        """
        Return the stored token, generating one on first run.

        Returns:
            (token, created) where created is True for a fresh token
        """
        existing = self.token()
        if existing:
            return existing, False
        token = self.codec.generate()
        self.store.set(STORAGE_KEY_SECRET, token)
        return token, True

    def regenerate_token(self) -> str:
        """Replace the token; the old queue is left to expire. Resets stats."""
        token = self.codec.generate()
        self.store.set(STORAGE_KEY_SECRET, token)
        self.store.remove(STORAGE_KEY_OPEN_COUNT)
        self.store.remove(STORAGE_KEY_LAST_LINK)
        return token

    # ---- Server URL ----

    def base_url(self) -> str:
        """Custom server URL if one is set, otherwise the default."""
        base_url = self.store.get(STORAGE_KEY_BASE_URL)
        if isinstance(base_url, str) and base_url.strip():
            return base_url.strip().rstrip("/")
        return self.default_base_url

    def set_base_url(self, base_url: str) -> None:
        self.store.set(STORAGE_KEY_BASE_URL, base_url.strip().rstrip("/"))

    def reset_base_url(self) -> None:
        self.store.remove(STORAGE_KEY_BASE_URL)

    def webhook_url(self, token: str) -> str:
        return f"{self.base_url()}/{token}"

    def poll_url(self, token: str) -> str:
        return f"{self.base_url()}/{token}/extension-poll"

    # ---- Turbo window ----

    def turbo_end_ms(self) -> Optional[int]:
        value = self.store.get(STORAGE_KEY_TURBO_END)
        return int(value) if isinstance(value, (int, float)) else None

    def is_turbo_active(self) -> bool:
        end = self.turbo_end_ms()
        return end is not None and self._clock() < end

    def enable_turbo(self, duration_seconds: Optional[float] = None) -> int:
        """Open a turbo window starting now. Returns its end time (ms)."""
        duration = self.turbo_duration if duration_seconds is None else duration_seconds
        end = self._clock() + int(duration * 1000)
        self.store.set(STORAGE_KEY_TURBO_END, end)
        return end

    def disable_turbo(self) -> None:
        self.store.remove(STORAGE_KEY_TURBO_END)

    # ---- Stats ----

    def open_stats(self) -> OpenStats:
        count = self.store.get(STORAGE_KEY_OPEN_COUNT, 0)
        return OpenStats(
            count=int(count) if isinstance(count, (int, float)) else 0,
            last_link=self.store.get(STORAGE_KEY_LAST_LINK)
        )

    def record_opened_link(self, url: str) -> None:
        stats = self.open_stats()
        self.store.set(STORAGE_KEY_OPEN_COUNT, stats.count + 1)
        self.store.set(STORAGE_KEY_LAST_LINK, url)
