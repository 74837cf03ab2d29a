"""
Poll Scheduler - decides when the consumer asks for links.

Two modes:

- NORMAL: one periodic timer every ``poll_interval`` seconds.
- TURBO: a short window (``turbo_duration``) after an explicit user
  action or a first install, during which polls run every
  ``turbo_interval`` seconds. Turbo chains one-shot timers instead of a
  fixed-period timer, re-checking the window after every poll.

Deciding what to do (``decide``) is a pure function of the current mode,
the trigger and the turbo window. ``PollScheduler`` applies the
resulting ``Plan`` to a ``TimerRegistry``; it never makes scheduling
decisions inside timer callbacks.
"""

import asyncio
import logging
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from ..core.config import PollerConfig, settings
from ..core.utils import mask_token, now_ms, truncate_string
from .client import PollClient, PollError
from .state import STORAGE_KEY_TURBO_END, ConsumerState

logger = logging.getLogger(__name__)

NORMAL_TIMER = "linkdrop-poll"
TURBO_TIMER = "linkdrop-turbo-poll"

TimerCallback = Callable[[], Awaitable[None]]
TabOpener = Callable[[str], Awaitable[None]]


class Mode(str, Enum):
    NORMAL = "normal"
    TURBO = "turbo"


class Trigger(str, Enum):
    START = "start"
    NORMAL_TICK = "normal_tick"
    TURBO_TICK = "turbo_tick"
    STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class Plan:
    """Timer changes that move the scheduler into ``mode``."""
    mode: Mode
    start_normal: bool = False
    cancel_normal: bool = False
    turbo_delay: Optional[float] = None
    cancel_turbo: bool = False


def decide(
    mode: Mode,
    trigger: Trigger,
    turbo_end_ms: Optional[int],
    now: int,
    turbo_interval: float
) -> Plan:
    """
    Choose the next timer configuration.

    Args:
        mode: Current mode
        trigger: What happened (start, a timer firing, a state change)
        turbo_end_ms: Stored turbo window end, None when turbo is off
        now: Current time in milliseconds
        turbo_interval: Delay between turbo polls (seconds)
    """
    turbo_active = turbo_end_ms is not None and now < turbo_end_ms
    enter_turbo_now = Plan(Mode.TURBO, cancel_normal=True, cancel_turbo=True, turbo_delay=0.0)
    back_to_normal = Plan(Mode.NORMAL, start_normal=True, cancel_turbo=True)

    if trigger is Trigger.START:
        return enter_turbo_now if turbo_active else back_to_normal

    if trigger is Trigger.STATE_CHANGED:
        if turbo_active and mode is Mode.NORMAL:
            return enter_turbo_now
        if not turbo_active and mode is Mode.TURBO:
            return back_to_normal
        return Plan(mode)

    if trigger is Trigger.NORMAL_TICK:
        # Turbo switched on without us hearing about it (another process)
        if turbo_active:
            return Plan(Mode.TURBO, cancel_normal=True, turbo_delay=turbo_interval)
        return Plan(Mode.NORMAL)

    # TURBO_TICK: the poll has run, keep chaining while the window lasts
    if turbo_active:
        return Plan(Mode.TURBO, turbo_delay=turbo_interval)
    return back_to_normal


class TimerRegistry(Protocol):
    def schedule_periodic(
        self, name: str, period: float, callback: TimerCallback, initial_delay: float = 0.0
    ) -> None: ...

    def schedule_once(self, name: str, delay: float, callback: TimerCallback) -> None: ...

    def cancel(self, name: str) -> None: ...

    def cancel_all(self) -> None: ...

    async def drain(self) -> None: ...


class AsyncioTimers:
    """
    Named timers backed by asyncio tasks on the running loop.

    Cancelling a timer stops it from firing again but never interrupts a
    callback that is already running; ``drain`` waits for those.
    """

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}
        self._firing: set[asyncio.Task] = set()

    def _replace(self, name: str, coro: Awaitable[None]) -> None:
        self.cancel(name)
        self._tasks[name] = asyncio.create_task(coro, name=name)

    def _is_current(self, name: str) -> bool:
        return self._tasks.get(name) is asyncio.current_task()

    async def _fire(self, name: str, callback: TimerCallback) -> None:
        task = asyncio.current_task()
        self._firing.add(task)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Timer {name} callback failed")
        finally:
            self._firing.discard(task)

    def schedule_periodic(
        self, name: str, period: float, callback: TimerCallback, initial_delay: float = 0.0
    ) -> None:
        async def run() -> None:
            await asyncio.sleep(initial_delay)
            while self._is_current(name):
                await self._fire(name, callback)
                if not self._is_current(name):
                    break
                await asyncio.sleep(period)

        self._replace(name, run())

    def schedule_once(self, name: str, delay: float, callback: TimerCallback) -> None:
        async def run() -> None:
            await asyncio.sleep(delay)
            if self._is_current(name):
                del self._tasks[name]
            await self._fire(name, callback)

        self._replace(name, run())

    def cancel(self, name: str) -> None:
        task = self._tasks.pop(name, None)
        # A running callback is only unregistered; its loop exits once it returns
        if task is not None and task not in self._firing:
            task.cancel()

    def cancel_all(self) -> None:
        for name in list(self._tasks):
            self.cancel(name)

    async def drain(self) -> None:
        """Wait until every callback that is already running has finished."""
        current = asyncio.current_task()
        running = [task for task in self._firing if task is not current]
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    def active(self) -> list[str]:
        return sorted(self._tasks)


class TabOpenError(Exception):
    """The browser refused to open a tab."""


async def open_in_browser(url: str) -> None:
    """Open ``url`` in a new background tab of the default browser."""
    opened = await asyncio.to_thread(webbrowser.open_new_tab, url)
    if not opened:
        raise TabOpenError(f"No browser could open {url}")


class PollScheduler:
    """
    Drives polling for one installation.

    Timers are (re)configured from plans produced by ``decide``. Turbo
    changes made through the same ``ConsumerState`` store are observed
    via its change listener; changes made by other processes are picked
    up on the next tick because every tick re-reads the stored window.
    """

    def __init__(
        self,
        state: ConsumerState,
        client: PollClient,
        timers: TimerRegistry,
        open_tab: TabOpener = open_in_browser,
        config: PollerConfig = settings.poller,
        clock: Callable[[], int] = now_ms
    ):
        self.state = state
        self.client = client
        self.timers = timers
        self.open_tab = open_tab
        self.poll_interval = config.poll_interval
        self.turbo_interval = config.turbo_interval
        self.initial_delay = config.initial_delay
        self.mode = Mode.NORMAL
        self._clock = clock
        self._running = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        """Subscribe to state changes and arm the timers for the current mode."""
        if self._unsubscribe is None:
            self._unsubscribe = self.state.store.subscribe(self._on_state_changed)
        self._running = True
        self._reconcile(Trigger.START)

    def stop(self) -> None:
        """
        Cancel all timers and stop listening for state changes.

        A poll already in flight keeps running; use ``shutdown`` to wait
        for it.
        """
        self._running = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.timers.cancel_all()

    async def shutdown(self) -> None:
        """Stop and wait for any in-flight poll to finish opening its links."""
        self.stop()
        await self.timers.drain()

    def enable_turbo(self) -> int:
        """Start a turbo window now; the state listener switches timers."""
        end = self.state.enable_turbo()
        logger.info("Turbo mode enabled")
        return end

    def disable_turbo(self) -> None:
        self.state.disable_turbo()
        logger.info("Turbo mode disabled")

    def _on_state_changed(self, key: str, old: Any, new: Any) -> None:
        if key == STORAGE_KEY_TURBO_END:
            logger.info("Turbo mode state changed, reconfiguring timers")
            self._reconcile(Trigger.STATE_CHANGED)

    async def _on_normal_tick(self) -> None:
        await self.poll_once()
        # Mode may have changed while the poll ran; that change already rearmed timers
        if self.mode is Mode.NORMAL:
            self._reconcile(Trigger.NORMAL_TICK)

    async def _on_turbo_tick(self) -> None:
        await self.poll_once()
        if self.mode is Mode.TURBO:
            self._reconcile(Trigger.TURBO_TICK)

    def _reconcile(self, trigger: Trigger) -> None:
        if not self._running:
            return
        plan = decide(
            self.mode,
            trigger,
            self.state.turbo_end_ms(),
            self._clock(),
            self.turbo_interval
        )
        self._apply(plan)

    def _apply(self, plan: Plan) -> None:
        if plan.mode is not self.mode:
            logger.info(f"Switching to {plan.mode.value} polling")
        self.mode = plan.mode

        if plan.cancel_normal:
            self.timers.cancel(NORMAL_TIMER)
        if plan.cancel_turbo:
            self.timers.cancel(TURBO_TIMER)
        if plan.start_normal:
            self.timers.schedule_periodic(
                NORMAL_TIMER, self.poll_interval, self._on_normal_tick, self.initial_delay
            )
            logger.info(f"Normal polling every {self.poll_interval:g} seconds")
        if plan.turbo_delay is not None:
            self.timers.schedule_once(TURBO_TIMER, plan.turbo_delay, self._on_turbo_tick)

    async def poll_once(self) -> int:
        """
        Poll the server once and open every delivered link.

        Poll failures are logged and swallowed; the next tick retries.

        Returns:
            Number of links opened
        """
        token = self.state.token()
        if not token:
            logger.info("No token found, skipping poll")
            return 0

        try:
            links = await self.client.fetch_links(self.state.poll_url(token))
        except PollError as e:
            logger.error(f"Poll for {mask_token(token)} failed: {str(e)}")
            return 0

        if not links:
            return 0

        logger.info(f"Opening {len(links)} link(s)")
        return await self.dispatch(links)

    async def dispatch(self, links: list[str]) -> int:
        """Open links one by one; a failed tab never stops the rest."""
        opened = 0
        for url in links:
            try:
                await self.open_tab(url)
            except Exception as e:
                logger.error(f"Failed to open tab {truncate_string(url)}: {str(e)}")
                continue
            self.state.record_opened_link(url)
            opened += 1
        return opened
