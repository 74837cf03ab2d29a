"""
Consumer Agent - polls for links and opens them in the local browser.

This is the desktop counterpart of the browser extension. It keeps its
token and stats in a local state file, polls the server on a timer and
opens every delivered link in a new browser tab.

Run the agent with: python -m linkdrop.workers.worker
Other commands (see --help): status, turbo, regenerate, base-url.
Commands that change the state file are picked up by a running agent.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from ..core.config import settings
from ..core.utils import mask_token
from .client import PollClient
from .scheduler import AsyncioTimers, PollScheduler
from .state import ConsumerState, JsonFileStateStore

logger = logging.getLogger("worker")


class LinkWorker:
    """
    Long-running consumer agent.

    On first start it creates a token and opens a turbo window so the
    user's first test webhook shows up quickly.
    """

    def __init__(self, state: ConsumerState, scheduler: PollScheduler):
        self.state = state
        self.scheduler = scheduler
        self._stopped = asyncio.Event()

    async def start(self):
        """
        Start polling and run until ``stop`` is called.
        """
        token, created = self.state.get_or_create_token()
        if created:
            logger.info("No token found - generated a new one")
            self.state.enable_turbo()

        logger.info(f"Worker started for {mask_token(token)}")
        logger.info(f"  Webhook URL: {self.state.webhook_url(token)}")
        logger.info(f"  Poll interval: {self.scheduler.poll_interval:g}s")
        logger.info(f"  Turbo interval: {self.scheduler.turbo_interval:g}s")

        self.scheduler.start()
        await self._stopped.wait()
        await self.scheduler.shutdown()

        stats = self.state.open_stats()
        logger.info(f"Worker stopped. Links opened so far: {stats.count}")

    async def stop(self):
        """Signal the worker to stop gracefully."""
        logger.info("Worker stop requested")
        self._stopped.set()


def build_state() -> ConsumerState:
    return ConsumerState(JsonFileStateStore(settings.poller.state_path))


async def run_worker():
    """
    Main entry point for the agent process.

    Sets up signal handlers for graceful shutdown and starts the
    polling loop.
    """
    state = build_state()
    scheduler = PollScheduler(state, PollClient(), AsyncioTimers())
    worker = LinkWorker(state, scheduler)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(worker.stop())

    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: loop.call_soon_threadsafe(signal_handler))
        signal.signal(signal.SIGTERM, lambda s, f: loop.call_soon_threadsafe(signal_handler))

    await worker.start()


def print_status(state: ConsumerState) -> None:
    token, _ = state.get_or_create_token()
    stats = state.open_stats()
    print(f"Webhook URL:  {state.webhook_url(token)}")
    print(f"Poll URL:     {state.poll_url(token)}")
    print(f"Turbo mode:   {'on' if state.is_turbo_active() else 'off'}")
    print(f"Links opened: {stats.count}")
    print(f"Last link:    {stats.last_link or '-'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linkdrop-worker",
        description="Poll the link relay and open delivered links in the browser."
    )
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("run", help="run the polling agent (default)")
    commands.add_parser("status", help="show the webhook URL and stats")

    turbo = commands.add_parser("turbo", help="poll every few seconds for a while")
    turbo.add_argument("--off", action="store_true", help="end turbo mode now")

    commands.add_parser("regenerate", help="replace the token; the old URL stops working")

    base_url = commands.add_parser("base-url", help="use a self-hosted server")
    base_url.add_argument("url", nargs="?", help="server base URL")
    base_url.add_argument("--reset", action="store_true", help="use the default server")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    args = build_parser().parse_args(argv)
    command = args.command or "run"

    if command == "run":
        print("=" * 60)
        print("LINKDROP CONSUMER AGENT")
        print("=" * 60)
        asyncio.run(run_worker())
        return 0

    state = build_state()
    if command == "status":
        print_status(state)
    elif command == "turbo":
        if args.off:
            state.disable_turbo()
            print("Turbo mode off")
        else:
            state.enable_turbo()
            print(f"Turbo mode on for {settings.poller.turbo_duration:g} seconds")
    elif command == "regenerate":
        token = state.regenerate_token()
        print(f"New webhook URL: {state.webhook_url(token)}")
    elif command == "base-url":
        if args.reset:
            state.reset_base_url()
        elif args.url:
            state.set_base_url(args.url)
        print(f"Server: {state.base_url()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
