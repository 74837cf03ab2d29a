"""Unit tests for the consumer agent and its command line."""

import asyncio

import pytest

from linkdrop.workers import worker as worker_module
from linkdrop.workers.client import PollClient
from linkdrop.workers.scheduler import Mode, PollScheduler
from linkdrop.workers.state import ConsumerState, JsonFileStateStore, MemoryStateStore
from linkdrop.workers.worker import LinkWorker, build_parser, main


@pytest.fixture
def file_state(tmp_path, poller_config, codec, clock, monkeypatch):
    state = ConsumerState(JsonFileStateStore(tmp_path / "state.json"), poller_config, codec, clock=clock)
    monkeypatch.setattr(worker_module, "build_state", lambda: state)
    return state


@pytest.mark.asyncio
class TestLinkWorker:

    async def test_first_run_creates_token_and_enables_turbo(self, poller_config, codec, clock, timers):
        state = ConsumerState(MemoryStateStore(), poller_config, codec, clock=clock)
        scheduler = PollScheduler(state, PollClient(poller_config), timers, config=poller_config, clock=clock)
        worker = LinkWorker(state, scheduler)

        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0)

        assert state.token() is not None
        assert state.is_turbo_active()
        assert scheduler.mode is Mode.TURBO

        await worker.stop()
        await asyncio.wait_for(task, timeout=1)
        assert timers.once == {}
        assert timers.periodic == {}

    async def test_existing_token_starts_normal(self, poller_config, codec, clock, timers):
        state = ConsumerState(MemoryStateStore(), poller_config, codec, clock=clock)
        token, _ = state.get_or_create_token()
        scheduler = PollScheduler(state, PollClient(poller_config), timers, config=poller_config, clock=clock)
        worker = LinkWorker(state, scheduler)

        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0)

        assert state.token() == token
        assert scheduler.mode is Mode.NORMAL

        await worker.stop()
        await asyncio.wait_for(task, timeout=1)


class TestCommandLine:

    def test_default_command_is_run(self):
        assert build_parser().parse_args([]).command is None

    def test_turbo_on_and_off(self, file_state):
        assert main(["turbo"]) == 0
        assert file_state.is_turbo_active()

        assert main(["turbo", "--off"]) == 0
        assert not file_state.is_turbo_active()

    def test_status(self, file_state, capsys):
        main(["status"])

        out = capsys.readouterr().out
        token = file_state.token()
        assert f"https://relay.test/{token}" in out
        assert "Links opened: 0" in out

    def test_regenerate(self, file_state, capsys):
        old, _ = file_state.get_or_create_token()

        main(["regenerate"])

        assert file_state.token() != old
        assert file_state.token() in capsys.readouterr().out

    def test_base_url(self, file_state):
        main(["base-url", "http://localhost:8000/"])
        assert file_state.base_url() == "http://localhost:8000"

        main(["base-url", "--reset"])
        assert file_state.base_url() == "https://relay.test"
