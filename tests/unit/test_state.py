"""Unit tests for the persisted consumer state."""

import json

import pytest

from linkdrop.workers.state import (
    STORAGE_KEY_SECRET,
    STORAGE_KEY_TURBO_END,
    ConsumerState,
    JsonFileStateStore,
    MemoryStateStore,
    StateStore,
)


@pytest.fixture
def state(poller_config, codec, clock):
    return ConsumerState(MemoryStateStore(), poller_config, codec, clock=clock)


class TestStateStores:
    """Tests for the key/value stores."""

    def test_base_store_is_abstract(self):
        with pytest.raises(TypeError):
            StateStore()

    def test_listener_sees_changes_only(self):
        store = MemoryStateStore()
        seen = []
        store.subscribe(lambda key, old, new: seen.append((key, old, new)))

        store.set("k", 1)
        store.set("k", 1)
        store.set("k", 2)
        store.remove("k")
        store.remove("k")

        assert seen == [("k", None, 1), ("k", 1, 2), ("k", 2, None)]

    def test_unsubscribe(self):
        store = MemoryStateStore()
        seen = []
        unsubscribe = store.subscribe(lambda *args: seen.append(args))

        unsubscribe()
        store.set("k", 1)

        assert seen == []

    def test_failing_listener_does_not_block_write(self):
        store = MemoryStateStore()

        def broken(key, old, new):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.set("k", "v")

        assert store.get("k") == "v"

    def test_json_file_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        store = JsonFileStateStore(path)

        store.set("otl_open_count", 3)

        assert json.loads(path.read_text()) == {"otl_open_count": 3}
        assert JsonFileStateStore(path).get("otl_open_count") == 3

    def test_json_file_sees_other_writers(self, tmp_path):
        path = tmp_path / "state.json"
        store = JsonFileStateStore(path)
        store.set("a", 1)

        path.write_text(json.dumps({"a": 2}))

        assert store.get("a") == 2

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{oops")

        assert JsonFileStateStore(path).get("a", "default") == "default"


class TestConsumerState:
    """Tests for the typed consumer record."""

    def test_token_created_once(self, state):
        token, created = state.get_or_create_token()
        again, created_again = state.get_or_create_token()

        assert created is True
        assert created_again is False
        assert token == again
        assert state.codec.validate(token)

    def test_malformed_stored_token_ignored(self, state):
        state.store.set(STORAGE_KEY_SECRET, "garbage")

        assert state.token() is None
        token, created = state.get_or_create_token()
        assert created is True
        assert token != "garbage"

    def test_regenerate_resets_stats(self, state):
        old, _ = state.get_or_create_token()
        state.record_opened_link("https://a/")

        new = state.regenerate_token()

        assert new != old
        assert state.token() == new
        stats = state.open_stats()
        assert stats.count == 0
        assert stats.last_link is None

    def test_record_opened_link(self, state):
        state.record_opened_link("https://a/")
        state.record_opened_link("https://b/")

        stats = state.open_stats()
        assert stats.count == 2
        assert stats.last_link == "https://b/"

    def test_base_url_override(self, state):
        assert state.base_url() == "https://relay.test"

        state.set_base_url("  http://localhost:8000/ ")
        assert state.base_url() == "http://localhost:8000"
        assert state.poll_url("TOKEN") == "http://localhost:8000/TOKEN/extension-poll"
        assert state.webhook_url("TOKEN") == "http://localhost:8000/TOKEN"

        state.reset_base_url()
        assert state.base_url() == "https://relay.test"

    def test_turbo_window(self, state, clock):
        end = state.enable_turbo()

        assert end == clock.now + 300_000
        assert state.store.get(STORAGE_KEY_TURBO_END) == end
        assert state.is_turbo_active()

        clock.advance(300_000)
        assert not state.is_turbo_active()

    def test_disable_turbo(self, state):
        state.enable_turbo()
        state.disable_turbo()

        assert state.turbo_end_ms() is None
        assert not state.is_turbo_active()
