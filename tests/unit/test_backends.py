"""
Unit tests for the storage adapters.

The Upstash adapter is exercised through ``httpx.MockTransport``; the
Redis adapter through a mocked ``redis.asyncio`` client.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from linkdrop.core.config import RedisConfig, Settings, UpstashConfig
from linkdrop.storage import create_backend
from linkdrop.storage.base import StorageError, format_score
from linkdrop.storage.redis_tcp import RedisSortedSetBackend
from linkdrop.storage.upstash import UpstashSortedSetBackend

UPSTASH = UpstashConfig(rest_url="https://kv.example.io/", rest_token="secret-token")


def upstash_with(handler):
    """Build an Upstash backend whose HTTP calls go to ``handler``."""
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    backend = UpstashSortedSetBackend(UPSTASH, transport=httpx.MockTransport(record))
    return backend, requests


class TestFormatScore:

    @pytest.mark.parametrize("score, expected", [
        (float("-inf"), "-inf"),
        (float("inf"), "+inf"),
        (1_700_000_000_000, "1700000000000"),
        (1_700_000_000_000.0, "1700000000000"),
        (1.5, "1.5"),
    ])
    def test_wire_format(self, score, expected):
        assert format_score(score) == expected


@pytest.mark.asyncio
class TestUpstashBackend:
    """Tests for the Upstash REST adapter."""

    async def test_add_sends_single_zadd(self):
        backend, requests = upstash_with(lambda r: httpx.Response(200, json={"result": 2}))

        added = await backend.add("q:tok", {"m1": 100, "m2": 100})

        assert added == 2
        assert requests[0].url.path == "/"
        assert requests[0].headers["Authorization"] == "Bearer secret-token"
        assert json.loads(requests[0].content) == ["ZADD", "q:tok", "100", "m1", "100", "m2"]

    async def test_range_by_rank(self):
        backend, requests = upstash_with(lambda r: httpx.Response(200, json={"result": ["a", "b"]}))

        assert await backend.range_by_rank("q:tok", 0, 9) == ["a", "b"]
        assert json.loads(requests[0].content) == ["ZRANGE", "q:tok", "0", "9"]

    async def test_remove_members_uses_pipeline(self):
        backend, requests = upstash_with(
            lambda r: httpx.Response(200, json=[{"result": 1}, {"result": 0}, {"result": 1}])
        )

        removed = await backend.remove_members("q:tok", ["a", "b", "c"])

        assert removed == ["a", "c"]
        assert requests[0].url.path == "/pipeline"
        assert json.loads(requests[0].content) == [
            ["ZREM", "q:tok", "a"],
            ["ZREM", "q:tok", "b"],
            ["ZREM", "q:tok", "c"],
        ]

    async def test_remove_by_score(self):
        backend, requests = upstash_with(lambda r: httpx.Response(200, json={"result": 3}))

        assert await backend.remove_by_score("q:tok", float("-inf"), 99) == 3
        assert json.loads(requests[0].content) == ["ZREMRANGEBYSCORE", "q:tok", "-inf", "99"]

    async def test_cardinality_and_expire(self):
        backend, requests = upstash_with(lambda r: httpx.Response(200, json={"result": 1}))

        assert await backend.cardinality("q:tok") == 1
        assert await backend.expire("q:tok", 60) is True
        assert json.loads(requests[1].content) == ["EXPIRE", "q:tok", "60"]

    async def test_error_body_raises(self):
        backend, _ = upstash_with(lambda r: httpx.Response(200, json={"error": "WRONGTYPE"}))

        with pytest.raises(StorageError):
            await backend.cardinality("q:tok")

    async def test_http_error_status_raises(self):
        backend, _ = upstash_with(lambda r: httpx.Response(500, text="boom"))

        with pytest.raises(StorageError):
            await backend.range_by_rank("q:tok", 0, 1)

    async def test_network_error_raises(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        backend, _ = upstash_with(refuse)

        with pytest.raises(StorageError):
            await backend.add("q:tok", {"m": 1})

    async def test_ping(self):
        backend, _ = upstash_with(lambda r: httpx.Response(200, json={"result": "PONG"}))
        assert await backend.ping() is True

    async def test_ping_never_raises(self):
        backend, _ = upstash_with(lambda r: httpx.Response(503))
        assert await backend.ping() is False


def mock_redis(pipeline_results=None):
    client = MagicMock()
    client.zadd = AsyncMock(return_value=1)
    client.zrange = AsyncMock(return_value=["a", "b"])
    client.zremrangebyscore = AsyncMock(return_value=4)
    client.zcard = AsyncMock(return_value=7)
    client.expire = AsyncMock(return_value=True)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()

    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=pipeline_results or [])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    client.pipeline.return_value = pipe
    return client, pipe


@pytest.mark.asyncio
class TestRedisBackend:
    """Tests for the redis.asyncio adapter."""

    async def test_add(self):
        client, _ = mock_redis()
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        await backend.add("q:tok", {"m": 5})

        client.zadd.assert_awaited_once_with("q:tok", {"m": 5})

    async def test_remove_members_reports_own_removals(self):
        client, pipe = mock_redis(pipeline_results=[0, 1])
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        removed = await backend.remove_members("q:tok", ["a", "b"])

        assert removed == ["b"]
        client.pipeline.assert_called_once_with(transaction=False)
        assert pipe.zrem.call_count == 2

    async def test_remove_by_score_formats_bounds(self):
        client, _ = mock_redis()
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        assert await backend.remove_by_score("q:tok", float("-inf"), 10) == 4
        client.zremrangebyscore.assert_awaited_once_with("q:tok", "-inf", "10")

    async def test_read_operations(self):
        client, _ = mock_redis()
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        assert await backend.range_by_rank("q:tok", 0, 1) == ["a", "b"]
        assert await backend.cardinality("q:tok") == 7
        assert await backend.expire("q:tok", 30) is True

    async def test_redis_error_wrapped(self):
        client, _ = mock_redis()
        client.zcard.side_effect = RedisConnectionError("down")
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        with pytest.raises(StorageError):
            await backend.cardinality("q:tok")

    async def test_ping_failure(self):
        client, _ = mock_redis()
        client.ping.side_effect = RedisConnectionError("down")
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        assert await backend.ping() is False

    async def test_close(self):
        client, _ = mock_redis()
        backend = RedisSortedSetBackend(RedisConfig(), client=client)

        await backend.close()

        client.aclose.assert_awaited_once()


class TestCreateBackend:
    """Tests for backend selection."""

    def test_upstash_requires_credentials(self):
        with pytest.raises(ValueError):
            UpstashSortedSetBackend(UpstashConfig())

    def test_upstash_when_credentials_present(self, monkeypatch):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://kv.example.io")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "t")

        assert isinstance(create_backend(Settings()), UpstashSortedSetBackend)

    def test_kv_aliases(self, monkeypatch):
        monkeypatch.delenv("UPSTASH_REDIS_REST_URL", raising=False)
        monkeypatch.delenv("UPSTASH_REDIS_REST_TOKEN", raising=False)
        monkeypatch.setenv("KV_REST_API_URL", "https://kv.example.io")
        monkeypatch.setenv("KV_REST_API_TOKEN", "t")

        assert isinstance(create_backend(Settings()), UpstashSortedSetBackend)

    def test_redis_fallback(self, monkeypatch):
        for name in ("UPSTASH_REDIS_REST_URL", "UPSTASH_REDIS_REST_TOKEN",
                     "KV_REST_API_URL", "KV_REST_API_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")

        backend = create_backend(Settings())

        assert isinstance(backend, RedisSortedSetBackend)
        assert backend.url == "redis://cache:6379/2"
