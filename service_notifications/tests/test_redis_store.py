"""
Unit tests for the Redis sorted-set store.
"""

import pytest
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_notifications.app.limiter.store import RedisSortedSetStore
from shared.errors import PipelineException


class TestRedisSortedSetStore:
    """Test cases for RedisSortedSetStore."""

    @pytest.fixture
    def mock_redis(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, mock_redis):
        store = RedisSortedSetStore("redis://localhost:6379/0")
        store.redis = mock_redis
        return store

    @pytest.mark.asyncio
    async def test_start_success(self):
        with patch('service_notifications.app.limiter.store.redis.from_url') as mock_from_url:
            mock_client = AsyncMock()
            mock_from_url.return_value = mock_client
            store = RedisSortedSetStore("redis://localhost:6379/0", socket_timeout=2.0)

            await store.start()

            assert store.redis is mock_client
            mock_client.ping.assert_awaited_once()
            assert mock_from_url.call_args.kwargs["socket_timeout"] == 2.0

    @pytest.mark.asyncio
    async def test_start_failure(self):
        with patch('service_notifications.app.limiter.store.redis.from_url') as mock_from_url:
            mock_client = AsyncMock()
            mock_client.ping.side_effect = ConnectionError("Connection refused")
            mock_from_url.return_value = mock_client
            store = RedisSortedSetStore("redis://localhost:6379/0")

            with pytest.raises(PipelineException) as exc_info:
                await store.start()

            assert exc_info.value.code == "REDIS_START_FAILED"

    @pytest.mark.asyncio
    async def test_stop(self, store, mock_redis):
        await store.stop()

        mock_redis.aclose.assert_awaited_once()
        assert store.redis is None

    @pytest.mark.asyncio
    async def test_not_started_raises_connection_error(self):
        store = RedisSortedSetStore("redis://localhost:6379/0")

        with pytest.raises(ConnectionError):
            await store.cardinality("rate_limit:u1")

    @pytest.mark.asyncio
    async def test_exclusive_prune_bound(self, store, mock_redis):
        await store.remove_range_by_score("rate_limit:u1", float("-inf"), 1000, max_exclusive=True)

        mock_redis.zremrangebyscore.assert_awaited_once_with("rate_limit:u1", float("-inf"), "(1000")

    @pytest.mark.asyncio
    async def test_inclusive_prune_bound(self, store, mock_redis):
        await store.remove_range_by_score("rate_limit:u1", 0, 1000)

        mock_redis.zremrangebyscore.assert_awaited_once_with("rate_limit:u1", 0, 1000)

    @pytest.mark.asyncio
    async def test_commands(self, store, mock_redis):
        mock_redis.zcard.return_value = 3

        assert await store.cardinality("rate_limit:u1") == 3
        await store.add("rate_limit:u1", 1700000000000, "nonce-1")
        await store.expire("rate_limit:u1", 65)

        mock_redis.zadd.assert_awaited_once_with("rate_limit:u1", {"nonce-1": 1700000000000})
        mock_redis.expire.assert_awaited_once_with("rate_limit:u1", 65)

    @pytest.mark.asyncio
    async def test_health_check(self, store, mock_redis):
        assert await store.health_check() is True

        mock_redis.ping.side_effect = ConnectionError("down")
        assert await store.health_check() is False
