"""
Unit Tests for Scan Checkpoint Stores
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from callqueue.infrastructure.storage.checkpoint_store import (
    InMemoryCheckpointStore,
    RedisCheckpointStore,
)

T0 = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class TestInMemoryCheckpointStore:
    """Tests for InMemoryCheckpointStore"""

    @pytest.mark.asyncio
    async def test_first_load_is_initial_window(self):
        store = InMemoryCheckpointStore()

        before = datetime.now(timezone.utc)
        checkpoint = await store.load("alice")
        after = datetime.now(timezone.utc)

        assert before - timedelta(hours=24) <= checkpoint <= after - timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_custom_initial_window(self):
        store = InMemoryCheckpointStore(initial_window_hours=2)

        checkpoint = await store.load()

        assert datetime.now(timezone.utc) - checkpoint < timedelta(hours=2, minutes=1)

    @pytest.mark.asyncio
    async def test_save_and_load_per_owner(self):
        store = InMemoryCheckpointStore()

        await store.save(T0, "alice")

        assert await store.load("alice") == T0
        assert await store.load("bob") != T0

    @pytest.mark.asyncio
    async def test_naive_value_saved_as_utc(self):
        store = InMemoryCheckpointStore()

        await store.save(datetime(2024, 1, 15, 10, 30))

        assert await store.load() == T0


class TestRedisCheckpointStore:
    """Tests for RedisCheckpointStore with a mocked client"""

    def test_key_for(self):
        store = RedisCheckpointStore(redis_client=AsyncMock())

        assert store.key_for(None) == "call_scan:last_checkpoint"
        assert store.key_for("alice") == "call_scan:last_checkpoint:alice"

    @pytest.mark.asyncio
    async def test_load_parses_iso(self):
        client = AsyncMock()
        client.get.return_value = "2024-01-15T10:30:00+00:00"
        store = RedisCheckpointStore(redis_client=client)

        assert await store.load("alice") == T0
        client.get.assert_awaited_once_with("call_scan:last_checkpoint:alice")

    @pytest.mark.asyncio
    async def test_load_bytes_value(self):
        client = AsyncMock()
        client.get.return_value = b"2024-01-15T10:30:00"
        store = RedisCheckpointStore(redis_client=client)

        assert await store.load() == T0

    @pytest.mark.asyncio
    async def test_missing_or_malformed_falls_back_to_initial_window(self):
        client = AsyncMock()
        client.get.side_effect = [None, "not a date"]
        store = RedisCheckpointStore(redis_client=client, initial_window_hours=1)

        for _ in range(2):
            checkpoint = await store.load()
            assert datetime.now(timezone.utc) - checkpoint < timedelta(hours=1, minutes=1)

    @pytest.mark.asyncio
    async def test_save_writes_iso(self):
        client = AsyncMock()
        store = RedisCheckpointStore(redis_client=client, key="scan:test")

        await store.save(T0, "alice")

        client.set.assert_awaited_once_with("scan:test:alice", "2024-01-15T10:30:00+00:00")

    @pytest.mark.asyncio
    async def test_close(self):
        client = AsyncMock()
        store = RedisCheckpointStore(redis_client=client)

        await store.close()

        client.close.assert_awaited_once()
