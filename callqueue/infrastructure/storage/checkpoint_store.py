"""
Scan Checkpoint Store
Persists the time of the last successful scan pass.

The checkpoint is advanced to "now" when a pass completes, not to the
newest call seen, so device clock skew cannot pin the window.

Keys:
- call_scan:last_checkpoint - single-device deployments
- call_scan:last_checkpoint:{owner_id} - one checkpoint per scanning owner
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_KEY = "call_scan:last_checkpoint"
INITIAL_WINDOW_HOURS = 24


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckpointStore(ABC):
    """Abstract base class for checkpoint persistence."""

    def __init__(self, initial_window_hours: int = INITIAL_WINDOW_HOURS):
        self.initial_window = timedelta(hours=initial_window_hours)

    @abstractmethod
    async def _read(self, owner_id: Optional[str]) -> Optional[datetime]:
        pass

    @abstractmethod
    async def _write(self, owner_id: Optional[str], value: datetime) -> None:
        pass

    async def load(self, owner_id: Optional[str] = None) -> datetime:
        """
        Last checkpoint; on first use, now minus the initial window.
        """
        stored = await self._read(owner_id)
        if stored is None:
            return _utcnow() - self.initial_window
        return stored

    async def save(self, value: datetime, owner_id: Optional[str] = None) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        await self._write(owner_id, value)


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoint held in process memory (tests, single-process runs)."""

    def __init__(
        self,
        initial: Optional[Dict[Optional[str], datetime]] = None,
        initial_window_hours: int = INITIAL_WINDOW_HOURS
    ):
        super().__init__(initial_window_hours)
        self._values: Dict[Optional[str], datetime] = dict(initial or {})

    async def _read(self, owner_id: Optional[str]) -> Optional[datetime]:
        return self._values.get(owner_id)

    async def _write(self, owner_id: Optional[str], value: datetime) -> None:
        self._values[owner_id] = value


class RedisCheckpointStore(CheckpointStore):
    """
    Checkpoint stored in Redis as an ISO-8601 string.

    Usage:
        store = RedisCheckpointStore(redis_url="redis://localhost:6379")
        checkpoint = await store.load(owner_id)
    """

    def __init__(
        self,
        redis_client=None,
        redis_url: str = "redis://localhost:6379",
        key: str = DEFAULT_CHECKPOINT_KEY,
        initial_window_hours: int = INITIAL_WINDOW_HOURS
    ):
        super().__init__(initial_window_hours)
        self._redis = redis_client
        self._redis_url = redis_url
        self.key = key

    async def _client(self):
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            logger.info(f"Checkpoint store connected to Redis: {self._redis_url}")
        return self._redis

    def key_for(self, owner_id: Optional[str]) -> str:
        return f"{self.key}:{owner_id}" if owner_id else self.key

    async def _read(self, owner_id: Optional[str]) -> Optional[datetime]:
        client = await self._client()
        raw = await client.get(self.key_for(owner_id))
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed checkpoint {raw!r} at {self.key_for(owner_id)}")
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    async def _write(self, owner_id: Optional[str], value: datetime) -> None:
        client = await self._client()
        await client.set(self.key_for(owner_id), value.isoformat())

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()
            self._redis = None
