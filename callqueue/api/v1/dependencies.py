"""
API Dependencies
Shared dependencies for Supabase access, agent identity and services
"""
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException, status
from supabase import Client, create_client

from callqueue.core.config import ConfigManager, get_config, get_settings
from callqueue.infrastructure.notifications.expo_push import EXPO_PUSH_URL, ExpoPushNotifier
from callqueue.infrastructure.storage.checkpoint_store import (
    DEFAULT_CHECKPOINT_KEY,
    INITIAL_WINDOW_HOURS,
    CheckpointStore,
    InMemoryCheckpointStore,
    RedisCheckpointStore,
)
from callqueue.infrastructure.storage.supabase_repository import (
    CallRecordRepository,
    ClientRepository,
    NoteRepository,
)
from callqueue.services.call_scanner import CallLogScanner, ScanSettings
from callqueue.services.queue_service import LifecycleService, QueueService

load_dotenv()


def get_supabase() -> Client:
    """
    Get Supabase client with validation.

    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")

    if not url:
        raise RuntimeError(
            "SUPABASE_URL is not configured. "
            "Set SUPABASE_URL environment variable."
        )
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set SUPABASE_SERVICE_KEY environment variable."
        )

    return create_client(url, key)


async def get_current_agent(
    agent_id: Optional[str] = Header(None, alias="X-Agent-Id")
) -> str:
    """
    Team member performing the request.

    Authentication happens in front of this service; it forwards the
    agent id in the X-Agent-Id header.
    """
    if not agent_id or not agent_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Agent-Id header missing",
        )
    return agent_id.strip()


def get_client_repository(supabase: Client = Depends(get_supabase)) -> ClientRepository:
    return ClientRepository(supabase)


def get_call_repository(supabase: Client = Depends(get_supabase)) -> CallRecordRepository:
    return CallRecordRepository(supabase)


def get_note_repository(supabase: Client = Depends(get_supabase)) -> NoteRepository:
    return NoteRepository(supabase)


def get_queue_service(
    calls: CallRecordRepository = Depends(get_call_repository),
    clients: ClientRepository = Depends(get_client_repository),
    notes: NoteRepository = Depends(get_note_repository),
    config: ConfigManager = Depends(get_config)
) -> QueueService:
    return QueueService(
        calls,
        clients,
        notes,
        fetch_limit=int(config.get("queue.fetch_limit", 200)),
        sla_minutes=int(config.get("queue.sla_minutes", 60)),
    )


def get_lifecycle_service(
    calls: CallRecordRepository = Depends(get_call_repository),
    notes: NoteRepository = Depends(get_note_repository)
) -> LifecycleService:
    return LifecycleService(calls, notes)


_checkpoint_store: Optional[CheckpointStore] = None


def get_checkpoint_store(config: ConfigManager = Depends(get_config)) -> CheckpointStore:
    """Redis-backed when REDIS_URL is set, otherwise process memory."""
    global _checkpoint_store
    if _checkpoint_store is None:
        window = int(config.get("scan.initial_window_hours", INITIAL_WINDOW_HOURS))
        if os.getenv("REDIS_URL"):
            _checkpoint_store = RedisCheckpointStore(
                redis_url=get_settings().redis_url,
                key=config.get("redis.checkpoint_key", DEFAULT_CHECKPOINT_KEY),
                initial_window_hours=window,
            )
        else:
            _checkpoint_store = InMemoryCheckpointStore(initial_window_hours=window)
    return _checkpoint_store


_scanner: Optional[CallLogScanner] = None


def get_call_scanner(
    supabase: Client = Depends(get_supabase),
    checkpoints: CheckpointStore = Depends(get_checkpoint_store),
    config: ConfigManager = Depends(get_config)
) -> CallLogScanner:
    """
    Process-wide scanner.

    A single instance holds the per-owner locks that keep scan passes of
    one device from overlapping across requests.
    """
    global _scanner
    if _scanner is None:
        notifier = None
        if config.get_bool("notifications.enabled", True):
            notifier = ExpoPushNotifier(
                supabase,
                push_url=config.get("notifications.expo_push_url", EXPO_PUSH_URL),
            )
        _scanner = CallLogScanner(
            ClientRepository(supabase),
            CallRecordRepository(supabase),
            checkpoints,
            notifier=notifier,
            settings=ScanSettings.from_config(config),
        )
    return _scanner


async def close_resources() -> None:
    """Release process-wide connections on shutdown."""
    global _checkpoint_store, _scanner
    if isinstance(_checkpoint_store, RedisCheckpointStore):
        await _checkpoint_store.close()
    _checkpoint_store = None
    _scanner = None
