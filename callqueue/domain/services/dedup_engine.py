"""
Deduplication Engine
Turns one missed-call event into at most one shared call record.

Several team devices report the same real-world call with slightly
different timestamps. Two layers keep it to one record:
  1. A windowed pre-check for a record of the same caller within
     +/- duplicate window seconds.
  2. An idempotent insert keyed on dedup_key, a 30 second bucket of the
     call time, backed by a unique index.
A hit on either layer adds the scanning owner to the record's recipients.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from callqueue.domain.models.call_event import CallEvent
from callqueue.domain.models.call_record import CallRecord, CallStatus, CallType
from callqueue.domain.models.client import Client
from callqueue.domain.services.recipient_aggregator import RecipientAggregator
from callqueue.domain.services.timestamp_parser import (
    DEFAULT_LOCAL_TIMEZONE,
    parse_call_timestamp,
)

logger = logging.getLogger(__name__)

DEDUP_BUCKET_SECONDS = 30
DUPLICATE_WINDOW_SECONDS = 30
RESCAN_DUPLICATE_WINDOW_SECONDS = 5


class DedupOutcome(str, Enum):
    """What happened to one event"""
    CREATED = "created"
    DUPLICATE = "duplicate"
    SKIPPED_UNPARSEABLE = "skipped_unparseable"
    SKIPPED_ALREADY_PROCESSED = "skipped_already_processed"
    FAILED = "failed"


@dataclass
class DedupResult:
    outcome: DedupOutcome
    record: Optional[CallRecord] = None
    recipient_added: bool = False
    error: Optional[str] = None


def dedup_key(identity: str, timestamp: datetime, bucket_seconds: int = DEDUP_BUCKET_SECONDS) -> str:
    """
    Deterministic key for one caller within one time bucket.

    2024-01-15T10:30:00Z (epoch 1705314600) for client "c1" gives
    "c1_56843820".
    """
    bucket = math.floor(timestamp.timestamp() / bucket_seconds)
    return f"{identity}_{bucket}"


class DedupEngine:
    """
    Records missed calls exactly once across all team devices.

    Usage:
        engine = DedupEngine(call_repository, RecipientAggregator(call_repository))
        result = await engine.process(event, owner_id, client, phone, checkpoint)
    """

    def __init__(
        self,
        call_repository,
        recipient_aggregator: Optional[RecipientAggregator] = None,
        notifier=None,
        bucket_seconds: int = DEDUP_BUCKET_SECONDS,
        duplicate_window_seconds: int = DUPLICATE_WINDOW_SECONDS,
        rescan_duplicate_window_seconds: int = RESCAN_DUPLICATE_WINDOW_SECONDS,
        local_timezone: str = DEFAULT_LOCAL_TIMEZONE
    ):
        """
        Args:
            call_repository: CallRecordRepository
            recipient_aggregator: Defaults to one over call_repository
            notifier: Optional MissedCallNotifier fired for new records
            bucket_seconds: Width of the dedup key time bucket
            duplicate_window_seconds: Pre-check tolerance in normal scans
            rescan_duplicate_window_seconds: Pre-check tolerance in full rescans
            local_timezone: Zone for timestamps without offset
        """
        self.calls = call_repository
        self.recipients = recipient_aggregator or RecipientAggregator(call_repository)
        self.notifier = notifier
        self.bucket_seconds = bucket_seconds
        self.duplicate_window_seconds = duplicate_window_seconds
        self.rescan_duplicate_window_seconds = rescan_duplicate_window_seconds
        self.local_timezone = local_timezone

    def duplicate_window(self, full_rescan: bool = False) -> timedelta:
        """Full rescans use a narrower window so distinct retries survive."""
        seconds = self.rescan_duplicate_window_seconds if full_rescan else self.duplicate_window_seconds
        return timedelta(seconds=seconds)

    def screen(
        self,
        event: CallEvent,
        checkpoint: Optional[datetime] = None,
        full_rescan: bool = False
    ) -> Tuple[Optional[datetime], Optional[DedupOutcome]]:
        """
        Parse the event time and apply the checkpoint gate.

        Returns:
            (timestamp, None) when the event should be recorded, otherwise
            (timestamp or None, skip outcome)
        """
        timestamp = parse_call_timestamp(event.timestamp, self.local_timezone)
        if timestamp is None:
            logger.warning(f"Skipping call from {event.phone_number}: unparseable timestamp {event.timestamp!r}")
            return None, DedupOutcome.SKIPPED_UNPARSEABLE

        if not full_rescan and checkpoint is not None and timestamp <= checkpoint:
            return timestamp, DedupOutcome.SKIPPED_ALREADY_PROCESSED
        return timestamp, None

    async def process(
        self,
        event: CallEvent,
        owner_id: str,
        client: Optional[Client],
        normalized_phone: str,
        checkpoint: Optional[datetime] = None,
        full_rescan: bool = False
    ) -> DedupResult:
        """
        Process one missed-call event.

        Args:
            event: Raw provider event (already known to be missed)
            owner_id: Team member whose device reported the event
            client: Resolved client, None for an anonymous caller
            normalized_phone: Normalized caller number
            checkpoint: Events at or before this are skipped unless full_rescan
            full_rescan: Ignore the checkpoint and use the narrow window

        Returns:
            DedupResult; store failures are reported, not raised
        """
        timestamp, skipped = self.screen(event, checkpoint, full_rescan)
        if skipped:
            return DedupResult(outcome=skipped)
        return await self.record(timestamp, owner_id, client, normalized_phone, full_rescan)

    async def record(
        self,
        timestamp: datetime,
        owner_id: str,
        client: Optional[Client],
        normalized_phone: str,
        full_rescan: bool = False
    ) -> DedupResult:
        """Record a screened event: windowed check, then idempotent insert."""
        client_id = client.id if client else None
        identity = client_id or normalized_phone
        key = dedup_key(identity, timestamp, self.bucket_seconds)

        try:
            window = self.duplicate_window(full_rescan)
            existing = await self.calls.find_in_window(
                client_id=client_id,
                caller_phone=normalized_phone,
                start=timestamp - window,
                end=timestamp + window
            )
            if existing:
                added = await self.recipients.add_recipient(existing, owner_id)
                logger.debug(f"Duplicate of {existing.id} within {window.total_seconds():.0f}s ({key})")
                return DedupResult(outcome=DedupOutcome.DUPLICATE, record=existing, recipient_added=added)

            row = {
                "client_id": client_id,
                "caller_phone": normalized_phone,
                "status": CallStatus.MISSED.value,
                "type": CallType.MISSED.value,
                "timestamp": timestamp.isoformat(),
                "recipients": [owner_id],
                "dedup_key": key,
            }
            created = await self.calls.insert_if_absent(row)

            if created is None:
                # Another device inserted the same bucket first
                existing = await self.calls.find_by_dedup_key(key)
                added = False
                if existing:
                    added = await self.recipients.add_recipient(existing, owner_id)
                return DedupResult(outcome=DedupOutcome.DUPLICATE, record=existing, recipient_added=added)

        except Exception as e:
            logger.error(f"Failed to record call from {normalized_phone} ({key}): {e}", exc_info=True)
            return DedupResult(outcome=DedupOutcome.FAILED, error=str(e))

        logger.info(f"Created call record {created.id} for {identity}")
        await self._notify(created, client, normalized_phone)
        return DedupResult(outcome=DedupOutcome.CREATED, record=created)

    async def _notify(self, record: CallRecord, client: Optional[Client], phone: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify_missed_call(
                client_name=client.name if client else None,
                phone=client.phone if client else phone,
                client_id=record.client_id,
                record_id=record.id
            )
        except Exception as e:
            logger.warning(f"Missed-call notification failed for {record.id}: {e}")
