"""
Call Log Scanner
Orchestrates one scan pass: provider -> normalizer -> client resolver ->
dual-line filter -> dedup engine, then advances the checkpoint.

One pass per owner at a time. A trigger that arrives while that owner's
pass is running is skipped, not queued; the running pass will cover it.
Passes for different owners run concurrently and rely on the dedup
layers for multi-writer safety.
"""
import asyncio
import logging
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from callqueue.core.config import ConfigManager
from callqueue.domain.interfaces.call_log_provider import CallLogProvider
from callqueue.domain.models.scan import LineConfiguration, ScanResult
from callqueue.domain.services.client_resolver import ClientDirectoryError, ClientResolver
from callqueue.domain.services.dedup_engine import DedupEngine, DedupOutcome
from callqueue.domain.services.line_filter import DualLineFilter
from callqueue.domain.services.phone_normalizer import normalize_phone
from callqueue.domain.services.recipient_aggregator import RecipientAggregator
from callqueue.infrastructure.storage.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)


@dataclass
class ScanSettings:
    """Tunables of the scan pipeline (config section `scan`)."""
    full_rescan_days: int = 7
    dedup_bucket_seconds: int = 30
    duplicate_window_seconds: int = 30
    rescan_duplicate_window_seconds: int = 5
    local_timezone: str = "Europe/Warsaw"

    @classmethod
    def from_config(cls, config: ConfigManager) -> "ScanSettings":
        defaults = cls()
        section = config.section("scan")
        values = {}
        for f in fields(cls):
            if section.get(f.name) is not None:
                # env-substituted values arrive as strings
                values[f.name] = type(getattr(defaults, f.name))(section[f.name])
        return cls(**values)


class CallLogScanner:
    """
    Turns device call history into shared call records.

    Usage:
        scanner = CallLogScanner(client_repo, call_repo, checkpoint_store, notifier)
        result = await scanner.scan(owner_id, provider)
    """

    def __init__(
        self,
        client_repository,
        call_repository,
        checkpoint_store: CheckpointStore,
        notifier=None,
        settings: Optional[ScanSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.clients = client_repository
        self.calls = call_repository
        self.checkpoints = checkpoint_store
        self.settings = settings or ScanSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks: Dict[str, asyncio.Lock] = {}

        self.dedup = DedupEngine(
            call_repository,
            RecipientAggregator(call_repository),
            notifier=notifier,
            bucket_seconds=self.settings.dedup_bucket_seconds,
            duplicate_window_seconds=self.settings.duplicate_window_seconds,
            rescan_duplicate_window_seconds=self.settings.rescan_duplicate_window_seconds,
            local_timezone=self.settings.local_timezone,
        )

    def is_scanning(self, owner_id: str) -> bool:
        lock = self._locks.get(owner_id)
        return bool(lock and lock.locked())

    async def scan(
        self,
        owner_id: str,
        provider: CallLogProvider,
        line_config: Optional[LineConfiguration] = None,
        full_rescan: bool = False
    ) -> ScanResult:
        """
        Run one scan pass for owner_id.

        Args:
            owner_id: Team member whose device history is scanned
            provider: Source of call events
            line_config: Dual-line settings of the device
            full_rescan: Re-read the last full_rescan_days ignoring the checkpoint

        Returns:
            ScanResult; never raises for store or provider failures
        """
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        if lock.locked():
            logger.info(f"Scan for {owner_id} already in progress, skipping")
            return ScanResult(owner_id=owner_id, full_rescan=full_rescan, skipped_busy=True)

        async with lock:
            return await self._run_pass(owner_id, provider, line_config, full_rescan)

    async def _run_pass(
        self,
        owner_id: str,
        provider: CallLogProvider,
        line_config: Optional[LineConfiguration],
        full_rescan: bool
    ) -> ScanResult:
        result = ScanResult(owner_id=owner_id, full_rescan=full_rescan)

        if not await provider.has_permission():
            logger.warning(f"Call log permission not granted for {owner_id} ({provider.name})")
            result.permission_granted = False
            return result

        pass_started = self._clock()
        try:
            checkpoint = await self.checkpoints.load(owner_id)
        except Exception as e:
            logger.error(f"Failed to load scan checkpoint for {owner_id}: {e}", exc_info=True)
            result.error = f"checkpoint unavailable: {e}"
            return result
        result.checkpoint_before = checkpoint

        window_start = checkpoint
        if full_rescan:
            window_start = pass_started - timedelta(days=self.settings.full_rescan_days)
            logger.info(f"Full rescan for {owner_id} since {window_start.isoformat()}")

        resolver = ClientResolver(self.clients)
        try:
            await resolver.load()
            events = await provider.load(window_start)
        except ClientDirectoryError as e:
            logger.error(f"Scan for {owner_id} aborted, client directory unavailable: {e.message}")
            result.error = e.message
            return result
        except Exception as e:
            logger.error(f"Scan for {owner_id} aborted, call log unavailable: {e}", exc_info=True)
            result.error = str(e)
            return result

        line_filter = DualLineFilter(line_config)
        earliest_failed: Optional[datetime] = None

        for event in events:
            result.events_seen += 1
            if not event.is_missed:
                continue
            result.missed_events += 1

            if line_filter.should_discard(event):
                result.filtered_by_line += 1
                continue

            normalized = normalize_phone(event.phone_number)
            if not normalized:
                logger.debug("Skipping missed call without a caller number")
                result.unparseable += 1
                continue

            timestamp, skipped = self.dedup.screen(event, checkpoint, full_rescan)
            if skipped == DedupOutcome.SKIPPED_UNPARSEABLE:
                result.unparseable += 1
                continue
            if skipped == DedupOutcome.SKIPPED_ALREADY_PROCESSED:
                result.already_processed += 1
                continue

            client = await resolver.resolve(normalized, event.phone_number)
            outcome = await self.dedup.record(timestamp, owner_id, client, normalized, full_rescan)

            if outcome.outcome == DedupOutcome.CREATED:
                result.created += 1
            elif outcome.outcome == DedupOutcome.DUPLICATE:
                result.duplicates += 1
                if outcome.recipient_added:
                    result.recipients_added += 1
            elif outcome.outcome == DedupOutcome.FAILED:
                result.failed += 1
                if earliest_failed is None or timestamp < earliest_failed:
                    earliest_failed = timestamp

        # failed events must stay after the checkpoint to be read again
        checkpoint_after = pass_started
        if earliest_failed is not None:
            checkpoint_after = min(pass_started, earliest_failed - timedelta(microseconds=1))
            logger.warning(
                f"Scan for {owner_id}: {result.failed} events failed, "
                f"checkpoint held at {checkpoint_after.isoformat()}"
            )

        try:
            await self.checkpoints.save(checkpoint_after, owner_id)
        except Exception as e:
            logger.error(f"Failed to save scan checkpoint for {owner_id}: {e}", exc_info=True)
            result.error = f"checkpoint not saved: {e}"
            return result

        result.checkpoint_after = checkpoint_after
        result.success = True
        logger.info(
            f"Scan for {owner_id} done: {result.missed_events} missed, "
            f"{result.created} created, {result.duplicates} duplicates, {result.failed} failed"
        )
        return result
