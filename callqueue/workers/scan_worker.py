"""
Scan Worker
Background worker that periodically scans call-log exports

Run as separate process:
    python -m callqueue.workers.scan_worker
"""
import asyncio
import logging
import os
import signal
from typing import Optional

from dotenv import load_dotenv
from supabase import create_client, Client

from callqueue.core.config import ConfigManager, get_settings
from callqueue.domain.models.scan import LineConfiguration, ScanResult
from callqueue.infrastructure.calllog.xml_backup_provider import BackupXmlCallLogProvider
from callqueue.infrastructure.notifications.expo_push import EXPO_PUSH_URL, ExpoPushNotifier
from callqueue.infrastructure.storage.checkpoint_store import (
    DEFAULT_CHECKPOINT_KEY,
    INITIAL_WINDOW_HOURS,
    RedisCheckpointStore,
)
from callqueue.infrastructure.storage.supabase_repository import (
    CallRecordRepository,
    ClientRepository,
)
from callqueue.services.call_scanner import CallLogScanner, ScanSettings

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Configure logging for worker
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class ScanWorker:
    """
    Runs scan passes over a directory of call-log exports.

    Responsibilities:
    - Scan CALL_LOG_DIR for SCAN_OWNER_ID every scan.interval_minutes
    - Persist the checkpoint in Redis
    - Back off after consecutive failed passes
    """

    MAX_CONSECUTIVE_ERRORS = 10

    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or ConfigManager()
        self.settings = get_settings()

        self.interval_seconds = float(self.config.get("scan.interval_minutes", 5)) * 60
        self.line_config = LineConfiguration(
            has_multiple_lines=self.config.get_bool("scan.has_multiple_lines"),
            business_line_id=self.config.get("scan.business_line_id"),
        )

        self.running = False
        self._stop_event = asyncio.Event()
        self._supabase: Optional[Client] = None
        self._checkpoints: Optional[RedisCheckpointStore] = None
        self.scanner: Optional[CallLogScanner] = None

        self._passes = 0
        self._passes_failed = 0

    def initialize(self) -> None:
        """Connect to Supabase and build the scanner."""
        logger.info("Initializing Scan Worker...")

        if not self.settings.call_log_dir or not self.settings.scan_owner_id:
            raise RuntimeError("CALL_LOG_DIR and SCAN_OWNER_ID must be set")

        supabase_url = os.getenv("SUPABASE_URL")
        supabase_key = os.getenv("SUPABASE_SERVICE_KEY")
        if not supabase_url or not supabase_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

        self._supabase = create_client(supabase_url, supabase_key)
        self._checkpoints = RedisCheckpointStore(
            redis_url=self.settings.redis_url,
            key=self.config.get("redis.checkpoint_key", DEFAULT_CHECKPOINT_KEY),
            initial_window_hours=int(self.config.get("scan.initial_window_hours", INITIAL_WINDOW_HOURS)),
        )

        notifier = None
        if self.config.get_bool("notifications.enabled", True):
            notifier = ExpoPushNotifier(
                self._supabase,
                push_url=self.config.get("notifications.expo_push_url", EXPO_PUSH_URL),
            )

        self.scanner = CallLogScanner(
            ClientRepository(self._supabase),
            CallRecordRepository(self._supabase),
            self._checkpoints,
            notifier=notifier,
            settings=ScanSettings.from_config(self.config),
        )
        logger.info("Scan Worker initialized successfully")

    async def scan_once(self) -> ScanResult:
        provider = BackupXmlCallLogProvider(self.settings.call_log_dir)
        result = await self.scanner.scan(
            self.settings.scan_owner_id,
            provider,
            line_config=self.line_config,
        )
        self._passes += 1
        if not result.success:
            self._passes_failed += 1
        return result

    async def run(self) -> None:
        """Main worker loop."""
        self.initialize()

        self.running = True
        consecutive_errors = 0

        logger.info(f"Scan Worker started - scanning every {self.interval_seconds:.0f}s")

        while self.running:
            delay = self.interval_seconds
            try:
                result = await self.scan_once()
                if result.success or result.skipped_busy:
                    consecutive_errors = 0
                else:
                    consecutive_errors += 1
                    logger.error(f"Scan pass failed ({consecutive_errors}): {result.error}")
            except asyncio.CancelledError:
                logger.info("Worker received cancellation signal")
                break
            except Exception as e:
                consecutive_errors += 1
                logger.error(f"Worker error ({consecutive_errors}): {e}", exc_info=True)

            if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                logger.critical("Too many consecutive errors, stopping worker")
                break
            if consecutive_errors:
                delay = min(5 * consecutive_errors, 60)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        await self.shutdown()

    def stop(self) -> None:
        self.running = False
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        logger.info("Shutting down Scan Worker...")
        self.running = False

        if self._checkpoints:
            await self._checkpoints.close()

        logger.info(
            f"Scan Worker shutdown complete. "
            f"Passes: {self._passes}, Failed: {self._passes_failed}"
        )


async def main():
    """Entry point for running the scan worker as separate process."""
    worker = ScanWorker()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        worker.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    asyncio.run(main())
