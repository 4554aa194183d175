"""
Batch call-log provider.

Wraps call events a device uploaded with a scan request. The device has
already been granted call-log access when it sends a batch.
"""
import logging
from datetime import datetime
from typing import List, Sequence

from callqueue.domain.interfaces.call_log_provider import CallLogProvider
from callqueue.domain.models.call_event import CallEvent
from callqueue.domain.services.timestamp_parser import (
    DEFAULT_LOCAL_TIMEZONE,
    parse_call_timestamp,
)

logger = logging.getLogger(__name__)


class BatchCallLogProvider(CallLogProvider):

    def __init__(
        self,
        events: Sequence[CallEvent],
        permission_granted: bool = True,
        local_timezone: str = DEFAULT_LOCAL_TIMEZONE
    ):
        self.events = list(events)
        self.permission_granted = permission_granted
        self.local_timezone = local_timezone

    @property
    def name(self) -> str:
        return "batch"

    async def has_permission(self) -> bool:
        return self.permission_granted

    async def load(self, min_timestamp: datetime) -> List[CallEvent]:
        """
        Events at or after min_timestamp.

        Events whose timestamp cannot be parsed are passed through so the
        scanner can count them.
        """
        kept: List[CallEvent] = []
        for event in self.events:
            parsed = parse_call_timestamp(event.timestamp, self.local_timezone)
            if parsed is None or parsed >= min_timestamp:
                kept.append(event)

        logger.debug(f"Batch provider: {len(kept)}/{len(self.events)} events in window")
        return kept
