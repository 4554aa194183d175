"""
Recipient Aggregator
Folds another team member into an existing shared call record.

When several devices observe the same missed call, the record is kept
once and every observer is appended to its recipients. The append runs
in the store as one statement, so two devices adding themselves at the
same moment both end up listed.
"""
import logging
from typing import List, Optional, Sequence

from callqueue.domain.models.call_record import CallRecord

logger = logging.getLogger(__name__)


def merge_recipients(current: Optional[Sequence[str]], actor_id: str) -> List[str]:
    """Append actor_id unless already present; order is preserved."""
    recipients = list(current or [])
    if actor_id and actor_id not in recipients:
        recipients.append(actor_id)
    return recipients


class RecipientAggregator:
    """Appends scan owners to the recipients of existing records."""

    def __init__(self, call_repository):
        """
        Args:
            call_repository: CallRecordRepository used to persist recipients
        """
        self.calls = call_repository

    async def add_recipient(self, record: CallRecord, actor_id: str) -> bool:
        """
        Add actor_id to record.recipients.

        Returns:
            True if the record changed, False if actor was already a recipient
        """
        if not actor_id or actor_id in record.recipients:
            return False

        stored = await self.calls.append_recipient(record.id, actor_id)
        record.recipients = merge_recipients(stored or record.recipients, actor_id)

        logger.info(f"Added recipient {actor_id} to call {record.id} ({len(record.recipients)} total)")
        return True
