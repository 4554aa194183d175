"""
Note Merge Resolver
Folds a caller's earlier note-less completed calls into the noted one.
"""
import logging
from typing import Iterable, List, Optional, Set

from callqueue.domain.models.call_record import CallRecord, CallStatus, CallType

logger = logging.getLogger(__name__)


def select_merge_candidates(
    noted: CallRecord,
    siblings: Iterable[CallRecord],
    noted_ids: Set[str]
) -> List[CallRecord]:
    """
    Records to merge into noted.

    A sibling qualifies when it shares the caller identity, is completed
    with type still completed, has no note and is not noted itself.
    """
    identity = noted.identity
    if not identity:
        return []

    return [
        record for record in siblings
        if record.id != noted.id
        and record.identity == identity
        and record.status == CallStatus.COMPLETED
        and record.type == CallType.COMPLETED
        and record.id not in noted_ids
        and not record.has_note
    ]


class NoteMergeResolver:
    """Marks sibling calls as merged after a note is saved."""

    def __init__(self, call_repository, note_repository):
        self.calls = call_repository
        self.notes = note_repository

    async def find_candidates(self, record: CallRecord) -> List[CallRecord]:
        """Note-less completed siblings of record."""
        siblings = await self.calls.list_for_identity(
            client_id=record.client_id,
            caller_phone=None if record.client_id else record.caller_phone,
            statuses=[CallStatus.COMPLETED]
        )
        sibling_ids = [s.id for s in siblings if s.id != record.id]
        noted_ids = await self.notes.call_ids_with_notes(sibling_ids)
        return select_merge_candidates(record, siblings, noted_ids)

    async def merge_siblings(
        self,
        record: CallRecord,
        candidates: Optional[List[CallRecord]] = None
    ) -> List[str]:
        """
        Merge record's note-less completed siblings into it.

        Args:
            record: The call that just received a note
            candidates: Precomputed find_candidates() result

        Returns:
            Ids of the merged records
        """
        if candidates is None:
            candidates = await self.find_candidates(record)

        merged_ids = [c.id for c in candidates]
        if not merged_ids:
            return []

        await self.calls.mark_merged(merged_ids, record.id)
        logger.info(f"Merged {len(merged_ids)} calls into {record.id}")
        return merged_ids
