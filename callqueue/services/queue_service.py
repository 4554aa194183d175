"""
Queue Service
Read path of the shared queue and the workflow actions on it.

Every write is conditional on the status the transition started from, so
when two agents act on the same call at once the second write matches no
row and is reported as a conflict instead of overwriting the first.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from callqueue.domain.models.call_group import CallGroup
from callqueue.domain.models.call_record import CallRecord, CallStatus, WorkflowState
from callqueue.domain.models.client import Client
from callqueue.domain.models.note import Note
from callqueue.domain.services import lifecycle
from callqueue.domain.services.grouping import DEFAULT_SLA_MINUTES, group_call_records
from callqueue.domain.services.lifecycle import TransitionResult
from callqueue.domain.services.note_merge import NoteMergeResolver
from callqueue.domain.services.phone_normalizer import normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_FETCH_LIMIT = 200


class CallNotFoundError(Exception):
    """Raised when a call record does not exist."""
    def __init__(self, message: str = "Call not found."):
        self.message = message
        super().__init__(self.message)


class CallNotCompletedError(Exception):
    """Raised when a note is attached to a call that is not completed."""
    def __init__(self, message: str = "Only completed calls take notes."):
        self.message = message
        super().__init__(self.message)


@dataclass
class GroupActionResult:
    """Outcome of a workflow action applied to every call of one caller."""
    action: str
    client_id: Optional[str] = None
    caller_phone: Optional[str] = None
    applied_ids: List[str] = field(default_factory=list)
    rejected: Dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.applied_ids)


@dataclass
class NoteResult:
    note: Note
    merged_ids: List[str] = field(default_factory=list)


class QueueService:
    """
    Queue screens: open calls grouped by caller, calls awaiting a note,
    and the per-client timeline.
    """

    def __init__(
        self,
        call_repository,
        client_repository,
        note_repository,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        sla_minutes: int = DEFAULT_SLA_MINUTES,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.calls = call_repository
        self.clients = client_repository
        self.notes = note_repository
        self.fetch_limit = fetch_limit
        self.sla_minutes = sla_minutes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _client_map(self) -> Dict[str, Client]:
        return {client.id: client for client in await self.clients.list_all()}

    async def get_queue(self) -> List[CallGroup]:
        """Missed and reserved calls grouped by caller, most urgent first."""
        records = await self.calls.list_queue(limit=self.fetch_limit)
        clients = await self._client_map() if records else {}
        return group_call_records(
            records,
            now=self._clock(),
            clients=clients,
            sla_minutes=self.sla_minutes,
        )

    async def reserved_by(self, actor_id: str) -> List[CallRecord]:
        return await self.calls.list_reserved_by(actor_id)

    async def pending_notes(self) -> List[CallRecord]:
        """Completed calls still waiting for a note (or a skip)."""
        records = await self.calls.list_completed(limit=self.fetch_limit)
        noted = await self.notes.call_ids_with_notes([r.id for r in records])
        pending = []
        for record in records:
            record.has_note = record.id in noted
            if record.needs_note:
                pending.append(record)
        return pending

    async def client_timeline(self, client_id: str) -> List[CallRecord]:
        """Every call of one client, newest first, with note flags."""
        records = await self.calls.list_for_identity(client_id=client_id)
        noted = await self.notes.call_ids_with_notes([r.id for r in records])
        for record in records:
            record.has_note = record.id in noted
        return records

    async def clear_queue(self) -> int:
        deleted = await self.calls.delete_all()
        logger.warning(f"Cleared call queue ({deleted} records deleted)")
        return deleted


class LifecycleService:
    """
    Persists lifecycle transitions for single calls and caller groups.

    Usage:
        service = LifecycleService(call_repo, note_repo)
        result = await service.reserve_group(agent_id, client_id=client_id)
    """

    def __init__(
        self,
        call_repository,
        note_repository,
        merge_resolver: Optional[NoteMergeResolver] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.calls = call_repository
        self.notes = note_repository
        self.merge_resolver = merge_resolver or NoteMergeResolver(call_repository, note_repository)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _get(self, call_id: str) -> CallRecord:
        record = await self.calls.get(call_id)
        if record is None:
            raise CallNotFoundError(f"Call {call_id} not found")
        return record

    async def _persist(self, record: CallRecord, transition: TransitionResult) -> TransitionResult:
        if not transition.applied:
            return transition

        updated = await self.calls.apply_transition(
            record.id, transition.changes, transition.expected_status
        )
        if updated is None:
            logger.info(f"Call {record.id} changed concurrently, transition dropped")
            return TransitionResult(applied=False, reason="conflict")
        return transition

    async def reserve(self, call_id: str, actor_id: str) -> TransitionResult:
        record = await self._get(call_id)
        return await self._persist(record, lifecycle.reserve(record, actor_id, self._clock()))

    async def complete(self, call_id: str) -> TransitionResult:
        record = await self._get(call_id)
        return await self._persist(record, lifecycle.complete(record))

    async def release(self, call_id: str) -> TransitionResult:
        record = await self._get(call_id)
        return await self._persist(record, lifecycle.release(record))

    async def skip(self, call_id: str) -> TransitionResult:
        """Close a completed call without a note."""
        record = await self._get(call_id)
        noted = await self.notes.call_ids_with_notes([record.id])
        return await self._persist(record, lifecycle.skip(record, has_note=record.id in noted))

    async def _apply_to_group(
        self,
        action: str,
        status: CallStatus,
        transition: Callable[[CallRecord], TransitionResult],
        client_id: Optional[str],
        caller_phone: Optional[str]
    ) -> GroupActionResult:
        phone = normalize_phone(caller_phone) if caller_phone and not client_id else None
        result = GroupActionResult(action=action, client_id=client_id, caller_phone=phone)

        records = await self.calls.list_for_identity(
            client_id=client_id,
            caller_phone=phone,
            statuses=[status]
        )
        for record in records:
            outcome = await self._persist(record, transition(record))
            if outcome.applied:
                result.applied_ids.append(record.id)
            else:
                result.rejected[record.id] = outcome.reason or "rejected"

        logger.info(
            f"{action} for {client_id or phone}: {len(result.applied_ids)} applied, "
            f"{len(result.rejected)} rejected"
        )
        return result

    async def reserve_group(
        self,
        actor_id: str,
        client_id: Optional[str] = None,
        caller_phone: Optional[str] = None
    ) -> GroupActionResult:
        """Reserve every missed call of one caller for actor_id."""
        now = self._clock()
        return await self._apply_to_group(
            "reserve",
            CallStatus.MISSED,
            lambda record: lifecycle.reserve(record, actor_id, now),
            client_id,
            caller_phone,
        )

    async def complete_group(
        self,
        client_id: Optional[str] = None,
        caller_phone: Optional[str] = None
    ) -> GroupActionResult:
        """Complete every reserved call of one caller."""
        return await self._apply_to_group(
            "complete", CallStatus.RESERVED, lifecycle.complete, client_id, caller_phone
        )

    async def release_group(
        self,
        client_id: Optional[str] = None,
        caller_phone: Optional[str] = None
    ) -> GroupActionResult:
        """Put every reserved call of one caller back in the queue."""
        return await self._apply_to_group(
            "release", CallStatus.RESERVED, lifecycle.release, client_id, caller_phone
        )

    async def add_text_note(
        self,
        call_id: str,
        content: str,
        created_by: Optional[str] = None
    ) -> NoteResult:
        """
        Attach a text note to a completed call and merge its note-less siblings.

        call_count on the note is the number of calls it covers.
        """
        record = await self._get(call_id)
        if record.state != WorkflowState.COMPLETED:
            raise CallNotCompletedError(f"Call {call_id} is {record.state.value}, only completed calls take notes")
        candidates = await self.merge_resolver.find_candidates(record)

        note = await self.notes.create_text_note(
            call_log_id=record.id,
            content=content,
            created_by=created_by,
            call_count=1 + len(candidates),
        )
        record.has_note = True

        merged_ids = await self.merge_resolver.merge_siblings(record, candidates)
        return NoteResult(note=note, merged_ids=merged_ids)
