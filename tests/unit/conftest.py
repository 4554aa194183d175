"""
Shared fixtures: in-memory stand-ins for the Supabase repositories.

They mirror the repository contracts (conditional updates, ignore-on-
conflict inserts) closely enough to drive the services end to end.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from callqueue.domain.models.call_record import CallRecord, CallStatus, CallType
from callqueue.domain.models.client import Client
from callqueue.domain.models.note import Note
from callqueue.infrastructure.storage.supabase_repository import StoreError


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class InMemoryClientRepository:

    def __init__(self, clients: Optional[List[Client]] = None):
        self.rows: Dict[str, Client] = {c.id: c for c in clients or []}
        self.fail_list = False
        self.fail_create = False
        self.created: List[Client] = []

    async def list_all(self) -> List[Client]:
        if self.fail_list:
            raise StoreError("clients unavailable")
        return list(self.rows.values())

    async def get(self, client_id: str) -> Optional[Client]:
        return self.rows.get(client_id)

    async def find_by_phone(self, phone: str) -> Optional[Client]:
        for client in self.rows.values():
            if client.phone == phone:
                return client
        return None

    async def create(self, phone, name=None, address=None, notes=None) -> Client:
        if self.fail_create:
            raise StoreError("insert failed")
        existing = await self.find_by_phone(phone)
        if existing:
            return existing
        client = Client(id=f"client-{uuid.uuid4().hex[:8]}", phone=phone, name=name,
                        address=address, notes=notes)
        self.rows[client.id] = client
        self.created.append(client)
        return client


class InMemoryCallRepository:

    def __init__(self, records: Optional[List[CallRecord]] = None):
        self.rows: Dict[str, Dict[str, Any]] = {}
        for record in records or []:
            self.rows[record.id] = record.to_row()
        self.insert_attempts = 0
        self.fail_insert = False

    def _record(self, row: Dict[str, Any]) -> CallRecord:
        return CallRecord.from_row(dict(row))

    def add(self, *records: CallRecord) -> None:
        for record in records:
            self.rows[record.id] = record.to_row()

    def record(self, call_id: str) -> CallRecord:
        return self._record(self.rows[call_id])

    def _matches_identity(self, row, client_id, caller_phone) -> bool:
        if client_id:
            return row.get("client_id") == client_id
        return row.get("caller_phone") == caller_phone

    async def insert_if_absent(self, row: Dict[str, Any]) -> Optional[CallRecord]:
        self.insert_attempts += 1
        if self.fail_insert:
            raise StoreError("insert failed")
        if any(r.get("dedup_key") == row["dedup_key"] for r in self.rows.values()):
            return None
        stored = dict(row)
        stored["id"] = f"call-{uuid.uuid4().hex[:8]}"
        self.rows[stored["id"]] = stored
        return self._record(stored)

    async def get(self, call_id: str) -> Optional[CallRecord]:
        row = self.rows.get(call_id)
        return self._record(row) if row else None

    async def find_by_dedup_key(self, dedup_key: str) -> Optional[CallRecord]:
        for row in self.rows.values():
            if row.get("dedup_key") == dedup_key:
                return self._record(row)
        return None

    async def find_in_window(self, client_id, caller_phone, start, end) -> Optional[CallRecord]:
        for row in sorted(self.rows.values(), key=lambda r: _as_datetime(r["timestamp"])):
            if self._matches_identity(row, client_id, caller_phone) and \
                    start <= _as_datetime(row["timestamp"]) <= end:
                return self._record(row)
        return None

    async def append_recipient(self, call_id: str, recipient: str) -> List[str]:
        recipients = self.rows[call_id].setdefault("recipients", [])
        if recipient not in recipients:
            recipients.append(recipient)
        return list(recipients)

    def _sorted(self, rows) -> List[CallRecord]:
        return [self._record(r) for r in sorted(rows, key=lambda r: _as_datetime(r["timestamp"]), reverse=True)]

    async def list_queue(self, limit: int = 200) -> List[CallRecord]:
        rows = [
            r for r in self.rows.values()
            if r["status"] in (CallStatus.MISSED.value, CallStatus.RESERVED.value)
            and r["type"] != CallType.MERGED.value
        ]
        return self._sorted(rows)[:limit]

    async def list_for_identity(self, client_id=None, caller_phone=None, statuses=None) -> List[CallRecord]:
        if not client_id and not caller_phone:
            return []
        wanted = {s.value for s in statuses} if statuses else None
        rows = [
            r for r in self.rows.values()
            if self._matches_identity(r, client_id, caller_phone)
            and (wanted is None or r["status"] in wanted)
        ]
        return self._sorted(rows)

    async def list_reserved_by(self, actor_id: str) -> List[CallRecord]:
        rows = [
            r for r in self.rows.values()
            if r["status"] == CallStatus.RESERVED.value and r.get("reservation_by") == actor_id
        ]
        return self._sorted(rows)

    async def list_completed(self, limit: int = 200) -> List[CallRecord]:
        rows = [
            r for r in self.rows.values()
            if r["status"] == CallStatus.COMPLETED.value and r["type"] == CallType.COMPLETED.value
        ]
        return self._sorted(rows)[:limit]

    async def apply_transition(self, call_id, changes, expected_status) -> Optional[CallRecord]:
        row = self.rows.get(call_id)
        if row is None or row["status"] != expected_status.value:
            return None
        row.update(changes)
        return self._record(row)

    async def mark_merged(self, call_ids: List[str], merged_into_id: str) -> None:
        for call_id in call_ids:
            self.rows[call_id]["type"] = CallType.MERGED.value
            self.rows[call_id]["merged_into_id"] = merged_into_id

    async def delete_all(self) -> int:
        count = len(self.rows)
        self.rows.clear()
        return count


class InMemoryNoteRepository:

    def __init__(self, noted_call_ids: Optional[List[str]] = None):
        self.notes: List[Note] = [
            Note(id=f"note-{i}", call_log_id=call_id)
            for i, call_id in enumerate(noted_call_ids or [])
        ]

    def mark_noted(self, call_id: str) -> None:
        self.notes.append(Note(id=f"note-{len(self.notes)}", call_log_id=call_id))

    async def call_ids_with_notes(self, call_ids: List[str]) -> set:
        noted = {n.call_log_id for n in self.notes}
        return {c for c in call_ids if c in noted}

    async def create_text_note(self, call_log_id, content, created_by=None, call_count=1) -> Note:
        note = Note(
            id=f"note-{uuid.uuid4().hex[:8]}",
            call_log_id=call_log_id,
            transcription=content,
            created_by=created_by,
            call_count=call_count,
            created_at=datetime.now(timezone.utc),
        )
        self.notes.append(note)
        return note


def make_record(
    id: str,
    timestamp: datetime,
    status: CallStatus = CallStatus.MISSED,
    type: Optional[CallType] = None,
    client_id: Optional[str] = None,
    caller_phone: Optional[str] = None,
    recipients: Optional[List[str]] = None,
    **extra
) -> CallRecord:
    """CallRecord with sensible defaults for tests."""
    if type is None:
        type = CallType.COMPLETED if status == CallStatus.COMPLETED else CallType.MISSED
    return CallRecord(
        id=id,
        timestamp=timestamp,
        status=status,
        type=type,
        client_id=client_id,
        caller_phone=caller_phone,
        recipients=recipients or [],
        **extra
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def client_repo():
    return InMemoryClientRepository()


@pytest.fixture
def call_repo():
    return InMemoryCallRepository()


@pytest.fixture
def note_repo():
    return InMemoryNoteRepository()
