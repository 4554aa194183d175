"""
Supabase Repositories
Table access for clients, call_logs and voice_reports.

All methods wrap PostgREST failures in StoreError so callers can decide
whether a failure aborts a whole pass or only the current item.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from supabase import Client as SupabaseClient

from callqueue.domain.models.call_record import CallRecord, CallStatus, CallType
from callqueue.domain.models.client import Client
from callqueue.domain.models.note import Note

logger = logging.getLogger(__name__)

# PostgREST refuses an unfiltered DELETE
_ZERO_UUID = "00000000-0000-0000-0000-000000000000"


class StoreError(Exception):
    """Raised when a backend read or write fails."""
    def __init__(self, message: str = "Backend store operation failed."):
        self.message = message
        super().__init__(self.message)


class ClientRepository:
    """Access to the shared clients table."""

    TABLE = "clients"

    def __init__(self, supabase: SupabaseClient):
        self.supabase = supabase

    async def list_all(self) -> List[Client]:
        """Full client directory."""
        try:
            response = self.supabase.table(self.TABLE).select("*").execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch clients: {e}") from e
        return [Client(**row) for row in response.data or []]

    async def get(self, client_id: str) -> Optional[Client]:
        try:
            response = self.supabase.table(self.TABLE).select("*").eq("id", client_id).limit(1).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch client {client_id}: {e}") from e
        rows = response.data or []
        return Client(**rows[0]) if rows else None

    async def find_by_phone(self, phone: str) -> Optional[Client]:
        """Exact match on the stored (normalized) phone."""
        try:
            response = self.supabase.table(self.TABLE).select("*").eq("phone", phone).limit(1).execute()
        except Exception as e:
            raise StoreError(f"Failed to look up client by phone: {e}") from e
        rows = response.data or []
        return Client(**rows[0]) if rows else None

    async def create(
        self,
        phone: str,
        name: Optional[str] = None,
        address: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Client:
        """
        Insert a client, returning the existing row on phone conflict.

        Relies on the unique index on clients.phone; an ignored duplicate
        comes back as an empty result and is re-read.
        """
        row = {"phone": phone, "name": name, "address": address, "notes": notes}
        try:
            response = self.supabase.table(self.TABLE).upsert(
                row, on_conflict="phone", ignore_duplicates=True
            ).execute()
        except Exception as e:
            raise StoreError(f"Failed to create client: {e}") from e

        if response.data:
            return Client(**response.data[0])

        existing = await self.find_by_phone(phone)
        if existing is None:
            raise StoreError(f"Client insert for {phone} returned no row")
        logger.info(f"Client {phone} already existed, using {existing.id}")
        return existing


class CallRecordRepository:
    """Access to the shared call_logs table."""

    TABLE = "call_logs"

    def __init__(self, supabase: SupabaseClient):
        self.supabase = supabase

    async def insert_if_absent(self, row: Dict[str, Any]) -> Optional[CallRecord]:
        """
        Idempotent insert keyed on dedup_key.

        Returns:
            The created record, or None when a record with the same
            dedup_key already exists
        """
        try:
            response = self.supabase.table(self.TABLE).upsert(
                row, on_conflict="dedup_key", ignore_duplicates=True
            ).execute()
        except Exception as e:
            raise StoreError(f"Failed to insert call log: {e}") from e

        if not response.data:
            return None
        return CallRecord.from_row(response.data[0])

    async def get(self, call_id: str) -> Optional[CallRecord]:
        try:
            response = self.supabase.table(self.TABLE).select("*").eq("id", call_id).limit(1).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch call log {call_id}: {e}") from e
        rows = response.data or []
        return CallRecord.from_row(rows[0]) if rows else None

    async def find_by_dedup_key(self, dedup_key: str) -> Optional[CallRecord]:
        try:
            response = self.supabase.table(self.TABLE).select("*").eq(
                "dedup_key", dedup_key
            ).limit(1).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch call log by dedup key: {e}") from e
        rows = response.data or []
        return CallRecord.from_row(rows[0]) if rows else None

    async def find_in_window(
        self,
        client_id: Optional[str],
        caller_phone: Optional[str],
        start: datetime,
        end: datetime
    ) -> Optional[CallRecord]:
        """First record of the same identity with timestamp in [start, end]."""
        query = self.supabase.table(self.TABLE).select("*")
        if client_id:
            query = query.eq("client_id", client_id)
        else:
            query = query.eq("caller_phone", caller_phone)

        try:
            response = query.gte("timestamp", start.isoformat()).lte(
                "timestamp", end.isoformat()
            ).order("timestamp").limit(1).execute()
        except Exception as e:
            raise StoreError(f"Failed windowed duplicate check: {e}") from e

        rows = response.data or []
        return CallRecord.from_row(rows[0]) if rows else None

    async def append_recipient(self, call_id: str, recipient: str) -> List[str]:
        """
        Atomically add recipient to a record (no-op when already present).

        Returns:
            Recipients as stored after the append
        """
        try:
            response = self.supabase.rpc("append_call_recipient", {
                "p_call_id": call_id,
                "p_recipient": recipient,
            }).execute()
        except Exception as e:
            raise StoreError(f"Failed to add recipient to {call_id}: {e}") from e
        return list(response.data or [])

    async def list_queue(self, limit: int = 200) -> List[CallRecord]:
        """Open records (missed or reserved), newest first."""
        try:
            response = self.supabase.table(self.TABLE).select("*").in_(
                "status", [CallStatus.MISSED.value, CallStatus.RESERVED.value]
            ).neq("type", CallType.MERGED.value).order(
                "timestamp", desc=True
            ).limit(limit).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch call queue: {e}") from e
        return [CallRecord.from_row(row) for row in response.data or []]

    async def list_for_identity(
        self,
        client_id: Optional[str] = None,
        caller_phone: Optional[str] = None,
        statuses: Optional[Iterable[CallStatus]] = None
    ) -> List[CallRecord]:
        """Every record of one caller, newest first."""
        if not client_id and not caller_phone:
            return []

        query = self.supabase.table(self.TABLE).select("*")
        if client_id:
            query = query.eq("client_id", client_id)
        else:
            query = query.eq("caller_phone", caller_phone)
        if statuses:
            query = query.in_("status", [s.value for s in statuses])

        try:
            response = query.order("timestamp", desc=True).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch calls for caller: {e}") from e
        return [CallRecord.from_row(row) for row in response.data or []]

    async def list_reserved_by(self, actor_id: str) -> List[CallRecord]:
        """Calls currently reserved by one team member, newest first."""
        try:
            response = self.supabase.table(self.TABLE).select("*").eq(
                "status", CallStatus.RESERVED.value
            ).eq("reservation_by", actor_id).order("timestamp", desc=True).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch calls reserved by {actor_id}: {e}") from e
        return [CallRecord.from_row(row) for row in response.data or []]

    async def list_completed(self, limit: int = 200) -> List[CallRecord]:
        """Completed records still of type completed, newest first."""
        try:
            response = self.supabase.table(self.TABLE).select("*").eq(
                "status", CallStatus.COMPLETED.value
            ).eq("type", CallType.COMPLETED.value).order(
                "timestamp", desc=True
            ).limit(limit).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch completed calls: {e}") from e
        return [CallRecord.from_row(row) for row in response.data or []]

    async def apply_transition(
        self,
        call_id: str,
        changes: Dict[str, Any],
        expected_status: CallStatus
    ) -> Optional[CallRecord]:
        """
        Conditional update: only applies while status is still expected_status.

        Returns:
            Updated record, or None if another writer got there first
        """
        try:
            response = self.supabase.table(self.TABLE).update(changes).eq(
                "id", call_id
            ).eq("status", expected_status.value).execute()
        except Exception as e:
            raise StoreError(f"Failed to update call {call_id}: {e}") from e

        if not response.data:
            return None
        return CallRecord.from_row(response.data[0])

    async def mark_merged(self, call_ids: List[str], merged_into_id: str) -> None:
        if not call_ids:
            return
        try:
            self.supabase.table(self.TABLE).update({
                "type": CallType.MERGED.value,
                "merged_into_id": merged_into_id,
            }).in_("id", call_ids).execute()
        except Exception as e:
            raise StoreError(f"Failed to merge calls into {merged_into_id}: {e}") from e

    async def delete_all(self) -> int:
        """Clear the whole queue. Returns number of deleted rows."""
        try:
            response = self.supabase.table(self.TABLE).delete().gte("id", _ZERO_UUID).execute()
        except Exception as e:
            raise StoreError(f"Failed to clear call queue: {e}") from e
        return len(response.data or [])


class NoteRepository:
    """Access to notes (voice_reports table)."""

    TABLE = "voice_reports"

    def __init__(self, supabase: SupabaseClient):
        self.supabase = supabase

    async def call_ids_with_notes(self, call_ids: List[str]) -> Set[str]:
        """Subset of call_ids that have at least one note. One query."""
        if not call_ids:
            return set()
        try:
            response = self.supabase.table(self.TABLE).select("call_log_id").in_(
                "call_log_id", call_ids
            ).execute()
        except Exception as e:
            raise StoreError(f"Failed to fetch notes: {e}") from e
        return {row["call_log_id"] for row in response.data or []}

    async def create_text_note(
        self,
        call_log_id: str,
        content: str,
        created_by: Optional[str] = None,
        call_count: int = 1
    ) -> Note:
        """Save a text note without audio."""
        row = {
            "call_log_id": call_log_id,
            "audio_url": None,
            "transcription": content,
            "ai_summary": None,
            "created_by": created_by,
            "call_count": call_count,
        }
        try:
            response = self.supabase.table(self.TABLE).insert(row).execute()
        except Exception as e:
            raise StoreError(f"Failed to save note for {call_log_id}: {e}") from e

        if not response.data:
            raise StoreError(f"Note insert for {call_log_id} returned no row")
        return Note(**response.data[0])
