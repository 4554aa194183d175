"""
Call Record Domain Models
The shared, deduplicated unit of work stored in the call_logs table
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class CallStatus(str, Enum):
    """Workflow position stored in call_logs.status"""
    MISSED = "missed"
    RESERVED = "reserved"
    COMPLETED = "completed"


class CallType(str, Enum):
    """Sub-status stored in call_logs.type"""
    MISSED = "missed"
    COMPLETED = "completed"
    MERGED = "merged"      # Absorbed by a noted sibling record
    SKIPPED = "skipped"    # Completed, deliberately left without a note


class WorkflowState(str, Enum):
    """
    Single lifecycle state of a record.

    Derived from the status/type column pair. MERGED and SKIPPED are
    terminal and never appear in a workflow queue.
    """
    MISSED = "missed"
    RESERVED = "reserved"
    COMPLETED = "completed"
    MERGED = "merged"
    SKIPPED = "skipped"


TERMINAL_STATES = {WorkflowState.MERGED, WorkflowState.SKIPPED}


class Reservation(BaseModel):
    """Who reserved a call and when. Both fields always travel together."""
    by: str
    at: datetime


class CallRecord(BaseModel):
    """
    Deduplicated, team-shared record for one real-world missed call.

    Identity is the client id when known, otherwise the normalized
    caller phone.
    """
    id: str
    client_id: Optional[str] = None
    caller_phone: Optional[str] = None
    employee_id: Optional[str] = None
    status: CallStatus = CallStatus.MISSED
    type: CallType = CallType.MISSED
    reservation: Optional[Reservation] = None
    recipients: List[str] = Field(default_factory=list)
    timestamp: datetime
    dedup_key: Optional[str] = None
    merged_into_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Populated by the read path, not a column
    has_note: bool = False

    @property
    def identity(self) -> Optional[str]:
        """Group/dedup identity: client id, else caller phone."""
        return self.client_id or self.caller_phone

    @property
    def state(self) -> WorkflowState:
        """Collapse status + type into one lifecycle state."""
        if self.type == CallType.MERGED:
            return WorkflowState.MERGED
        if self.type == CallType.SKIPPED:
            return WorkflowState.SKIPPED
        return WorkflowState(self.status.value)

    @property
    def needs_note(self) -> bool:
        """Completed, still of type completed and without a note."""
        return (
            self.status == CallStatus.COMPLETED
            and self.type == CallType.COMPLETED
            and not self.has_note
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any], has_note: bool = False) -> "CallRecord":
        """Build from a call_logs row (flat reservation columns)."""
        reservation = None
        if row.get("reservation_by") and row.get("reservation_at"):
            reservation = Reservation(by=row["reservation_by"], at=row["reservation_at"])

        return cls(
            id=row["id"],
            client_id=row.get("client_id"),
            caller_phone=row.get("caller_phone"),
            employee_id=row.get("employee_id"),
            status=row.get("status") or CallStatus.MISSED,
            type=row.get("type") or CallType.MISSED,
            reservation=reservation,
            recipients=list(row.get("recipients") or []),
            timestamp=row["timestamp"],
            dedup_key=row.get("dedup_key"),
            merged_into_id=row.get("merged_into_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            has_note=has_note,
        )

    def to_row(self) -> Dict[str, Any]:
        """Serialize to call_logs columns."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "caller_phone": self.caller_phone,
            "employee_id": self.employee_id,
            "status": self.status.value,
            "type": self.type.value,
            "reservation_by": self.reservation.by if self.reservation else None,
            "reservation_at": self.reservation.at.isoformat() if self.reservation else None,
            "recipients": list(self.recipients),
            "timestamp": self.timestamp.isoformat(),
            "dedup_key": self.dedup_key,
            "merged_into_id": self.merged_into_id,
        }
