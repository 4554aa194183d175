"""
Call Lifecycle State Machine

    missed --reserve--> reserved --complete--> completed --skip--> skipped
                           |                       |
                           +--release--> missed    +--note on sibling--> merged

Transitions are pure: each returns a TransitionResult describing the column
changes to persist. An invalid transition is not an error, it comes back
with applied=False and a reason.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from callqueue.domain.models.call_record import (
    CallRecord,
    CallStatus,
    CallType,
    TERMINAL_STATES,
)


@dataclass
class TransitionResult:
    """Outcome of one requested transition"""
    applied: bool
    reason: Optional[str] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    # Status the record must still have when the changes are written
    expected_status: Optional[CallStatus] = None


def _rejected(reason: str) -> TransitionResult:
    return TransitionResult(applied=False, reason=reason)


def _require_status(record: CallRecord, expected: CallStatus) -> Optional[TransitionResult]:
    if record.state in TERMINAL_STATES:
        return _rejected(f"terminal:{record.state.value}")
    if record.status != expected:
        return _rejected(f"already_handled:{record.status.value}")
    return None


def reserve(record: CallRecord, actor_id: str, now: Optional[datetime] = None) -> TransitionResult:
    """Claim a missed call for actor_id."""
    if not actor_id:
        return _rejected("missing_actor")
    rejection = _require_status(record, CallStatus.MISSED)
    if rejection:
        return rejection

    reserved_at = now or datetime.now(timezone.utc)
    return TransitionResult(
        applied=True,
        changes={
            "status": CallStatus.RESERVED.value,
            "reservation_by": actor_id,
            "reservation_at": reserved_at.isoformat(),
        },
        expected_status=CallStatus.MISSED,
    )


def complete(record: CallRecord) -> TransitionResult:
    """Mark a reserved call as handled. Reservation metadata is kept."""
    rejection = _require_status(record, CallStatus.RESERVED)
    if rejection:
        return rejection

    return TransitionResult(
        applied=True,
        changes={
            "status": CallStatus.COMPLETED.value,
            "type": CallType.COMPLETED.value,
        },
        expected_status=CallStatus.RESERVED,
    )


def release(record: CallRecord) -> TransitionResult:
    """Give a reserved call back to the queue."""
    rejection = _require_status(record, CallStatus.RESERVED)
    if rejection:
        return rejection

    return TransitionResult(
        applied=True,
        changes={
            "status": CallStatus.MISSED.value,
            "reservation_by": None,
            "reservation_at": None,
        },
        expected_status=CallStatus.RESERVED,
    )


def skip(record: CallRecord, has_note: Optional[bool] = None) -> TransitionResult:
    """
    Close a completed call without writing a note.

    Args:
        record: Completed record
        has_note: Note existence; defaults to record.has_note
    """
    rejection = _require_status(record, CallStatus.COMPLETED)
    if rejection:
        return rejection

    noted = record.has_note if has_note is None else has_note
    if noted:
        return _rejected("has_note")

    return TransitionResult(
        applied=True,
        changes={"type": CallType.SKIPPED.value},
        expected_status=CallStatus.COMPLETED,
    )
