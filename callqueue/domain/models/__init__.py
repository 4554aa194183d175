"""Domain models"""

from .call_event import CallEvent
from .call_record import (
    CallStatus,
    CallType,
    WorkflowState,
    TERMINAL_STATES,
    Reservation,
    CallRecord,
)
from .client import Client
from .call_group import CallGroup
from .note import Note
from .scan import LineConfiguration, LineInfo, ScanResult

__all__ = [
    "CallEvent",
    # Call records
    "CallStatus",
    "CallType",
    "WorkflowState",
    "TERMINAL_STATES",
    "Reservation",
    "CallRecord",
    # Directory
    "Client",
    # Queue
    "CallGroup",
    "Note",
    # Scanning
    "LineConfiguration",
    "LineInfo",
    "ScanResult",
]
