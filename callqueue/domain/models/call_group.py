"""
Call Group Model
Display unit of the shared queue: every record from one caller
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from .call_record import CallRecord, CallStatus
from .client import Client


class CallGroup(BaseModel):
    """
    All records for one client (or unknown caller phone).

    representative is the most actionable record, not the newest one.
    """
    group_key: str
    client_id: Optional[str] = None
    caller_phone: Optional[str] = None
    client: Optional[Client] = None

    representative: CallRecord
    records: List[CallRecord] = Field(default_factory=list)  # newest first

    call_count: int
    missed_count: int
    recipients: List[str] = Field(default_factory=list)
    agents: List[str] = Field(default_factory=list)
    is_multi_agent: bool = False

    first_call_time: datetime
    last_call_time: datetime

    sla_exceeded: bool = False
    wait_time: str = ""

    @property
    def has_missed(self) -> bool:
        return self.missed_count > 0

    @property
    def has_reserved(self) -> bool:
        return any(r.status == CallStatus.RESERVED for r in self.records)

    @property
    def display_name(self) -> str:
        if self.client and self.client.name:
            return self.client.name
        if self.client:
            return self.client.phone
        return self.caller_phone or ""
