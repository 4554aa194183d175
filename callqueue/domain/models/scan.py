"""
Scan Models
Line configuration and per-pass scan summary
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


class LineConfiguration(BaseModel):
    """Dual-line settings of the scanning device"""
    has_multiple_lines: bool = False
    business_line_id: Optional[str] = None


class LineInfo(BaseModel):
    """A line detected from recent call history"""
    id: str
    display_name: str


class ScanResult(BaseModel):
    """
    Outcome of one scan pass.

    success is False when the pass aborted; the checkpoint is then left
    where it was so the same window is retried on the next trigger.
    """
    owner_id: str
    full_rescan: bool = False
    success: bool = False
    permission_granted: bool = True
    skipped_busy: bool = False

    events_seen: int = 0
    missed_events: int = 0
    filtered_by_line: int = 0
    unparseable: int = 0
    already_processed: int = 0
    created: int = 0
    duplicates: int = 0
    recipients_added: int = 0
    failed: int = 0

    checkpoint_before: Optional[datetime] = None
    checkpoint_after: Optional[datetime] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
