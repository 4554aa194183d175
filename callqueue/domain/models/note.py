"""
Note Model
Follow-up note attached to a completed call (voice_reports table)
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class Note(BaseModel):
    """Voice or text note. Audio/transcription/summary are filled elsewhere."""
    id: str
    call_log_id: str
    audio_url: Optional[str] = None
    transcription: Optional[str] = None
    ai_summary: Optional[str] = None
    created_by: Optional[str] = None
    call_count: int = 1  # How many calls were grouped together for this note
    created_at: Optional[datetime] = None
