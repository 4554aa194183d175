"""
Client Domain Model
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class Client(BaseModel):
    """Shared client directory entry. Auto-provisioned clients have no name."""
    id: str
    phone: str
    name: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """Name if known, otherwise the phone number."""
        return self.name or self.phone
