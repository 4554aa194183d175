"""
Call Event Model
Raw call-log entry as reported by a device, consumed once per scan pass
"""
from pydantic import BaseModel
from typing import Optional, Union


# Android CallLog.Calls.MISSED_TYPE is 3
MISSED_TYPE_TAGS = {"MISSED", "missed", "3"}


class CallEvent(BaseModel):
    """
    One ring from a device call history.

    The timestamp is heterogeneous: epoch number (ms or s), an ISO string,
    or a locale-formatted string such as "15 sty 2024 10:30:00".
    The three line fields are provider-dependent; at most one is usually set.
    """
    phone_number: str
    call_type: Union[str, int]
    timestamp: Union[int, float, str]
    duration: int = 0
    name: Optional[str] = None

    # Line identification (varies by Android version/manufacturer)
    phone_account_id: Optional[str] = None
    subscription_id: Optional[Union[str, int]] = None
    sim_id: Optional[Union[str, int]] = None

    @property
    def is_missed(self) -> bool:
        return str(self.call_type) in MISSED_TYPE_TAGS
