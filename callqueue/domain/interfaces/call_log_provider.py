"""
Call Log Provider Interface
Abstract base class for call-log sources.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from callqueue.domain.models.call_event import CallEvent


class CallLogProvider(ABC):
    """
    Abstract base class for call-log sources.

    Implementations:
    - BatchCallLogProvider: events uploaded by a device
    - BackupXmlCallLogProvider: SMS Backup & Restore call exports
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging"""
        pass

    @abstractmethod
    async def has_permission(self) -> bool:
        """
        Whether call history may be read.

        Denial is reported as False, never raised.
        """
        pass

    @abstractmethod
    async def load(self, min_timestamp: datetime) -> List[CallEvent]:
        """
        Load call events.

        Args:
            min_timestamp: Providers may drop events older than this;
                callers still re-check each event

        Returns:
            Call events of every direction
        """
        pass
