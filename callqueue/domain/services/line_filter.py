"""
Dual-Line Filter
Drops call events that did not arrive on the team's business line.

Only active on multi-line devices with a configured business line.
Events that report no line id are never filtered (fail open), since
some providers never report one.
"""
import logging
from typing import Iterable, List, Optional

from callqueue.domain.models.call_event import CallEvent
from callqueue.domain.models.scan import LineConfiguration, LineInfo

logger = logging.getLogger(__name__)


def extract_line_id(event: CallEvent) -> Optional[str]:
    """
    Line identifier of a call event.

    Field names differ across Android versions and manufacturers, so the
    first populated of phone_account_id, subscription_id, sim_id wins.
    """
    if event.phone_account_id:
        return str(event.phone_account_id)
    if event.subscription_id is not None and str(event.subscription_id) != "":
        return str(event.subscription_id)
    if event.sim_id is not None and str(event.sim_id) != "":
        return str(event.sim_id)
    return None


def shorten_line_id(line_id: str) -> str:
    """Shorten a line id for logs (first 8 chars + ...)."""
    if len(line_id) <= 12:
        return line_id
    return f"{line_id[:8]}..."


def detect_lines(events: Iterable[CallEvent]) -> List[LineInfo]:
    """Distinct line ids seen in call history, in first-seen order."""
    seen: List[str] = []
    for event in events:
        line_id = extract_line_id(event)
        if line_id and line_id not in seen:
            seen.append(line_id)

    return [
        LineInfo(id=line_id, display_name=f"SIM {index + 1}")
        for index, line_id in enumerate(seen)
    ]


class DualLineFilter:
    """Decides per event whether it belongs to the business line."""

    def __init__(self, config: Optional[LineConfiguration] = None):
        self.config = config or LineConfiguration()

    @property
    def is_active(self) -> bool:
        return bool(self.config.has_multiple_lines and self.config.business_line_id)

    def should_discard(self, event: CallEvent) -> bool:
        """
        Check if a call should be ignored.

        Returns:
            True only when the event reports a line that differs from
            the configured business line
        """
        if not self.is_active:
            return False

        line_id = extract_line_id(event)
        if not line_id:
            return False

        if line_id != self.config.business_line_id:
            logger.debug(f"Filtered call on non-business line {shorten_line_id(line_id)}")
            return True
        return False
