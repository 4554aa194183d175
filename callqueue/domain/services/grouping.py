"""
Call Grouping
Read-side transform from flat call records to the queue display.

Every record of one caller (client id, else caller phone) collapses into
a CallGroup. Groups with an unanswered call come first, then the most
recently active caller.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from callqueue.domain.models.call_group import CallGroup
from callqueue.domain.models.call_record import CallRecord, CallStatus
from callqueue.domain.models.client import Client

logger = logging.getLogger(__name__)

DEFAULT_SLA_MINUTES = 60

# Lower is more actionable
STATUS_PRIORITY = {
    CallStatus.MISSED: 0,
    CallStatus.RESERVED: 1,
    CallStatus.COMPLETED: 2,
}

_ACTIVE_STATUSES = (CallStatus.MISSED, CallStatus.RESERVED)


def pick_representative(records: List[CallRecord]) -> CallRecord:
    """
    Most actionable record of a group.

    records must be sorted newest first; among records of equal priority
    the newest wins.
    """
    return min(
        records,
        key=lambda r: STATUS_PRIORITY.get(r.status, len(STATUS_PRIORITY))
    )


def format_wait_time(elapsed: timedelta) -> str:
    """Format a duration as "Hh Mm" (e.g. "2h 5m")."""
    total_minutes = max(int(elapsed.total_seconds() // 60), 0)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def _build_group(
    key: str,
    records: List[CallRecord],
    now: datetime,
    client: Optional[Client],
    sla_minutes: int
) -> CallGroup:
    records = sorted(records, key=lambda r: r.timestamp, reverse=True)
    representative = pick_representative(records)

    missed_count = sum(1 for r in records if r.status == CallStatus.MISSED)

    recipients: List[str] = []
    for record in records:
        for recipient in record.recipients:
            if recipient not in recipients:
                recipients.append(recipient)

    agents = list(recipients)
    for record in records:
        if record.employee_id and record.employee_id not in agents:
            agents.append(record.employee_id)

    active = [r for r in records if r.status in _ACTIVE_STATUSES]
    sla_exceeded = False
    wait_time = ""
    if active:
        oldest = min(r.timestamp for r in active)
        elapsed = now - oldest
        wait_time = format_wait_time(elapsed)
        sla_exceeded = elapsed > timedelta(minutes=sla_minutes)

    return CallGroup(
        group_key=key,
        client_id=representative.client_id,
        caller_phone=representative.caller_phone,
        client=client,
        representative=representative,
        records=records,
        call_count=missed_count or len(records),
        missed_count=missed_count,
        recipients=recipients,
        agents=agents,
        is_multi_agent=len(agents) > 1,
        first_call_time=records[-1].timestamp,
        last_call_time=records[0].timestamp,
        sla_exceeded=sla_exceeded,
        wait_time=wait_time,
    )


def group_call_records(
    records: Iterable[CallRecord],
    now: Optional[datetime] = None,
    clients: Optional[Mapping[str, Client]] = None,
    sla_minutes: int = DEFAULT_SLA_MINUTES
) -> List[CallGroup]:
    """
    Group call records by caller.

    Args:
        records: Flat list of call records, any order
        now: Reference time for wait time / SLA (default: current UTC time)
        clients: Optional client lookup by id, attached to the groups
        sla_minutes: Waiting longer than this flags the group

    Returns:
        Groups, those with a missed call first, then latest call first
    """
    now = now or datetime.now(timezone.utc)
    clients = clients or {}

    buckets: Dict[str, List[CallRecord]] = {}
    for record in records:
        key = record.identity
        if not key:
            logger.debug(f"Dropping call {record.id} without client or phone")
            continue
        buckets.setdefault(key, []).append(record)

    groups = [
        _build_group(
            key,
            bucket,
            now,
            clients.get(bucket[0].client_id) if bucket[0].client_id else None,
            sla_minutes,
        )
        for key, bucket in buckets.items()
    ]

    groups.sort(key=lambda g: g.last_call_time, reverse=True)
    groups.sort(key=lambda g: 0 if g.has_missed else 1)
    return groups
