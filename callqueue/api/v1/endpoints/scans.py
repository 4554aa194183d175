"""
Scan Endpoints
Devices upload recent call history and trigger a scan pass
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from callqueue.api.v1.dependencies import get_call_scanner, get_config, get_current_agent
from callqueue.core.config import ConfigManager
from callqueue.domain.models.call_event import CallEvent
from callqueue.domain.models.scan import LineConfiguration, LineInfo, ScanResult
from callqueue.domain.services.line_filter import detect_lines
from callqueue.domain.services.timestamp_parser import DEFAULT_LOCAL_TIMEZONE
from callqueue.infrastructure.calllog.batch_provider import BatchCallLogProvider
from callqueue.services.call_scanner import CallLogScanner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


class ScanRequest(BaseModel):
    """Call history uploaded by a device"""
    events: List[CallEvent] = []
    # Defaults to the calling agent
    owner_id: Optional[str] = None
    line_config: Optional[LineConfiguration] = None
    full_rescan: bool = False
    permission_granted: bool = True


class LineDetectionRequest(BaseModel):
    events: List[CallEvent] = []


@router.post("", response_model=ScanResult)
async def run_scan(
    request: ScanRequest,
    agent_id: str = Depends(get_current_agent),
    scanner: CallLogScanner = Depends(get_call_scanner),
    config: ConfigManager = Depends(get_config)
):
    """
    Run one scan pass over the uploaded events.

    Failures are reported in the result (success=False), not as HTTP
    errors, so the device can show a sync indicator and retry later.
    """
    provider = BatchCallLogProvider(
        request.events,
        permission_granted=request.permission_granted,
        local_timezone=config.get("scan.local_timezone", DEFAULT_LOCAL_TIMEZONE),
    )
    owner_id = request.owner_id or agent_id

    logger.info(f"Scan requested by {agent_id} for {owner_id}: {len(request.events)} events")
    return await scanner.scan(
        owner_id,
        provider,
        line_config=request.line_config,
        full_rescan=request.full_rescan,
    )


@router.post("/lines", response_model=List[LineInfo])
async def detect_device_lines(
    request: LineDetectionRequest,
    agent_id: str = Depends(get_current_agent)
):
    """Lines seen in recent call history, for choosing the business line."""
    return detect_lines(request.events)
