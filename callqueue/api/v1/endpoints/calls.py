"""
Call Queue Endpoints
Shared queue, group workflow actions and the note queue
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from callqueue.api.v1.dependencies import (
    get_current_agent,
    get_lifecycle_service,
    get_queue_service,
)
from callqueue.domain.models.call_group import CallGroup
from callqueue.domain.models.call_record import CallRecord
from callqueue.domain.models.note import Note
from callqueue.infrastructure.storage.supabase_repository import StoreError
from callqueue.services.queue_service import (
    CallNotCompletedError,
    CallNotFoundError,
    GroupActionResult,
    LifecycleService,
    QueueService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])


class GroupActionRequest(BaseModel):
    """Identifies one caller: client id, or phone for unknown callers"""
    client_id: Optional[str] = None
    caller_phone: Optional[str] = None


class GroupActionResponse(BaseModel):
    action: str
    client_id: Optional[str] = None
    caller_phone: Optional[str] = None
    applied_ids: List[str] = []
    rejected: Dict[str, str] = {}


class TransitionResponse(BaseModel):
    call_id: str
    applied: bool
    reason: Optional[str] = None


class NoteCreate(BaseModel):
    """Text note for a completed call"""
    content: str


class NoteResponse(BaseModel):
    note: Note
    merged_ids: List[str] = []


def _store_failure(action: str, e: StoreError) -> HTTPException:
    logger.error(f"Failed to {action}: {e.message}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {e.message}")


def _group_response(result: GroupActionResult) -> GroupActionResponse:
    if not result.changed:
        raise HTTPException(
            status_code=409,
            detail=f"Nothing to {result.action} for this caller"
        )
    return GroupActionResponse(
        action=result.action,
        client_id=result.client_id,
        caller_phone=result.caller_phone,
        applied_ids=result.applied_ids,
        rejected=result.rejected,
    )


def _require_caller(request: GroupActionRequest) -> None:
    if not request.client_id and not request.caller_phone:
        raise HTTPException(
            status_code=400,
            detail="client_id or caller_phone is required"
        )


@router.get("/queue", response_model=List[CallGroup])
async def get_call_queue(
    agent_id: str = Depends(get_current_agent),
    queue: QueueService = Depends(get_queue_service)
):
    """
    Missed and reserved calls grouped by caller.

    Groups with a missed call come first, then the most recent caller.
    """
    try:
        return await queue.get_queue()
    except StoreError as e:
        raise _store_failure("fetch call queue", e)


@router.get("/reserved", response_model=List[CallRecord])
async def get_my_reservations(
    agent_id: str = Depends(get_current_agent),
    queue: QueueService = Depends(get_queue_service)
):
    """Calls currently reserved by the calling agent."""
    try:
        return await queue.reserved_by(agent_id)
    except StoreError as e:
        raise _store_failure("fetch reserved calls", e)


@router.post("/groups/reserve", response_model=GroupActionResponse)
async def reserve_group(
    request: GroupActionRequest,
    agent_id: str = Depends(get_current_agent),
    lifecycle: LifecycleService = Depends(get_lifecycle_service)
):
    """Reserve every missed call of one caller."""
    _require_caller(request)
    try:
        result = await lifecycle.reserve_group(
            agent_id, client_id=request.client_id, caller_phone=request.caller_phone
        )
    except StoreError as e:
        raise _store_failure("reserve calls", e)
    return _group_response(result)


@router.post("/groups/complete", response_model=GroupActionResponse)
async def complete_group(
    request: GroupActionRequest,
    agent_id: str = Depends(get_current_agent),
    lifecycle: LifecycleService = Depends(get_lifecycle_service)
):
    """Mark every reserved call of one caller as completed."""
    _require_caller(request)
    try:
        result = await lifecycle.complete_group(
            client_id=request.client_id, caller_phone=request.caller_phone
        )
    except StoreError as e:
        raise _store_failure("complete calls", e)
    return _group_response(result)


@router.post("/groups/release", response_model=GroupActionResponse)
async def release_group(
    request: GroupActionRequest,
    agent_id: str = Depends(get_current_agent),
    lifecycle: LifecycleService = Depends(get_lifecycle_service)
):
    """Return every reserved call of one caller to the queue."""
    _require_caller(request)
    try:
        result = await lifecycle.release_group(
            client_id=request.client_id, caller_phone=request.caller_phone
        )
    except StoreError as e:
        raise _store_failure("release calls", e)
    return _group_response(result)


@router.get("/notes/pending", response_model=List[CallRecord])
async def get_pending_notes(
    agent_id: str = Depends(get_current_agent),
    queue: QueueService = Depends(get_queue_service)
):
    """Completed calls waiting for a note."""
    try:
        return await queue.pending_notes()
    except StoreError as e:
        raise _store_failure("fetch pending notes", e)


@router.post("/{call_id}/skip", response_model=TransitionResponse)
async def skip_call(
    call_id: str,
    agent_id: str = Depends(get_current_agent),
    lifecycle: LifecycleService = Depends(get_lifecycle_service)
):
    """Close a completed call without a note."""
    try:
        result = await lifecycle.skip(call_id)
    except CallNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except StoreError as e:
        raise _store_failure("skip call", e)

    if not result.applied:
        raise HTTPException(status_code=409, detail=f"Cannot skip call: {result.reason}")
    return TransitionResponse(call_id=call_id, applied=True)


@router.post("/{call_id}/notes", response_model=NoteResponse)
async def add_note(
    call_id: str,
    note: NoteCreate,
    agent_id: str = Depends(get_current_agent),
    lifecycle: LifecycleService = Depends(get_lifecycle_service)
):
    """
    Attach a text note to a call.

    Earlier note-less completed calls of the same caller are merged into it.
    """
    if not note.content.strip():
        raise HTTPException(status_code=400, detail="Note content is empty")

    try:
        result = await lifecycle.add_text_note(call_id, note.content.strip(), created_by=agent_id)
    except CallNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CallNotCompletedError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except StoreError as e:
        raise _store_failure("save note", e)

    return NoteResponse(note=result.note, merged_ids=result.merged_ids)


@router.delete("")
async def clear_queue(
    agent_id: str = Depends(get_current_agent),
    queue: QueueService = Depends(get_queue_service)
):
    """Delete every call record. Irreversible."""
    logger.warning(f"Queue clear requested by {agent_id}")
    try:
        deleted = await queue.clear_queue()
    except StoreError as e:
        raise _store_failure("clear call queue", e)
    return {"deleted": deleted}
