"""
Clients Endpoints
Shared client directory and per-client call timeline
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from callqueue.api.v1.dependencies import (
    get_client_repository,
    get_current_agent,
    get_queue_service,
)
from callqueue.domain.models.call_record import CallRecord
from callqueue.domain.models.client import Client
from callqueue.domain.services.phone_normalizer import normalize_phone
from callqueue.infrastructure.storage.supabase_repository import ClientRepository, StoreError
from callqueue.services.queue_service import QueueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["clients"])


class ClientCreate(BaseModel):
    """Create client request"""
    phone: str
    name: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class ClientTimeline(BaseModel):
    client: Client
    calls: List[CallRecord] = []


@router.get("", response_model=List[Client])
async def list_clients(
    agent_id: str = Depends(get_current_agent),
    clients: ClientRepository = Depends(get_client_repository)
):
    """Full shared client directory."""
    try:
        return await clients.list_all()
    except StoreError as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch clients: {e.message}"
        )


@router.post("", response_model=Client, status_code=201)
async def create_client(
    client: ClientCreate,
    agent_id: str = Depends(get_current_agent),
    clients: ClientRepository = Depends(get_client_repository)
):
    """
    Create a client.

    The phone is stored normalized so scans match it regardless of how
    the caller's number is formatted.
    """
    phone = normalize_phone(client.phone)
    if not phone:
        raise HTTPException(status_code=400, detail="Phone number has no digits")

    try:
        if await clients.find_by_phone(phone):
            raise HTTPException(
                status_code=409,
                detail="Client with this phone already exists"
            )
        created = await clients.create(
            phone=phone,
            name=client.name,
            address=client.address,
            notes=client.notes,
        )
    except StoreError as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to create client: {e.message}"
        )

    logger.info(f"Client {created.id} created by {agent_id}")
    return created


@router.get("/{client_id}/timeline", response_model=ClientTimeline)
async def get_client_timeline(
    client_id: str,
    agent_id: str = Depends(get_current_agent),
    clients: ClientRepository = Depends(get_client_repository),
    queue: QueueService = Depends(get_queue_service)
):
    """Every call of one client, newest first."""
    try:
        client = await clients.get(client_id)
        if client is None:
            raise HTTPException(status_code=404, detail="Client not found")
        calls = await queue.client_timeline(client_id)
    except StoreError as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch client timeline: {e.message}"
        )

    return ClientTimeline(client=client, calls=calls)
