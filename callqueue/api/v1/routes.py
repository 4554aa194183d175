"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter

from callqueue.api.v1.endpoints import calls, clients, scans

api_router = APIRouter()

api_router.include_router(scans.router)
api_router.include_router(calls.router)
api_router.include_router(clients.router)
