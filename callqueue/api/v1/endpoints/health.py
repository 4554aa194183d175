"""
Health Endpoints
Liveness for container probes, readiness from the startup checks
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from callqueue.core.config import ConfigManager, get_config
from callqueue.core.validation import ConfigValidator

router = APIRouter(tags=["health"])

SERVICE_NAME = "callqueue"


@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness(config: ConfigManager = Depends(get_config)) -> JSONResponse:
    """503 while a required setting is missing; warnings are listed but do not fail."""
    all_valid, results = ConfigValidator(config=config).validate_all()
    body: Dict[str, Any] = {
        "status": "ready" if all_valid else "not_ready",
        "errors": [r.setting for r in results if not r.is_valid],
        "warnings": [r.setting for r in results if r.warning],
    }
    return JSONResponse(status_code=200 if all_valid else 503, content=body)


@router.get("/")
async def root() -> Dict[str, str]:
    return {
        "message": "Shared Missed-Call Queue",
        "version": "1.0.0",
        "docs": "/docs",
    }
