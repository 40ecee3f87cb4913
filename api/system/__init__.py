"""System health endpoint."""

import logging
import time
from typing import Optional

import psutil
from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel

from database import get_pool
from ..dependencies import get_connection_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/system",
    tags=["System"]
)

class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    uptime: float
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    websocket_connections: int
    database_status: str
    database_error: Optional[str] = None

async def check_database() -> Optional[str]:
    """Run a trivial query; returns the error message, or None when healthy."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval('SELECT 1')
        return None
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return str(e)

@router.get("/health", response_model=SystemHealth)
async def get_system_health(connections = Depends(get_connection_manager)) -> SystemHealth:
    """Get system health status.

    Returns:
        SystemHealth object containing process, host and database status
    """
    try:
        cpu_percent = psutil.cpu_percent()
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage('/')
        uptime = time.time() - psutil.Process().create_time()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    db_error = await check_database()
    healthy = db_error is None and cpu_percent < 80

    return SystemHealth(
        status="healthy" if healthy else "degraded",
        uptime=uptime,
        cpu_usage=cpu_percent,
        memory_usage=memory.percent,
        disk_usage=disk.percent,
        websocket_connections=len(connections.active_connections),
        database_status="connected" if db_error is None else "unavailable",
        database_error=db_error
    )
