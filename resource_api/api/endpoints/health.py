# /health endpoint
# resource_api/api/endpoints/health.py

import logging
from typing import Dict

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from resource_api.api.deps import get_connection_manager
from resource_api.data_access.connections import ConnectionManager

logger = logging.getLogger(__name__)
router = APIRouter()

class HealthResponse(BaseModel):
    status: str = "ok"
    connections: Dict[str, bool] = {}

@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Perform a Health Check",
    response_description="Returns the health status of the API and its database connections.",
)
async def health_check(manager: ConnectionManager = Depends(get_connection_manager)):
    """
    Reports whether each named database connection is open.
    Status is "degraded" when any connection is unavailable.
    """
    connections = {name: conn.ready for name, conn in manager.connections.items()}
    overall = "ok" if all(connections.values()) else "degraded"
    return HealthResponse(status=overall, connections=connections)
