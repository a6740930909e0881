"""
System routes: /search/health
"""

from fastapi import APIRouter, Depends, Response

from catalog_search.api.dependencies import get_system_service
from catalog_search.api.models.system import HealthResponse

router = APIRouter(tags=["System"])


@router.get("/search/health", response_model=HealthResponse)
async def health_check(response: Response, service=Depends(get_system_service)):
    """
    Search health check.
    Returns 503 when a primitive search depends on is not installed.
    """
    health = await service.get_health()
    if health.status != "healthy":
        response.status_code = 503
    return health
