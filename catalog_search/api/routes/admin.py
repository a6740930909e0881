"""
Admin routes: POST /admin/search/reindex
"""

import logging

from fastapi import APIRouter, Depends

from catalog_search.api.dependencies import get_indexing_service, require_admin
from catalog_search.api.models.search import ReindexResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"], dependencies=[Depends(require_admin)])


@router.post("/admin/search/reindex", response_model=ReindexResponse)
async def reindex(service=Depends(get_indexing_service)):
    """
    Rebuild every product's searchable document.
    Must not be triggered while a previous rebuild is still running.
    """
    stats = await service.reindex_all()
    return ReindexResponse(
        updated_count=stats.updated_count,
        duration_ms=stats.duration_ms,
        timestamp=stats.timestamp,
    )
