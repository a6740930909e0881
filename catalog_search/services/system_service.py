"""
System service: health of the search backend.
"""

import logging

from catalog_search.errors import StoreError
from catalog_search.store import SearchStore
from catalog_search.api.models.system import HealthResponse

logger = logging.getLogger(__name__)


class SystemService:
    """Reports whether the store has what search needs."""

    def __init__(self, store: SearchStore):
        self.store = store

    async def get_health(self) -> HealthResponse:
        """Build the health response; status is "unhealthy" when a required capability is missing."""
        try:
            capabilities = await self.store.capabilities()
        except StoreError as e:
            logger.error(f"Health check could not reach the search store: {e}")
            return HealthResponse(
                status="unhealthy",
                backend=self.store.backend,
                missing=list(self.store.required_capabilities),
            )

        missing = [name for name in self.store.required_capabilities if not capabilities.get(name)]
        if missing:
            logger.warning(f"Search capabilities missing: {', '.join(missing)}")

        return HealthResponse(
            status="unhealthy" if missing else "healthy",
            backend=self.store.backend,
            capabilities=capabilities,
            missing=missing,
        )
