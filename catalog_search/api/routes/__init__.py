"""
Route modules for the catalog search API.

Each module defines a FastAPI APIRouter for a specific area.
All routers are collected in ``all_routers`` for easy inclusion.
"""

from catalog_search.api.routes.system import router as system_router
from catalog_search.api.routes.search import router as search_router
from catalog_search.api.routes.admin import router as admin_router

all_routers = [
    system_router,
    search_router,
    admin_router,
]

__all__ = ["all_routers"]
