"""
API middleware: CORS and response timing.
"""

import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog_search.config import config

logger = logging.getLogger(__name__)


async def timing_middleware(request, call_next):
    """Report handler time in an X-Response-Time-Ms header."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.1f}"
    logger.debug(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms")
    return response


def register_middleware(app: FastAPI) -> None:
    """Attach all middleware to the FastAPI app."""
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Timing
    app.middleware("http")(timing_middleware)
