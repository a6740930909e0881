"""
System-related API models: health and errors.
"""

from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Search health: which primitives are installed on the backing store."""
    status: str
    backend: Optional[str] = None
    capabilities: dict[str, bool] = {}
    missing: list[str] = []


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
