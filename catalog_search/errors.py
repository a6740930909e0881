"""
Exception hierarchy for the search subsystem.

Client-side problems derive from ValidationError, backing-store problems
from StoreError. The API layer maps each family to a status code.
"""


class SearchError(Exception):
    """Base class for all search errors."""
    code = "search_error"


class ValidationError(SearchError):
    """The request was rejected before touching the store."""
    code = "invalid_request"


class CursorError(ValidationError):
    """A pagination cursor could not be decoded or does not fit the request."""
    code = "invalid_cursor"


class StoreError(SearchError):
    """The backing store failed to execute a search query."""
    code = "search_failed"


class CapabilityMissingError(StoreError):
    """A required table, index, function or extension is not installed."""
    code = "search_unavailable"


class SearchTimeoutError(StoreError):
    """A request-path query exceeded its deadline."""
    code = "search_timeout"
