"""
Configuration module for the catalog search service.
Loads settings from environment variables or .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root (parent of catalog_search/ directory)
_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
load_dotenv(_env_path)


class Config:
    """Application configuration."""

    # Backing store: "sqlite" (embedded FTS5) or "postgres" (tsvector + pg_trgm)
    SEARCH_BACKEND: str = os.getenv("SEARCH_BACKEND", "sqlite")

    # SQLite settings
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./catalog_search.db"))

    # PostgreSQL settings
    POSTGRES_URL: str = os.getenv(
        "DATABASE_URL",
        os.getenv("POSTGRES_URL", "")
    )

    # API settings
    API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")  # Required for /admin endpoints
    CORS_ORIGINS: list = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if origin.strip()
    ]

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Hard deadline for request-path store calls
    SEARCH_TIMEOUT_SECONDS: float = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "2.5"))

    # Full search bounds
    SEARCH_MAX_QUERY_LENGTH: int = int(os.getenv("SEARCH_MAX_QUERY_LENGTH", "500"))
    SEARCH_DEFAULT_LIMIT: int = int(os.getenv("SEARCH_DEFAULT_LIMIT", "20"))
    SEARCH_MAX_LIMIT: int = int(os.getenv("SEARCH_MAX_LIMIT", "100"))

    # Autocomplete bounds
    SUGGEST_MAX_QUERY_LENGTH: int = int(os.getenv("SUGGEST_MAX_QUERY_LENGTH", "100"))
    SUGGEST_DEFAULT_LIMIT: int = int(os.getenv("SUGGEST_DEFAULT_LIMIT", "8"))
    SUGGEST_MAX_LIMIT: int = int(os.getenv("SUGGEST_MAX_LIMIT", "50"))
    SUGGEST_SIMILARITY_THRESHOLD: float = float(os.getenv("SUGGEST_SIMILARITY_THRESHOLD", "0.5"))

    # Facets
    FACET_CATEGORY_LIMIT: int = int(os.getenv("FACET_CATEGORY_LIMIT", "20"))

    # Per-client token bucket for public search endpoints (capacity 0 disables)
    RATE_LIMIT_CAPACITY: int = int(os.getenv("RATE_LIMIT_CAPACITY", "60"))
    RATE_LIMIT_REFILL_PER_SECOND: float = float(os.getenv("RATE_LIMIT_REFILL_PER_SECOND", "1.0"))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        backend = cls.SEARCH_BACKEND.lower()

        if backend not in ("sqlite", "postgres"):
            raise ValueError(
                f"SEARCH_BACKEND must be one of: sqlite, postgres. "
                f"Got: {backend}"
            )

        if backend == "postgres" and not cls.POSTGRES_URL:
            raise ValueError("DATABASE_URL must be set when using the postgres backend")

        if cls.SEARCH_TIMEOUT_SECONDS <= 0:
            raise ValueError("SEARCH_TIMEOUT_SECONDS must be positive")

        if not 0.0 < cls.SUGGEST_SIMILARITY_THRESHOLD < 1.0:
            raise ValueError("SUGGEST_SIMILARITY_THRESHOLD must be between 0 and 1")


# Singleton config instance
config = Config()
