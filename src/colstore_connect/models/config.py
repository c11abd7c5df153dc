"""Store connection configuration model."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.engine.url import make_url

SUPPORTED_BACKENDS = {"memory", "sqlite"}


class StoreConfig(BaseModel):
    """Configuration for the store connection and its handles."""

    url: str = Field(
        ...,
        description="Store URL (e.g., memory://, memory://cluster1, sqlite:///data.db)",
    )
    operation_timeout: float = Field(
        default=30,
        gt=0,
        le=3600,
        description="Timeout in seconds for a single store call",
    )
    scan_caching: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Default number of rows fetched per scanner round trip",
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Connection pool size for SQL-backed stores",
    )
    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements of SQL-backed stores",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate store URL format."""
        try:
            url = make_url(v)
        except Exception as e:
            raise ValueError(f"Invalid store URL: {e}")

        backend = url.drivername.split("+")[0]
        if backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unsupported store backend: {backend}. "
                f"Supported: {', '.join(sorted(SUPPORTED_BACKENDS))}"
            )
        return v

    @property
    def backend(self) -> str:
        """Extract store backend from URL."""
        return make_url(self.url).drivername.split("+")[0]

    @property
    def cluster_name(self) -> str:
        """Name identifying the store instance behind the URL."""
        url = make_url(self.url)
        if self.backend == "memory":
            return url.host or url.database or "default"
        return url.database or ":memory:"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "StoreConfig":
        """
        Build configuration from environment variables.

        Loads a .env file first (without overriding variables already set),
        then reads COLSTORE_URL and the optional tuning variables.

        Args:
            env_file: Explicit .env path (None searches from the working directory)

        Returns:
            Store configuration

        Raises:
            ValueError: If COLSTORE_URL is not set
        """
        load_dotenv(env_file)

        url = os.getenv("COLSTORE_URL")
        if not url:
            raise ValueError("COLSTORE_URL environment variable is required")

        values: dict[str, object] = {"url": url}
        if os.getenv("COLSTORE_OPERATION_TIMEOUT"):
            values["operation_timeout"] = float(os.environ["COLSTORE_OPERATION_TIMEOUT"])
        if os.getenv("COLSTORE_SCAN_CACHING"):
            values["scan_caching"] = int(os.environ["COLSTORE_SCAN_CACHING"])
        if os.getenv("COLSTORE_POOL_SIZE"):
            values["pool_size"] = int(os.environ["COLSTORE_POOL_SIZE"])
        if os.getenv("COLSTORE_ECHO_SQL"):
            values["echo_sql"] = os.environ["COLSTORE_ECHO_SQL"].lower() in (
                "1",
                "true",
                "yes",
            )

        return cls(**values)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "url": "sqlite:///var/lib/colstore/store.db",
                    "operation_timeout": 30,
                    "scan_caching": 1000,
                    "pool_size": 5,
                }
            ]
        }
    }
