"""
Configuration for document store connections.

Uses pydantic-settings for environment variable loading; every setting can be
overridden with a COUCHDAO_ prefixed variable (e.g. COUCHDAO_URL).
Credentials are never included in logged output.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class StoreBackend(str, Enum):
    """Supported store backends."""

    COUCHDB = "couchdb"
    MEMORY = "memory"


class StoreSettings(BaseSettings):
    """Store connection settings loaded from environment."""

    backend: StoreBackend = Field(default=StoreBackend.COUCHDB, description="Store backend")

    # CouchDB server
    url: str = Field(default="http://localhost:5984", description="CouchDB server URL")
    database: str = Field(default="couchdao", description="Database name")
    username: str | None = Field(default=None, description="Basic auth user")
    password: SecretStr | None = Field(default=None, description="Basic auth password")

    timeout: float = Field(default=30.0, description="Request timeout seconds")
    partitioned: bool = Field(default=True, description="Create databases as partitioned")

    model_config = {"env_prefix": "COUCHDAO_"}

    @property
    def database_url(self) -> str:
        """Full database URL, without credentials."""
        return f"{self.url.rstrip('/')}/{self.database}"
