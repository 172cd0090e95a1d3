from __future__ import annotations

import re
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """
    Database settings for the postgres record store.

    Only read when STORE_BACKEND=postgres. Accepts either POSTGRES_URL or the
    individual POSTGRES_* variables of the standard postgres container.
    """

    POSTGRES_URL: Optional[str] = Field(
        default=None, description="If provided, full PostgreSQL connection URL."
    )
    POSTGRES_USER: Optional[str] = Field(default=None, description="DB username")
    POSTGRES_PASSWORD: Optional[str] = Field(default=None, description="DB password")
    POSTGRES_DB: Optional[str] = Field(default=None, description="Database name")
    POSTGRES_HOST: str = Field(default="localhost", description="Database host")
    POSTGRES_PORT: int = Field(default=5432, description="Database port")

    # Engine options
    SQL_ECHO: bool = Field(default=False, description="Echo SQL statements for debugging")
    DB_POOL_SIZE: int = Field(default=5, ge=1, description="Connections kept in the pool")
    DB_MAX_OVERFLOW: int = Field(default=10, ge=0, description="Extra connections allowed under load")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    def _url(self, drivername: str) -> str:
        if self.POSTGRES_URL:
            return re.sub(r"^postgresql(\+\w+)?://", f"{drivername}://", self.POSTGRES_URL)
        if not all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_DB]):
            raise ValueError(
                "Database configuration missing. Set POSTGRES_URL or "
                "POSTGRES_USER, POSTGRES_PASSWORD and POSTGRES_DB."
            )
        return URL.create(
            drivername,
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            database=self.POSTGRES_DB,
        ).render_as_string(hide_password=False)

    @property
    def async_database_url(self) -> str:
        """asyncpg URL used by the runtime AsyncEngine and online migrations."""
        return self._url("postgresql+asyncpg")

    @property
    def sync_database_url(self) -> str:
        """Driverless URL for Alembic offline mode (no psycopg needed)."""
        return self._url("postgresql")


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return a fresh database settings object."""
    return Settings()
