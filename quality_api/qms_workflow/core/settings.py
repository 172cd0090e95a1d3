from __future__ import annotations

import json
from typing import Annotated, List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) and value.lstrip().startswith("["):
        value = json.loads(value)
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(value)


class AppSettings(BaseSettings):
    """
    Service settings read from the environment (and .env).

    Database connection variables live in qms_workflow.db.config.Settings and are
    only read when STORE_BACKEND=postgres.
    """

    APP_NAME: str = Field(default="Quality Workflow API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for the quality nonconformance workflow: NCR, MRB, CAPA (8D) "
            "and SCAR records with state machines, approvals, linkage and audit trail."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")
    ENVIRONMENT: Optional[str] = Field(default=None, description="dev/test/prod label, informational only")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level name.")

    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins.",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    STORE_BACKEND: Literal["memory", "postgres"] = Field(
        default="memory",
        description="Record store backend: process-local memory or PostgreSQL.",
    )
    BLOB_STORAGE_ROOT: str = Field(
        default="./blob-storage",
        description="Root directory for attachment bytes (local blob store).",
    )
    MAX_ATTACHMENT_BYTES: int = Field(
        default=5 * 1024 * 1024, ge=1, description="Maximum accepted upload size in bytes."
    )

    NCR_REQUIRED_APPROVERS: int = Field(
        default=1, ge=1, description="Disposition sign-offs required before an NCR can close."
    )
    MRB_DEFAULT_QUORUM: int = Field(
        default=3, ge=1, description="quorumRequired applied to MRBs created without one."
    )

    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=False,
        description="If true and STORE_BACKEND=postgres, run Alembic migrations (upgrade head) at startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, create a small linked NCR/MRB/CAPA/SCAR demo set at startup.",
    )
    SEED_TENANT_ID: UUID = Field(
        default=UUID("00000000-0000-0000-0000-00000000a11c"),
        description="Tenant that receives the demo records.",
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS", mode="before")
    @classmethod
    def _parse_csv_lists(cls, v):
        # Empty means "any".
        return _split_csv(v) or ["*"]

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        return str(v or "INFO").upper()

    @property
    def cors_credentials_allowed(self) -> bool:
        """Credentials are only sent to explicit origins, never with the '*' wildcard."""
        return self.CORS_ALLOW_CREDENTIALS and "*" not in self.CORS_ORIGINS


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """Read AppSettings from the environment. Not cached, so tests can set env vars per case."""
    return AppSettings()
