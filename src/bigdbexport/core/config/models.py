"""
Pydantic configuration models for BigDB Export.

These models provide type-safe configuration with validation for:
- Remote API settings
- Connection provisioning
- Export output layout and concurrency
- Logging
- Account credentials supplied on the command line
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class AuthenticationMethod(str, Enum):
    """Authentication methods a BigDB connection can require."""

    BASIC = "basic"
    BASIC_REQUIRES_AUTHENTICATION = "basic_requires_authentication"


# =============================================================================
# Remote Configuration
# =============================================================================


class RemoteConfig(BaseModel):
    """Remote control-plane and data-plane API settings."""

    api_url: str = Field(
        default="https://api.playerio.com",
        description="Base URL of the BigDB API gateway",
    )
    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts for a single record load",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff multiplier for record load retries",
    )

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# =============================================================================
# Provisioning Configuration
# =============================================================================


class ProvisioningConfig(BaseModel):
    """Settings for the temporary export connection."""

    connection_name: str = Field(
        default="export",
        min_length=1,
        description="Reserved name of the export connection",
    )
    description: str = Field(
        default="A connection with read access to all BigDB tables - used for exporting games.",
    )
    authentication_method: AuthenticationMethod = Field(
        default=AuthenticationMethod.BASIC_REQUIRES_AUTHENTICATION,
    )
    access_group: str = Field(
        default="Default",
        description="Access-right group the connection is created in",
    )
    client_user_id: str = Field(
        default="user",
        min_length=1,
        description="User id used when authenticating against the connection",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Fixed wait between control-plane visibility checks",
    )
    max_wait_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Give up waiting for visibility after this long (unbounded if unset)",
    )


# =============================================================================
# Export Configuration
# =============================================================================


class ExportConfig(BaseModel):
    """Output layout and scheduling of the export pipeline."""

    output_dir: Path = Field(
        default=Path("exports"),
        description="Root directory records are written under",
    )
    error_log: Path = Field(
        default=Path("errorlog.txt"),
        description="Append-only log of per-key failures",
    )
    record_extension: str = Field(
        default="tson",
        min_length=1,
        description="File extension of exported records",
    )
    max_concurrent_archives: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Archives processed at the same time",
    )

    @field_validator("record_extension")
    @classmethod
    def strip_leading_dot(cls, v: str) -> str:
        v = v.lstrip(".")
        if not v:
            raise ValueError("record_extension must not be empty")
        return v


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO")
    file: Path | None = Field(default=None)
    json_format: bool = Field(default=True)
    rich_console: bool = Field(default=True)

    @field_validator("level")
    @classmethod
    def valid_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Top-level application configuration."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Credentials
# =============================================================================


class Credentials(BaseModel):
    """The four required inputs of an export run."""

    username: str = Field(min_length=1)
    password: str = Field(min_length=1, repr=False)
    game_id: str = Field(min_length=1)
    import_folder: Path

    @field_validator("username", "password", "game_id", mode="before")
    @classmethod
    def not_blank(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("import_folder", mode="before")
    @classmethod
    def folder_not_blank(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("must not be empty")
        return v
