"""Configuration loading and validation."""

from .models import (
    # Enums
    AuthenticationMethod,
    # Config models
    AppConfig,
    RemoteConfig,
    ProvisioningConfig,
    ExportConfig,
    LoggingConfig,
    Credentials,
)
from .loader import ConfigError, build_credentials, load_app_config

__all__ = [
    # Enums
    "AuthenticationMethod",
    # Config models
    "AppConfig",
    "RemoteConfig",
    "ProvisioningConfig",
    "ExportConfig",
    "LoggingConfig",
    "Credentials",
    # Loaders
    "ConfigError",
    "build_credentials",
    "load_app_config",
]
