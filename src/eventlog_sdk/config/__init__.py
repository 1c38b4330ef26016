"""Client configuration."""

from eventlog_sdk.config.config import (
    DEFAULT_API_ROOT_URL,
    DEFAULT_API_VERSION,
    AppAuthConfig,
    ClientConfig,
    load_config,
)

__all__ = [
    "AppAuthConfig",
    "ClientConfig",
    "load_config",
    "DEFAULT_API_ROOT_URL",
    "DEFAULT_API_VERSION",
]
