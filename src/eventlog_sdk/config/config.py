"""Client configuration from YAML file or keyword arguments.

A ClientConfig is an explicit, immutable-by-convention object passed to each
token endpoint, session and requester. There is no process-wide default.

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files:

    client:
      client_id: ${EVENTLOG_CLIENT_ID}
      client_secret: ${EVENTLOG_CLIENT_SECRET}
      api_root_url: ${EVENTLOG_API_ROOT:-https://api.box.com}
      num_max_retries: 5
      app_auth:
        key_id: ${EVENTLOG_KEY_ID}
        private_key_path: /etc/eventlog/private_key.pem
        passphrase: ${EVENTLOG_KEY_PASSPHRASE}
"""

import dataclasses
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from eventlog_sdk.errors.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_API_ROOT_URL = "https://api.box.com"
DEFAULT_API_VERSION = "2.0"
TOKEN_PATH = "/oauth2/token"
REVOKE_PATH = "/oauth2/revoke"

JWT_ALGORITHMS = ("RS256", "RS384", "RS512")
JWT_MIN_EXPIRATION_SECONDS = 1
JWT_MAX_EXPIRATION_SECONDS = 60


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppAuthConfig:
    """Signing material for the JWT bearer grant.

    Attributes:
        key_id: Public key id registered with the platform (JWT "kid" header)
        private_key: PEM-encoded RSA private key
        passphrase: Passphrase for an encrypted private key
        algorithm: RS256, RS384 or RS512
        expiration_time: Assertion lifetime in seconds (1-60)
        verify_timestamp: Include an "iat" claim in the assertion
    """

    key_id: str
    private_key: str
    passphrase: str | None = None
    algorithm: str = "RS256"
    expiration_time: int = 30
    verify_timestamp: bool = False

    def __post_init__(self):
        self.expiration_time = int(self.expiration_time)
        self.verify_timestamp = _as_bool(self.verify_timestamp)

        if not self.key_id:
            raise InvalidConfigurationError("app_auth.key_id is required")
        if not self.private_key:
            raise InvalidConfigurationError("app_auth.private_key is required")
        if self.algorithm not in JWT_ALGORITHMS:
            raise InvalidConfigurationError(
                f"app_auth.algorithm must be one of {list(JWT_ALGORITHMS)}, "
                f"got '{self.algorithm}'"
            )
        if not (
            JWT_MIN_EXPIRATION_SECONDS
            <= self.expiration_time
            <= JWT_MAX_EXPIRATION_SECONDS
        ):
            raise InvalidConfigurationError(
                f"app_auth.expiration_time must be between {JWT_MIN_EXPIRATION_SECONDS} "
                f"and {JWT_MAX_EXPIRATION_SECONDS}, got {self.expiration_time}"
            )


@dataclass
class ClientConfig:
    """Settings shared by every session, token endpoint and requester of one client.

    Attributes:
        client_id: OAuth2 client id
        client_secret: OAuth2 client secret
        api_root_url: Platform root URL (token endpoints live under it)
        api_version: API version path segment
        retry_interval_seconds: Base delay for exponential backoff
        num_max_retries: Retries after the first attempt for transient failures
        expired_buffer_seconds: Safety margin before expiry that triggers a refresh
        stale_buffer_seconds: Window before the expiry margin in which a
            background refresh is started while the current token is still served
        request_timeout_seconds: Total timeout for a single HTTP request
        enterprise_id: Enterprise subject for app auth and client credentials
        app_auth: JWT signing material, required by app-auth sessions
    """

    client_id: str = ""
    client_secret: str = ""
    api_root_url: str = DEFAULT_API_ROOT_URL
    api_version: str = DEFAULT_API_VERSION
    retry_interval_seconds: float = 2.0
    num_max_retries: int = 5
    expired_buffer_seconds: float = 60.0
    stale_buffer_seconds: float = 0.0
    request_timeout_seconds: float = 60.0
    enterprise_id: str | None = None
    app_auth: AppAuthConfig | None = None
    extra_headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Ensure proper types from YAML/env vars and validate ranges."""
        self.retry_interval_seconds = float(self.retry_interval_seconds)
        self.num_max_retries = int(self.num_max_retries)
        self.expired_buffer_seconds = float(self.expired_buffer_seconds)
        self.stale_buffer_seconds = float(self.stale_buffer_seconds)
        self.request_timeout_seconds = float(self.request_timeout_seconds)
        self.api_root_url = self.api_root_url.rstrip("/")
        if self.enterprise_id is not None:
            self.enterprise_id = str(self.enterprise_id)
        if isinstance(self.app_auth, dict):
            self.app_auth = AppAuthConfig(**self.app_auth)
        self.validate()

    def validate(self) -> None:
        if not self.api_root_url.startswith(("http://", "https://")):
            raise InvalidConfigurationError(
                f"api_root_url must be an http(s) URL, got '{self.api_root_url}'"
            )
        if self.retry_interval_seconds <= 0:
            raise InvalidConfigurationError(
                f"retry_interval_seconds must be > 0, got {self.retry_interval_seconds}"
            )
        if self.num_max_retries < 0:
            raise InvalidConfigurationError(
                f"num_max_retries must be >= 0, got {self.num_max_retries}"
            )
        for name in ("expired_buffer_seconds", "stale_buffer_seconds"):
            if getattr(self, name) < 0:
                raise InvalidConfigurationError(
                    f"{name} must be >= 0, got {getattr(self, name)}"
                )
        if self.request_timeout_seconds <= 0:
            raise InvalidConfigurationError(
                f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}"
            )

    @property
    def token_url(self) -> str:
        return f"{self.api_root_url}{TOKEN_PATH}"

    @property
    def revoke_url(self) -> str:
        return f"{self.api_root_url}{REVOKE_PATH}"

    @property
    def api_base_url(self) -> str:
        return f"{self.api_root_url}/{self.api_version}"

    def require_client_credentials(self) -> None:
        """Raise unless both client id and secret are set."""
        if not self.client_id or not self.client_secret:
            raise InvalidConfigurationError(
                "client_id and client_secret are required for this grant"
            )

    def extend(self, **overrides: Any) -> "ClientConfig":
        """Return a new config with the given fields replaced."""
        return dataclasses.replace(self, **overrides)


def _read_private_key(app_auth: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Resolve private_key_path into an inline private_key."""
    app_auth = dict(app_auth)
    key_path = app_auth.pop("private_key_path", None)
    if key_path and not app_auth.get("private_key"):
        path = Path(key_path)
        if not path.is_absolute():
            path = base_dir / path
        try:
            app_auth["private_key"] = path.read_text()
        except OSError as e:
            raise InvalidConfigurationError(
                f"Cannot read app_auth.private_key_path '{path}': {e}", cause=e
            ) from e
    return app_auth


def load_config(
    config_path: Path,
    overrides: dict[str, Any] | None = None,
) -> ClientConfig:
    """Load client configuration from the "client:" section of a YAML file.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "client" not in yaml_data:
        raise InvalidConfigurationError(
            f"Invalid config file {config_path}: missing 'client:' section"
        )

    client_data = dict(yaml_data["client"] or {})
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        client_data.update(overrides)

    if isinstance(client_data.get("app_auth"), dict):
        client_data["app_auth"] = AppAuthConfig(
            **_read_private_key(client_data["app_auth"], config_path.parent)
        )

    known = {f.name for f in dataclasses.fields(ClientConfig)}
    unknown = sorted(set(client_data) - known)
    if unknown:
        raise InvalidConfigurationError(f"Unknown client settings: {unknown}")

    config = ClientConfig(**client_data)
    logger.debug(
        "Configuration loaded successfully",
        extra={"url": config.api_root_url, "max_attempts": config.num_max_retries + 1},
    )
    return config


__all__ = [
    "AppAuthConfig",
    "ClientConfig",
    "load_config",
    "load_yaml",
    "DEFAULT_API_ROOT_URL",
    "DEFAULT_API_VERSION",
]
