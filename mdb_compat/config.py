"""
Configuration management for MDB_COMPAT.

Every setting can be passed directly or falls back to an environment
variable. Nothing is validated at construction time; call ``validate()``
to detect missing required settings eagerly.
"""

import os
from collections.abc import Mapping

from .constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_PROFILE_COLLECTION,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from .exceptions import ConfigurationError


def _env_flag(environ: Mapping[str, str], key: str, default: str = "false") -> bool:
    return environ.get(key, default).strip().lower() == "true"


class CompatConfig:
    """
    Compatibility layer configuration.

    Example:
        # Using environment variables
        config = CompatConfig()
        config.validate()

        # Or using direct parameters
        config = CompatConfig(
            mongo_uri="mongodb://localhost:27017",
            db_name="orders",
            auth_api_base_url="http://localhost:9002/api/auth",
        )
    """

    def __init__(
        self,
        mongo_uri: str | None = None,
        db_name: str | None = None,
        auth_api_base_url: str | None = None,
        ws_url: str | None = None,
        request_timeout: float | None = None,
        connect_timeout: float | None = None,
        token_store_path: str | None = None,
        permissive_reads: bool | None = None,
        profile_collection: str | None = None,
        max_pool_size: int | None = None,
        min_pool_size: int | None = None,
        server_selection_timeout_ms: int | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        """
        Initialize configuration.

        Args:
            mongo_uri: MongoDB connection URI (defaults to MONGODB_URI env var)
            db_name: Database name (defaults to MONGODB_DATABASE env var)
            auth_api_base_url: Base URL of the auth service (defaults to AUTH_API_BASE_URL)
            ws_url: Realtime push channel URL (defaults to WS_URL)
            request_timeout: Deadline for HTTP and database calls in seconds
            connect_timeout: Deadline for the websocket handshake in seconds
            token_store_path: JSON file for persisted tokens (in-memory when unset)
            permissive_reads: Degrade read outages to non-existent snapshots
                              (developer mode only, defaults to PERMISSIVE_READS)
            profile_collection: Collection that receives sign-up profile records
            max_pool_size: Maximum Mongo connection pool size
            min_pool_size: Minimum Mongo connection pool size
            server_selection_timeout_ms: Mongo server selection timeout
            environ: Mapping to read variables from (defaults to os.environ)
        """
        env = os.environ if environ is None else environ
        self.environ = env
        self.mongo_uri = mongo_uri or env.get("MONGODB_URI", "")
        self.db_name = db_name or env.get("MONGODB_DATABASE", "")
        self.auth_api_base_url = auth_api_base_url or env.get(
            "AUTH_API_BASE_URL", "http://localhost:9002/api/auth"
        )
        self.ws_url = ws_url or env.get("WS_URL", "")
        self.request_timeout = request_timeout or float(
            env.get("REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
        )
        self.connect_timeout = connect_timeout or float(
            env.get("WS_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT))
        )
        self.token_store_path = token_store_path or env.get("TOKEN_STORE_PATH") or None
        self.permissive_reads = (
            permissive_reads
            if permissive_reads is not None
            else _env_flag(env, "PERMISSIVE_READS")
        )
        self.profile_collection = profile_collection or env.get(
            "PROFILE_COLLECTION", DEFAULT_PROFILE_COLLECTION
        )
        self.max_pool_size = max_pool_size or int(
            env.get("MONGO_MAX_POOL_SIZE", str(DEFAULT_MAX_POOL_SIZE))
        )
        self.min_pool_size = min_pool_size or int(
            env.get("MONGO_MIN_POOL_SIZE", str(DEFAULT_MIN_POOL_SIZE))
        )
        self.server_selection_timeout_ms = server_selection_timeout_ms or int(
            env.get(
                "MONGO_SERVER_SELECTION_TIMEOUT_MS",
                str(DEFAULT_SERVER_SELECTION_TIMEOUT_MS),
            )
        )

        # Rollout flags
        self.use_new_auth = _env_flag(env, "USE_NEW_AUTH")
        self.use_new_database = _env_flag(env, "USE_NEW_DATABASE")
        self.use_new_storage = _env_flag(env, "USE_NEW_STORAGE")
        self.use_new_realtime = _env_flag(env, "USE_NEW_REALTIME")

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If required configuration is missing or invalid
        """
        if not self.mongo_uri:
            raise ConfigurationError(
                "mongo_uri is required (set MONGODB_URI environment variable or pass directly)",
                config_key="mongo_uri",
            )

        if not self.db_name:
            raise ConfigurationError(
                "db_name is required (set MONGODB_DATABASE environment variable "
                "or pass directly)",
                config_key="db_name",
            )

        if not self.auth_api_base_url:
            raise ConfigurationError(
                "auth_api_base_url is required", config_key="auth_api_base_url"
            )

        if self.use_new_realtime and not self.ws_url:
            raise ConfigurationError(
                "ws_url is required when USE_NEW_REALTIME is enabled",
                config_key="ws_url",
            )

        if self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be > 0, got {self.request_timeout}",
                config_key="request_timeout",
                config_value=self.request_timeout,
            )

        if self.connect_timeout <= 0:
            raise ConfigurationError(
                f"connect_timeout must be > 0, got {self.connect_timeout}",
                config_key="connect_timeout",
                config_value=self.connect_timeout,
            )

        if self.min_pool_size < 1 or self.max_pool_size < 1:
            raise ConfigurationError(
                "pool sizes must be >= 1",
                config_key="max_pool_size",
                config_value=self.max_pool_size,
            )

        if self.min_pool_size > self.max_pool_size:
            raise ConfigurationError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})",
                config_key="min_pool_size",
                config_value=self.min_pool_size,
            )

    def settings(self) -> dict[str, str]:
        """Return the raw settings mapping used for migration validation."""
        return dict(self.environ)
