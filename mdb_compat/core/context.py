"""
Compatibility Context

Owns the services a legacy client used to reach through module-level
singletons: one Database, one AuthTokenManager, one RealtimeChannel and a
MigrationManager, all built from a CompatConfig and wired through a
Container.

This module is part of MDB_COMPAT.

Usage:
    async with CompatContext.from_config(CompatConfig()) as ctx:
        await ctx.auth.sign_in("ada@example.com", "s3cret")
        orders = await ctx.database.collection("orders").where("status", "==", "open").get()
"""

import logging
from typing import Any

import httpx
from motor.motor_asyncio import AsyncIOMotorClient

from ..auth.client import AuthApiClient
from ..auth.manager import AuthTokenManager
from ..auth.token_store import FileTokenStore, MemoryTokenStore, TokenStore
from ..config import CompatConfig
from ..database.connection import close_shared_client, get_shared_mongo_client
from ..database.store import Database
from ..di import Container
from ..migration.state import MigrationManager
from ..observability.health import (
    HealthChecker,
    check_auth_health,
    check_database_health,
    check_realtime_health,
)
from ..realtime.channel import Connector, RealtimeChannel

logger = logging.getLogger(__name__)


class CompatContext:
    """
    Service holder for one client process.

    Services are created lazily on first access. Closing the context closes
    only what was created.

    Args:
        config: Configuration
        container: Optional pre-populated container; instances registered in
            it (e.g. a test Motor database) take precedence over factories
        auth_transport: Optional httpx transport for the auth service
        ws_connector: Optional websocket connector for the realtime channel
    """

    def __init__(
        self,
        config: CompatConfig,
        container: Container | None = None,
        *,
        auth_transport: httpx.AsyncBaseTransport | None = None,
        ws_connector: Connector | None = None,
    ):
        self.config = config
        self.container = container or Container()
        self._auth_transport = auth_transport
        self._ws_connector = ws_connector
        self._owns_mongo_client = False
        self._closed = False
        self._register_services()

    @classmethod
    def from_config(cls, config: CompatConfig | None = None, **kwargs: Any) -> "CompatContext":
        """
        Validate the configuration and build a context from it.

        Raises:
            ConfigurationError: If a required setting is missing or invalid
        """
        config = config or CompatConfig()
        config.validate()
        return cls(config, **kwargs)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _register_services(self) -> None:
        c = self.container
        c.register_instance(CompatConfig, self.config)
        if AsyncIOMotorClient not in c:
            c.register_factory(AsyncIOMotorClient, self._build_mongo_client)
        if Database not in c:
            c.register_factory(Database, self._build_database)
        if TokenStore not in c:
            c.register_factory(TokenStore, self._build_token_store)
        if AuthTokenManager not in c:
            c.register_factory(AuthTokenManager, self._build_auth)
        if RealtimeChannel not in c:
            c.register_factory(RealtimeChannel, self._build_realtime)
        if MigrationManager not in c:
            c.register_factory(
                MigrationManager, lambda _: MigrationManager.from_env(self.config.settings())
            )

    def _build_mongo_client(self, container: Container) -> AsyncIOMotorClient:
        config = container.resolve(CompatConfig)
        self._owns_mongo_client = True
        return get_shared_mongo_client(
            config.mongo_uri,
            max_pool_size=config.max_pool_size,
            min_pool_size=config.min_pool_size,
            server_selection_timeout_ms=config.server_selection_timeout_ms,
        )

    def _build_database(self, container: Container) -> Database:
        config = container.resolve(CompatConfig)
        client = container.resolve(AsyncIOMotorClient)
        return Database(
            client[config.db_name],
            request_timeout=config.request_timeout,
            permissive_reads=config.permissive_reads,
        )

    def _build_token_store(self, container: Container) -> TokenStore:
        path = container.resolve(CompatConfig).token_store_path
        return FileTokenStore(path) if path else MemoryTokenStore()

    def _build_auth(self, container: Container) -> AuthTokenManager:
        config = container.resolve(CompatConfig)
        client = AuthApiClient(
            config.auth_api_base_url,
            timeout=config.request_timeout,
            transport=self._auth_transport,
        )
        return AuthTokenManager(
            client,
            container.resolve(TokenStore),
            database=container.resolve(Database),
            profile_collection=config.profile_collection,
        )

    def _build_realtime(self, container: Container) -> RealtimeChannel:
        config = container.resolve(CompatConfig)
        database = container.resolve(Database)
        channel = RealtimeChannel(
            config.ws_url,
            database,
            auth=container.resolve(AuthTokenManager),
            connector=self._ws_connector,
            connect_timeout=config.connect_timeout,
        )
        database.attach_realtime(channel)
        return channel

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    @property
    def database(self) -> Database:
        database = self.container.resolve(Database)
        if self.config.ws_url:
            # Attaches the channel for on_snapshot listeners
            self.container.resolve(RealtimeChannel)
        return database

    @property
    def auth(self) -> AuthTokenManager:
        return self.container.resolve(AuthTokenManager)

    @property
    def realtime(self) -> RealtimeChannel:
        return self.container.resolve(RealtimeChannel)

    @property
    def migration(self) -> MigrationManager:
        return self.container.resolve(MigrationManager)

    async def get_health_status(self) -> dict[str, Any]:
        """
        Health of the services created so far.

        Returns:
            Dictionary with overall status and component checks
        """
        health_checker = HealthChecker()
        database = self.container.peek(Database)
        channel = self.container.peek(RealtimeChannel)
        auth = self.container.peek(AuthTokenManager)

        health_checker.register_check(lambda: check_database_health(database))
        if channel is not None:
            health_checker.register_check(lambda: check_realtime_health(channel))
        if auth is not None:
            health_checker.register_check(lambda: check_auth_health(auth))
        return await health_checker.check_all()

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """
        Close the realtime channel, the auth manager and the Mongo client.

        Idempotent.
        """
        if self._closed:
            return
        self._closed = True

        channel = self.container.peek(RealtimeChannel)
        if channel is not None:
            await channel.close()

        auth = self.container.peek(AuthTokenManager)
        if auth is not None:
            await auth.close()

        if self._owns_mongo_client and self.container.peek(AsyncIOMotorClient) is not None:
            close_shared_client()

        self.container.reset()
        logger.info("Compatibility context closed")

    async def __aenter__(self) -> "CompatContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
