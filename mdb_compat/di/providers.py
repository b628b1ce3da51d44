"""
Service Providers

Providers create service instances according to their scope.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Generic, TypeVar

from .scopes import Scope

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FactoryProvider(Generic[T]):
    """
    Provider backed by a factory receiving the container.

    Usage:
        def create_database(container: Container) -> Database:
            config = container.resolve(CompatConfig)
            return Database(client[config.db_name])

        container.register_factory(Database, create_database)
    """

    def __init__(
        self,
        service_type: type[T],
        factory: Callable[["Container"], T],
        scope: Scope = Scope.SINGLETON,
    ):
        self.service_type = service_type
        self.scope = scope
        self._factory = factory
        self._instance: T | None = None

    @property
    def created(self) -> bool:
        return self._instance is not None

    def get(self, container: "Container") -> T:
        if self.scope == Scope.TRANSIENT:
            return self._factory(container)

        if self._instance is None:
            self._instance = self._factory(container)
            logger.debug(f"Created singleton: {self.service_type.__name__}")
        return self._instance

    def cached(self) -> T | None:
        return self._instance

    def reset(self) -> None:
        self._instance = None
