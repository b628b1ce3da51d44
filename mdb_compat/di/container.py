"""
Dependency Injection Container

Holds the services of one compatibility context: registered instances and
lazily created factories, keyed by type.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .providers import FactoryProvider
from .scopes import Scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Container:
    """
    Service container.

    Usage:
        container = Container()
        container.register_instance(CompatConfig, config)
        container.register_factory(
            Database,
            lambda c: Database(client[c.resolve(CompatConfig).db_name]),
        )
        database = container.resolve(Database)
    """

    def __init__(self):
        self._providers: dict[type, FactoryProvider] = {}
        self._instances: dict[type, Any] = {}

    def register_factory(
        self,
        service_type: type[T],
        factory: Callable[["Container"], T],
        scope: Scope = Scope.SINGLETON,
    ) -> "Container":
        """
        Register a service built by ``factory(container)``.

        Returns:
            Self for chaining
        """
        self._instances.pop(service_type, None)
        self._providers[service_type] = FactoryProvider(service_type, factory, scope)
        logger.debug(f"Registered factory for {service_type.__name__} as {scope.value}")
        return self

    def register_instance(self, service_type: type[T], instance: T) -> "Container":
        """
        Register an existing instance. Takes precedence over any factory.

        Returns:
            Self for chaining
        """
        self._instances[service_type] = instance
        logger.debug(f"Registered instance for {service_type.__name__}")
        return self

    def resolve(self, service_type: type[T]) -> T:
        """
        Resolve a service instance.

        Raises:
            KeyError: If the service is not registered
        """
        if service_type in self._instances:
            return self._instances[service_type]

        if service_type not in self._providers:
            raise KeyError(f"Service {service_type.__name__} is not registered")

        return self._providers[service_type].get(self)

    def try_resolve(self, service_type: type[T]) -> T | None:
        """Resolve a service, or None if it is not registered."""
        try:
            return self.resolve(service_type)
        except KeyError:
            return None

    def peek(self, service_type: type[T]) -> T | None:
        """Return the instance if it already exists, without creating it."""
        if service_type in self._instances:
            return self._instances[service_type]
        provider = self._providers.get(service_type)
        return provider.cached() if provider is not None else None

    def is_registered(self, service_type: type) -> bool:
        return service_type in self._providers or service_type in self._instances

    def reset(self) -> None:
        """Drop all registrations and cached instances."""
        for provider in self._providers.values():
            provider.reset()
        self._providers.clear()
        self._instances.clear()
        logger.debug("Container reset")

    def __contains__(self, service_type: type) -> bool:
        return self.is_registered(service_type)
