"""
Unit tests for the service container.
"""

import pytest

from mdb_compat.di import Container, FactoryProvider, Scope


class Service:
    def __init__(self, name: str = "service"):
        self.name = name


class Dependent:
    def __init__(self, service: Service):
        self.service = service


class TestRegistration:
    def test_instance_wins_over_factory(self):
        container = Container()
        instance = Service("registered")
        container.register_factory(Service, lambda c: Service("built"))
        container.register_instance(Service, instance)

        assert container.resolve(Service) is instance

    def test_unregistered_raises_key_error(self):
        with pytest.raises(KeyError):
            Container().resolve(Service)

    def test_try_resolve(self):
        assert Container().try_resolve(Service) is None

    def test_contains(self):
        container = Container().register_factory(Service, lambda c: Service())
        assert Service in container
        assert Dependent not in container


class TestScopes:
    def test_singleton(self):
        container = Container().register_factory(Service, lambda c: Service())
        assert container.resolve(Service) is container.resolve(Service)

    def test_transient(self):
        container = Container().register_factory(Service, lambda c: Service(), Scope.TRANSIENT)
        assert container.resolve(Service) is not container.resolve(Service)

    def test_factories_receive_the_container(self):
        container = Container()
        container.register_factory(Service, lambda c: Service())
        container.register_factory(Dependent, lambda c: Dependent(c.resolve(Service)))

        assert container.resolve(Dependent).service is container.resolve(Service)


class TestPeekAndReset:
    def test_peek_does_not_create(self):
        built = []
        container = Container().register_factory(Service, lambda c: built.append(1) or Service())

        assert container.peek(Service) is None
        assert built == []
        container.resolve(Service)
        assert container.peek(Service) is not None

    def test_reset_drops_everything(self):
        container = Container().register_factory(Service, lambda c: Service())
        container.resolve(Service)

        container.reset()

        assert not container.is_registered(Service)
        assert container.peek(Service) is None

    def test_provider_reset(self):
        provider = FactoryProvider(Service, lambda c: Service())
        provider.get(Container())
        assert provider.created
        provider.reset()
        assert provider.cached() is None
