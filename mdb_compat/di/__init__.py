"""
MDB_COMPAT Dependency Injection Module

Small service container replacing process-wide singletons:

    from mdb_compat.di import Container, Scope

    container = Container()
    container.register_instance(CompatConfig, config)
    container.register_factory(Database, build_database)
    database = container.resolve(Database)
"""

from .container import Container
from .providers import FactoryProvider
from .scopes import Scope

__all__ = [
    "Container",
    "FactoryProvider",
    "Scope",
]
