"""
Service lifetimes for the context container.
"""

from enum import Enum


class Scope(Enum):
    """
    Service lifetime scopes.

    SINGLETON: Created on first resolve and shared by the whole context.
               Use for: the Mongo client, the database facade, the auth
               manager, the realtime channel.

    TRANSIENT: New instance on every resolve.
               Use for: short-lived helpers such as health checkers.
    """

    SINGLETON = "singleton"
    TRANSIENT = "transient"
