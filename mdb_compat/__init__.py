"""
MDB_COMPAT - Legacy Client Compatibility Layer

Keeps the call surface of a hosted document-store/auth/realtime client while
routing it to MongoDB, a token-issuing auth service and a websocket push
server.
"""

# Authentication
from .auth import AuthTokenManager, User, UserCredential
# Configuration
from .config import CompatConfig
# Core context
from .core import CompatContext
# Database layer
from .database import (CollectionReference, Database, DocumentReference,
                       DocumentSnapshot, Query, QuerySnapshot, Timestamp,
                       array_remove, array_union, server_timestamp)
# Migration rollout
from .migration import MigrationConfig, MigrationManager, MigrationPhase
# Realtime
from .realtime import RealtimeChannel

__version__ = "0.1.0"

__all__ = [
    # Core
    "CompatConfig",
    "CompatContext",
    # Database
    "Database",
    "CollectionReference",
    "DocumentReference",
    "DocumentSnapshot",
    "Query",
    "QuerySnapshot",
    "Timestamp",
    "array_remove",
    "array_union",
    "server_timestamp",
    # Auth
    "AuthTokenManager",
    "User",
    "UserCredential",
    # Realtime
    "RealtimeChannel",
    # Migration
    "MigrationConfig",
    "MigrationManager",
    "MigrationPhase",
]
