"""
Database module for MDB_COMPAT.

Legacy-compatible document and collection references backed by MongoDB,
the query translator and the immutable snapshot types.
"""

from .connection import close_shared_client, get_shared_mongo_client, verify_shared_client
from .field_values import ArrayRemove, ArrayUnion, array_remove, array_union
from .query import FieldFilter, Query, SortSpec, build_filter
from .references import CollectionReference, DocumentReference, generate_document_id
from .snapshots import DocumentSnapshot, QuerySnapshot, Timestamp, server_timestamp
from .store import Database, IdentityResolver

__all__ = [
    "ArrayRemove",
    "ArrayUnion",
    "CollectionReference",
    "Database",
    "DocumentReference",
    "DocumentSnapshot",
    "FieldFilter",
    "IdentityResolver",
    "Query",
    "QuerySnapshot",
    "SortSpec",
    "Timestamp",
    "array_remove",
    "array_union",
    "build_filter",
    "close_shared_client",
    "generate_document_id",
    "get_shared_mongo_client",
    "server_timestamp",
    "verify_shared_client",
]
