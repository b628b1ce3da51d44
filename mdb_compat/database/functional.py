"""
Functional legacy surface.

Module-level functions mirroring the legacy client's modular API, so call
sites such as ``get_docs(query(collection(db, "orders"), where("status",
"==", "new")))`` keep working unchanged.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .field_values import array_remove, array_union
from .query import Query
from .references import CollectionReference, DocumentReference
from .snapshots import DocumentSnapshot, QuerySnapshot, server_timestamp
from .store import Database

__all__ = [
    "QueryConstraint",
    "add_doc",
    "array_remove",
    "array_union",
    "collection",
    "delete_doc",
    "doc",
    "get_doc",
    "get_docs",
    "limit",
    "offset",
    "order_by",
    "query",
    "server_timestamp",
    "set_doc",
    "update_doc",
    "where",
]


@dataclass(frozen=True)
class QueryConstraint:
    """A deferred builder call applied by ``query()``."""

    kind: str
    args: tuple[Any, ...]

    def apply(self, target: Query) -> Query:
        if self.kind == "where":
            return target.where(*self.args)
        if self.kind == "order_by":
            return target.order_by(*self.args)
        if self.kind == "limit":
            return target.limit(*self.args)
        if self.kind == "offset":
            return target.offset(*self.args)
        raise ValueError(f"Unknown query constraint: {self.kind}")


def collection(db: Database, name: str) -> CollectionReference:
    return db.collection(name)


def doc(db: Database, path: str) -> DocumentReference:
    return db.doc(path)


def where(field: str, operator: str, value: Any) -> QueryConstraint:
    return QueryConstraint("where", (field, operator, value))


def order_by(field: str, direction: str = "asc") -> QueryConstraint:
    return QueryConstraint("order_by", (field, direction))


def limit(count: int) -> QueryConstraint:
    return QueryConstraint("limit", (count,))


def offset(count: int) -> QueryConstraint:
    return QueryConstraint("offset", (count,))


def query(base: Query, *constraints: QueryConstraint) -> Query:
    """Apply constraints to a collection or query, in order."""
    result = base
    for constraint in constraints:
        result = constraint.apply(result)
    return result


async def get_docs(target: Query) -> QuerySnapshot:
    return await target.get()


async def get_doc(ref: DocumentReference) -> DocumentSnapshot:
    return await ref.get()


async def add_doc(target: CollectionReference, data: Mapping[str, Any]) -> DocumentReference:
    return await target.add(data)


async def set_doc(ref: DocumentReference, data: Mapping[str, Any], merge: bool = False) -> None:
    await ref.set(data, merge=merge)


async def update_doc(ref: DocumentReference, data: Mapping[str, Any]) -> int:
    return await ref.update(data)


async def delete_doc(ref: DocumentReference) -> int:
    return await ref.delete()
