"""
Query Translator

Builds MongoDB queries from the legacy chained filter / sort / limit DSL.

Every builder call returns a new Query, so a base query can be reused to
derive several queries safely:

    active = db.collection("orders").where("status", "==", "active")
    recent = active.order_by("createdAt", "desc").limit(10)
    large = active.where("total", ">=", 100)

Filters are AND-combined and kept in a canonical order, so the order of
``where`` calls never changes the effective filter. Sort clauses keep the
order in which they were added.

This module is part of MDB_COMPAT.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..constants import OPERATOR_MAP, SORT_DIRECTIONS
from ..exceptions import UnsupportedOperatorError
from .snapshots import DocumentSnapshot, QuerySnapshot, to_storage_value

if TYPE_CHECKING:
    from .store import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldFilter:
    """A single ``(field, operator, value)`` clause."""

    field: str
    operator: str
    value: Any

    def sort_key(self) -> tuple[str, str, str]:
        return (self.field, self.operator, repr(self.value))

    def to_mongo(self) -> dict[str, Any]:
        """Translate this clause into a MongoDB operator expression for its field."""
        value = to_storage_value(self.value)
        mongo_op = OPERATOR_MAP[self.operator]
        if self.operator == "array-contains":
            return {mongo_op: {"$eq": value}}
        return {mongo_op: value}


@dataclass(frozen=True)
class SortSpec:
    """A single ``(field, direction)`` sort clause."""

    field: str
    direction: str = "asc"

    def to_mongo(self) -> tuple[str, int]:
        return (self.field, SORT_DIRECTIONS[self.direction])


def build_filter(filters: tuple[FieldFilter, ...]) -> dict[str, Any]:
    """
    Combine clauses into a MongoDB filter document.

    Clauses on the same field are merged into one operator document
    (``{"total": {"$gte": 10, "$lt": 20}}``). When two clauses use the same
    operator on the same field they cannot be merged, and the whole filter
    falls back to an explicit ``$and``.

    Args:
        filters: Clauses in canonical order

    Returns:
        MongoDB filter document (``{}`` matches everything)
    """
    merged: dict[str, dict[str, Any]] = {}
    for clause in filters:
        expression = clause.to_mongo()
        existing = merged.setdefault(clause.field, {})
        if any(op in existing for op in expression):
            return {"$and": [{c.field: c.to_mongo()} for c in filters]}
        existing.update(expression)
    return merged


class Query:
    """
    Immutable query over one collection.

    Args:
        database: The Database that executes the query
        collection_name: Target collection
        filters: Clauses in canonical order
        sort: Sort clauses in call order
        limit_count: Maximum number of results (None for no limit)
        offset_count: Number of results to skip before the limit applies
    """

    def __init__(
        self,
        database: "Database",
        collection_name: str,
        filters: tuple[FieldFilter, ...] = (),
        sort: tuple[SortSpec, ...] = (),
        limit_count: int | None = None,
        offset_count: int | None = None,
    ):
        self._database = database
        self._collection_name = collection_name
        self._filters = filters
        self._sort = sort
        self._limit_count = limit_count
        self._offset_count = offset_count

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def filters(self) -> tuple[FieldFilter, ...]:
        return self._filters

    @property
    def sort(self) -> tuple[SortSpec, ...]:
        return self._sort

    @property
    def limit_count(self) -> int | None:
        return self._limit_count

    @property
    def offset_count(self) -> int | None:
        return self._offset_count

    # ------------------------------------------------------------------
    # Builder
    # ------------------------------------------------------------------

    def _copy(self, **changes: Any) -> "Query":
        values = {
            "filters": self._filters,
            "sort": self._sort,
            "limit_count": self._limit_count,
            "offset_count": self._offset_count,
        }
        values.update(changes)
        return Query(self._database, self._collection_name, **values)

    def where(self, field: str, operator: str, value: Any) -> "Query":
        """
        Add a filter clause.

        Args:
            field: Field name (dotted paths are passed through)
            operator: One of ``== != > >= < <= in array-contains``
            value: Comparison value (a list for ``in``)

        Returns:
            A new Query

        Raises:
            UnsupportedOperatorError: If the operator is not supported
            ValueError: If ``in`` is given something other than a list
        """
        if operator not in OPERATOR_MAP:
            raise UnsupportedOperatorError(
                operator, context={"collection": self._collection_name, "field": field}
            )
        if operator == "in":
            if not isinstance(value, list | tuple | set | frozenset):
                raise ValueError(f"'in' filters require a list of values, got {type(value)}")
            value = list(value)

        clause = FieldFilter(field, operator, value)
        filters = tuple(sorted(self._filters + (clause,), key=FieldFilter.sort_key))
        return self._copy(filters=filters)

    def order_by(self, field: str, direction: str = "asc") -> "Query":
        """
        Add a sort clause. Ordering an already sorted field replaces its
        direction without moving it.
        """
        direction = direction.lower()
        if direction not in SORT_DIRECTIONS:
            raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")

        spec = SortSpec(field, direction)
        if any(s.field == field for s in self._sort):
            sort = tuple(spec if s.field == field else s for s in self._sort)
        else:
            sort = self._sort + (spec,)
        return self._copy(sort=sort)

    # Legacy camelCase spelling
    orderBy = order_by

    def limit(self, count: int) -> "Query":
        if not isinstance(count, int) or count < 0:
            raise ValueError(f"limit must be a non-negative integer, got {count!r}")
        return self._copy(limit_count=count)

    def offset(self, count: int) -> "Query":
        if not isinstance(count, int) or count < 0:
            raise ValueError(f"offset must be a non-negative integer, got {count!r}")
        return self._copy(offset_count=count)

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def to_mongo_filter(self) -> dict[str, Any]:
        return build_filter(self._filters)

    def to_mongo_sort(self) -> list[tuple[str, int]]:
        return [s.to_mongo() for s in self._sort]

    def to_wire(self) -> dict[str, Any]:
        """Description of this query sent with realtime subscribe frames."""
        wire: dict[str, Any] = {"filter": self.to_mongo_filter()}
        if self._sort:
            wire["sort"] = [[s.field, s.direction] for s in self._sort]
        if self._limit_count is not None:
            wire["limit"] = self._limit_count
        if self._offset_count is not None:
            wire["offset"] = self._offset_count
        return wire

    def sort_documents(self, documents: list[DocumentSnapshot]) -> list[DocumentSnapshot]:
        """
        Order snapshots by this query's sort clauses.

        Used for pushed result sets; server order is kept when the values
        cannot be compared.
        """
        if not self._sort:
            return documents

        ordered = list(documents)
        try:
            # Stable sorts applied from the least significant clause
            for spec in reversed(self._sort):
                ordered.sort(
                    key=lambda d, f=spec.field: _sort_value(d, f),
                    reverse=spec.direction == "desc",
                )
        except TypeError as e:
            logger.debug(f"Cannot order pushed documents for {self._collection_name}: {e}")
            return documents
        return ordered

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def get(self) -> QuerySnapshot:
        """
        Execute the query.

        Returns:
            QuerySnapshot in sort order (offset applied before limit)

        Raises:
            BackendUnavailableError: If the database cannot be reached
            DatabaseOperationError: If the database rejects the query
        """
        return await self._database._run_query(self)

    def on_snapshot(
        self,
        on_next: Callable[[QuerySnapshot], Any],
        on_error: Callable[[Exception], Any] | None = None,
    ) -> Callable[[], None]:
        """
        Listen to this query through the realtime channel.

        Returns:
            Unsubscribe callable
        """
        channel = self._database.require_realtime()
        return channel.on_collection_snapshot(self._collection_name, self, on_next, on_error)

    onSnapshot = on_snapshot

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return (
            self._collection_name,
            self._filters,
            self._sort,
            self._limit_count,
            self._offset_count,
        ) == (
            other._collection_name,
            other._filters,
            other._sort,
            other._limit_count,
            other._offset_count,
        )

    def __repr__(self) -> str:
        return (
            f"Query(collection={self._collection_name!r}, filter={self.to_mongo_filter()!r}, "
            f"sort={self.to_mongo_sort()!r}, limit={self._limit_count}, "
            f"offset={self._offset_count})"
        )


def _sort_value(snapshot: DocumentSnapshot, field: str) -> tuple[bool, Any]:
    value = snapshot.get(field)
    # Missing values sort first, as in MongoDB
    return (value is not None, value)
