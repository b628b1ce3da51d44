"""
Snapshot Model

Immutable value types returned by every read: a Timestamp wrapper for
temporal fields, a DocumentSnapshot for a single record and a QuerySnapshot
for an ordered result set.

This module is part of MDB_COMPAT.
"""

from collections.abc import Callable, Iterator, Mapping
from datetime import datetime, timezone
from functools import total_ordering
from typing import TYPE_CHECKING, Any

from ..constants import INTERNAL_ID_FIELD, TIMESTAMP_FIELDS

if TYPE_CHECKING:
    from .references import DocumentReference


@total_ordering
class Timestamp:
    """
    A point in time presented through the legacy timestamp idiom.

    Example:
        ts = Timestamp.now()
        ts.to_date()  # -> datetime
    """

    __slots__ = ("_date",)

    def __init__(self, date: datetime | None = None):
        self._date = date if date is not None else datetime.now(timezone.utc)

    @classmethod
    def now(cls) -> "Timestamp":
        """Capture the current client time."""
        return cls()

    @classmethod
    def from_date(cls, date: datetime) -> "Timestamp":
        """Wrap the given instant."""
        return cls(date)

    def to_date(self) -> datetime:
        return self._date

    def to_millis(self) -> int:
        return int(self._date.timestamp() * 1000)

    def _comparable(self) -> datetime:
        # Mongo hands back naive UTC datetimes
        if self._date.tzinfo is None:
            return self._date.replace(tzinfo=timezone.utc)
        return self._date

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self._comparable() == other._comparable()

    def __lt__(self, other: "Timestamp") -> bool:
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self._comparable() < other._comparable()

    def __hash__(self) -> int:
        return hash(self._comparable())

    def __repr__(self) -> str:
        return f"Timestamp({self._date.isoformat()})"


def server_timestamp() -> Timestamp:
    """Legacy ``serverTimestamp()``; resolved on the client clock."""
    return Timestamp.now()


def to_storage_value(value: Any) -> Any:
    """
    Convert Timestamp objects (at any depth) back to datetimes for storage.

    Args:
        value: A field value, mapping or list

    Returns:
        The value with every Timestamp replaced by its datetime
    """
    if isinstance(value, Timestamp):
        return value.to_date()
    if isinstance(value, Mapping):
        return {k: to_storage_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_storage_value(v) for v in value]
    return value


class DocumentSnapshot:
    """
    Point-in-time view of a single document.

    ``exists`` is False for a missing document, in which case ``data()``
    returns None. For an existing document ``data()`` never includes the
    internal ``_id`` field and known temporal fields come back as Timestamp.
    """

    __slots__ = ("_id", "_data", "_exists", "_degraded", "_reference")

    def __init__(
        self,
        doc_id: Any,
        data: Mapping[str, Any] | None,
        exists: bool = True,
        *,
        degraded: bool = False,
        reference: "DocumentReference | None" = None,
    ):
        self._id = str(doc_id)
        self._exists = bool(exists) and data is not None
        self._data = dict(data) if self._exists else None
        self._degraded = degraded
        self._reference = reference

    @classmethod
    def missing(
        cls,
        doc_id: Any,
        *,
        degraded: bool = False,
        reference: "DocumentReference | None" = None,
    ) -> "DocumentSnapshot":
        """Snapshot for a document that does not exist (or could not be read)."""
        return cls(doc_id, None, False, degraded=degraded, reference=reference)

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        reference: "DocumentReference | None" = None,
    ) -> "DocumentSnapshot":
        """
        Build a snapshot from a raw backend record.

        The id comes from ``_id``, falling back to a legacy ``id`` field.
        """
        doc_id = record.get(INTERNAL_ID_FIELD, record.get("id"))
        return cls(doc_id, record, True, reference=reference)

    @property
    def id(self) -> str:
        return self._id

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def degraded(self) -> bool:
        """True when a backend outage was turned into this missing snapshot."""
        return self._degraded

    @property
    def reference(self) -> "DocumentReference | None":
        return self._reference

    def data(self) -> dict[str, Any] | None:
        """
        Return the document's fields, or None for a missing document.

        A fresh dict is returned on every call.
        """
        if not self._exists:
            return None

        data = {k: v for k, v in self._data.items() if k != INTERNAL_ID_FIELD}
        for field in TIMESTAMP_FIELDS:
            if isinstance(data.get(field), datetime):
                data[field] = Timestamp(data[field])
        return data

    def get(self, field: str, default: Any = None) -> Any:
        data = self.data()
        if data is None:
            return default
        return data.get(field, default)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentSnapshot):
            return NotImplemented
        return (self._id, self._exists, self._data) == (other._id, other._exists, other._data)

    def __repr__(self) -> str:
        return f"DocumentSnapshot(id={self._id!r}, exists={self._exists})"


class QuerySnapshot:
    """Ordered, immutable result set of a query."""

    __slots__ = ("_docs",)

    def __init__(self, documents: list[DocumentSnapshot] | tuple[DocumentSnapshot, ...]):
        self._docs = tuple(documents)

    @property
    def docs(self) -> list[DocumentSnapshot]:
        return list(self._docs)

    @property
    def size(self) -> int:
        return len(self._docs)

    @property
    def empty(self) -> bool:
        return not self._docs

    def for_each(self, callback: Callable[[DocumentSnapshot], Any]) -> None:
        for doc in self._docs:
            callback(doc)

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self._docs)

    def __len__(self) -> int:
        return len(self._docs)

    def __repr__(self) -> str:
        return f"QuerySnapshot(size={self.size})"
