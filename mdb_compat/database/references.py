"""
Reference Model

Collection and document handles through which CRUD operations are issued.
References are cheap, immutable handles; nothing touches the backend until a
coroutine (``get``, ``set``, ``update``, ``delete``, ``add``) is awaited.

This module is part of MDB_COMPAT.
"""

import random
import string
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from ..constants import DOCUMENT_PATH_SEPARATOR
from .query import Query
from .snapshots import DocumentSnapshot, QuerySnapshot

if TYPE_CHECKING:
    from .store import Database

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_document_id(suffix_length: int = 11) -> str:
    """
    Generate a low-collision document id.

    The id is a base-36 millisecond timestamp followed by a random base-36
    suffix. It is practically safe for single-writer, client-generated ids
    but is not guaranteed to be globally unique.
    """
    prefix = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=suffix_length))
    return prefix + suffix


class DocumentReference:
    """
    Handle for a single document, addressed as ``<collection>/<id>``.

    Example:
        ref = db.collection("orders").doc("abc123")
        await ref.set({"status": "new"})
        snapshot = await ref.get()
        if snapshot.exists:
            print(snapshot.data())
    """

    def __init__(self, database: "Database", collection_name: str, doc_id: str):
        if not doc_id:
            raise ValueError("Document id must be a non-empty string")
        self._database = database
        self._collection_name = collection_name
        self._id = str(doc_id)

    @property
    def id(self) -> str:
        return self._id

    @property
    def path(self) -> str:
        return f"{self._collection_name}{DOCUMENT_PATH_SEPARATOR}{self._id}"

    @property
    def parent(self) -> "CollectionReference":
        return CollectionReference(self._database, self._collection_name)

    async def get(self) -> DocumentSnapshot:
        """
        Read the document.

        Returns:
            DocumentSnapshot (``exists`` is False when the document is missing)

        Raises:
            BackendUnavailableError: If the database cannot be reached
                (strict mode only, see ``permissive_reads``)
        """
        return await self._database._get_document(self)

    async def set(self, data: Mapping[str, Any], merge: bool = False) -> None:
        """
        Write the whole document (upsert).

        ``updatedAt`` is always stamped; ``createdAt`` is preserved when
        already present in ``data`` or in the stored document, and stamped
        otherwise. With ``merge=True`` the fields are merged into the stored
        document instead of replacing it.
        """
        await self._database._set_document(self, data, merge=merge)

    async def update(self, data: Mapping[str, Any]) -> int:
        """
        Merge fields into an existing document and stamp ``updatedAt``.

        Returns:
            Number of documents matched (0 when the document does not exist)
        """
        return await self._database._update_document(self, data)

    async def delete(self) -> int:
        """
        Delete the document.

        Returns:
            Number of documents deleted (0 when it did not exist)
        """
        return await self._database._delete_document(self)

    def on_snapshot(
        self,
        on_next: Callable[[DocumentSnapshot], Any],
        on_error: Callable[[Exception], Any] | None = None,
    ) -> Callable[[], None]:
        """Listen to this document through the realtime channel."""
        channel = self._database.require_realtime()
        return channel.on_document_snapshot(self._collection_name, self._id, on_next, on_error)

    onSnapshot = on_snapshot

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentReference):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"DocumentReference({self.path!r})"


class CollectionReference(Query):
    """
    Handle for a collection. Also the root Query over that collection.

    Example:
        orders = db.collection("orders")
        ref = await orders.add({"total": 12.5})
        snapshot = await orders.where("total", ">", 10).get()
    """

    def __init__(self, database: "Database", collection_name: str):
        if not collection_name or DOCUMENT_PATH_SEPARATOR in collection_name:
            raise ValueError(f"Invalid collection name: {collection_name!r}")
        super().__init__(database, collection_name)

    @property
    def id(self) -> str:
        return self._collection_name

    def doc(self, doc_id: str | None = None) -> DocumentReference:
        """
        Get a reference to a document in this collection.

        Args:
            doc_id: Document id; a new id is generated when omitted
        """
        return DocumentReference(
            self._database, self._collection_name, doc_id or generate_document_id()
        )

    async def add(self, data: Mapping[str, Any]) -> DocumentReference:
        """
        Create a document with a generated id.

        ``createdAt`` and ``updatedAt`` are stamped.

        Returns:
            Reference to the new document
        """
        ref = self.doc()
        await self._database._insert_document(ref, data)
        return ref

    async def get(self) -> QuerySnapshot:
        return await self._database._run_query(self)

    def __repr__(self) -> str:
        return f"CollectionReference({self._collection_name!r})"
