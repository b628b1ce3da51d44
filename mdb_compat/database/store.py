"""
Document Store

The Database object is the entry point of the reference model. It owns the
Motor database handle and translates reference and query operations into
MongoDB calls, wrapping every call with a deadline, error translation and
structured operation logging.

Document identity:
    A reference id is resolved through an explicit, ordered list of keys.
    By default ``_id`` is tried first (as a string, then as an ObjectId when
    the id is a valid ObjectId), then the legacy ``id`` field, then ``uid``.
    The first key that matches a stored document wins. New documents are
    always written with ``_id`` set to the reference id.

This module is part of MDB_COMPAT.

Usage:
    from mdb_compat.database import Database

    db = Database(motor_client["orders_db"])
    ref = await db.collection("orders").add({"total": 12.5})
    snapshot = await db.doc(f"orders/{ref.id}").get()
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from pymongo.errors import ConnectionFailure, OperationFailure

from ..constants import (
    ALTERNATE_ID_FIELDS,
    CREATED_AT_FIELD,
    DEFAULT_REQUEST_TIMEOUT,
    DOCUMENT_PATH_SEPARATOR,
    INTERNAL_ID_FIELD,
    UPDATED_AT_FIELD,
)
from ..exceptions import (
    BackendUnavailableError,
    ConfigurationError,
    DatabaseOperationError,
)
from ..observability.logging import log_operation
from .field_values import split_update
from .query import Query
from .references import CollectionReference, DocumentReference
from .snapshots import DocumentSnapshot, QuerySnapshot, Timestamp, to_storage_value

if TYPE_CHECKING:
    from ..realtime.channel import RealtimeChannel

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Resolves a reference id to a stored document through an ordered union
    of identifier keys.

    Args:
        keys: Identifier fields in precedence order
    """

    def __init__(self, keys: tuple[str, ...] | None = None):
        self.keys = keys or (INTERNAL_ID_FIELD, *ALTERNATE_ID_FIELDS)

    def candidate_filters(self, doc_id: str) -> list[tuple[str, dict[str, Any]]]:
        """
        Return ``(key, filter)`` pairs in the order they are tried.
        """
        candidates: list[tuple[str, dict[str, Any]]] = []
        for key in self.keys:
            candidates.append((key, {key: doc_id}))
            if key == INTERNAL_ID_FIELD and ObjectId.is_valid(doc_id):
                candidates.append((key, {key: ObjectId(doc_id)}))
        return candidates


class Database:
    """
    Legacy-compatible database handle backed by MongoDB.

    Args:
        mongo_db: AsyncIOMotorDatabase (or any object exposing collections
            by ``db[name]``)
        request_timeout: Deadline in seconds for every database call
        permissive_reads: When True, a document read that fails because the
            backend is unreachable returns a missing snapshot flagged
            ``degraded`` instead of raising. Developer mode only.
        identity_keys: Identifier fields in lookup precedence order
    """

    def __init__(
        self,
        mongo_db: Any,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        permissive_reads: bool = False,
        identity_keys: tuple[str, ...] | None = None,
    ):
        self._db = mongo_db
        self._request_timeout = request_timeout
        self._permissive_reads = permissive_reads
        self._identity = IdentityResolver(identity_keys)
        self._realtime: "RealtimeChannel | None" = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def identity(self) -> IdentityResolver:
        return self._identity

    @property
    def permissive_reads(self) -> bool:
        return self._permissive_reads

    def collection(self, name: str) -> CollectionReference:
        return CollectionReference(self, name)

    def doc(self, path: str) -> DocumentReference:
        """
        Address a single document by ``"<collection>/<id>"``.

        Raises:
            ValueError: If the path does not have exactly two segments
        """
        parts = path.split(DOCUMENT_PATH_SEPARATOR)
        if len(parts) != 2 or not all(parts):
            raise ValueError(
                f"Invalid document path {path!r}. Expected format: 'collection/document'"
            )
        collection_name, doc_id = parts
        return DocumentReference(self, collection_name, doc_id)

    @staticmethod
    def server_timestamp() -> Timestamp:
        return Timestamp.now()

    def attach_realtime(self, channel: "RealtimeChannel") -> None:
        """Attach the realtime channel used by ``on_snapshot`` listeners."""
        self._realtime = channel

    def require_realtime(self) -> "RealtimeChannel":
        if self._realtime is None:
            raise ConfigurationError(
                "No realtime channel attached; live queries are unavailable",
                config_key="ws_url",
            )
        return self._realtime

    async def ping(self) -> bool:
        """Round-trip to the server. Raises BackendUnavailableError when unreachable."""
        await self._call("ping", self._db.command("ping"))
        return True

    # ------------------------------------------------------------------
    # Backend calls
    # ------------------------------------------------------------------

    def _collection(self, name: str) -> Any:
        return self._db[name]

    async def _call(self, operation: str, awaitable: Awaitable[Any], **context: Any) -> Any:
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(awaitable, timeout=self._request_timeout)
        except (ConnectionFailure, asyncio.TimeoutError) as e:
            duration_ms = (time.perf_counter() - start) * 1000
            log_operation(
                logger,
                operation,
                level=logging.WARNING,
                success=False,
                duration_ms=duration_ms,
                error=str(e),
                **context,
            )
            raise BackendUnavailableError(
                "Document database is unavailable",
                context={"operation": operation, **context},
            ) from e
        except OperationFailure as e:
            logger.exception(f"Database operation failed in {operation}")
            raise DatabaseOperationError(
                f"Database rejected {operation}",
                context={"operation": operation, **context},
            ) from e

        log_operation(
            logger,
            operation,
            success=True,
            duration_ms=(time.perf_counter() - start) * 1000,
            **context,
        )
        return result

    async def _resolve(
        self, ref: DocumentReference
    ) -> tuple[dict[str, Any] | None, str | None]:
        """
        Find the stored document for a reference.

        Returns:
            ``(document, matched_key)`` or ``(None, None)``
        """
        collection = self._collection(ref.parent.id)
        for key, query_filter in self._identity.candidate_filters(ref.id):
            record = await self._call(
                "document.resolve",
                collection.find_one(query_filter),
                collection=ref.parent.id,
                key=key,
            )
            if record is not None:
                return record, key
        return None, None

    async def _get_document(self, ref: DocumentReference) -> DocumentSnapshot:
        try:
            record, _ = await self._resolve(ref)
        except BackendUnavailableError:
            if not self._permissive_reads:
                raise
            logger.warning(
                f"Backend unavailable reading {ref.path}; returning a degraded empty snapshot"
            )
            return DocumentSnapshot.missing(ref.id, degraded=True, reference=ref)

        if record is None:
            return DocumentSnapshot.missing(ref.id, reference=ref)
        return DocumentSnapshot(ref.id, record, True, reference=ref)

    async def _set_document(
        self, ref: DocumentReference, data: Mapping[str, Any], merge: bool = False
    ) -> None:
        collection = self._collection(ref.parent.id)
        existing, matched_key = await self._resolve(ref)
        now = datetime.now(timezone.utc)
        document = to_storage_value(dict(data))
        document.pop(INTERNAL_ID_FIELD, None)

        if existing is not None and merge:
            if CREATED_AT_FIELD not in document and CREATED_AT_FIELD not in existing:
                document[CREATED_AT_FIELD] = now
            document[UPDATED_AT_FIELD] = now
            await self._call(
                "document.set",
                collection.update_one(
                    {INTERNAL_ID_FIELD: existing[INTERNAL_ID_FIELD]}, {"$set": document}
                ),
                collection=ref.parent.id,
                merge=True,
            )
            return

        existing_created = existing.get(CREATED_AT_FIELD) if existing else None
        document[CREATED_AT_FIELD] = document.get(CREATED_AT_FIELD) or existing_created or now
        document[UPDATED_AT_FIELD] = now

        if existing is None:
            await self._call(
                "document.set",
                collection.replace_one({INTERNAL_ID_FIELD: ref.id}, document, upsert=True),
                collection=ref.parent.id,
            )
            return

        # Keep the legacy key the document was found by, so the same id
        # keeps resolving after the replacement.
        if matched_key and matched_key != INTERNAL_ID_FIELD:
            document.setdefault(matched_key, existing.get(matched_key))
        await self._call(
            "document.set",
            collection.replace_one({INTERNAL_ID_FIELD: existing[INTERNAL_ID_FIELD]}, document),
            collection=ref.parent.id,
        )

    async def _update_document(self, ref: DocumentReference, data: Mapping[str, Any]) -> int:
        collection = self._collection(ref.parent.id)
        existing, _ = await self._resolve(ref)
        if existing is None:
            logger.debug(f"update() on missing document {ref.path}; nothing to do")
            return 0

        fields = dict(data)
        fields.pop(INTERNAL_ID_FIELD, None)
        fields[UPDATED_AT_FIELD] = datetime.now(timezone.utc)
        result = await self._call(
            "document.update",
            collection.update_one(
                {INTERNAL_ID_FIELD: existing[INTERNAL_ID_FIELD]}, split_update(fields)
            ),
            collection=ref.parent.id,
        )
        return result.matched_count

    async def _delete_document(self, ref: DocumentReference) -> int:
        collection = self._collection(ref.parent.id)
        existing, _ = await self._resolve(ref)
        if existing is None:
            return 0
        result = await self._call(
            "document.delete",
            collection.delete_one({INTERNAL_ID_FIELD: existing[INTERNAL_ID_FIELD]}),
            collection=ref.parent.id,
        )
        return result.deleted_count

    async def _insert_document(self, ref: DocumentReference, data: Mapping[str, Any]) -> None:
        collection = self._collection(ref.parent.id)
        now = datetime.now(timezone.utc)
        document = to_storage_value(dict(data))
        document[INTERNAL_ID_FIELD] = ref.id
        document[CREATED_AT_FIELD] = now
        document[UPDATED_AT_FIELD] = now
        await self._call(
            "collection.add",
            collection.insert_one(document),
            collection=ref.parent.id,
        )

    async def _run_query(self, query: Query) -> QuerySnapshot:
        if query.limit_count == 0:
            return QuerySnapshot([])

        collection = self._collection(query.collection_name)
        cursor = collection.find(query.to_mongo_filter())
        sort = query.to_mongo_sort()
        if sort:
            cursor = cursor.sort(sort)
        if query.offset_count:
            cursor = cursor.skip(query.offset_count)
        if query.limit_count is not None:
            cursor = cursor.limit(query.limit_count)

        records = await self._call(
            "query.get",
            cursor.to_list(length=None),
            collection=query.collection_name,
        )
        parent = self.collection(query.collection_name)
        return QuerySnapshot(
            [
                DocumentSnapshot.from_record(
                    record, reference=parent.doc(str(record.get(INTERNAL_ID_FIELD)))
                )
                for record in records
            ]
        )
