"""
Realtime Channel

One multiplexed websocket connection carrying every live listener. Listeners
are keyed by a unique subscription id; the same collection may be observed
by several listeners with different queries.

Lifecycle:

    closed -> connecting -> open
    open -> closed (clean close, code 1000: no reconnect)
    open -> closed (abnormal close) -> reconnect after 1s, 2s, 4s, 8s, 16s
    fifth failed reconnect -> ChannelError to every listener's on_error

Outbound frames queued while the connection is not open are flushed when it
opens, after which a subscribe frame is (re)sent for every live listener.

This module is part of MDB_COMPAT.

Usage:
    channel = RealtimeChannel("ws://localhost:9002/ws", database, auth=manager)
    await channel.connect()
    unsubscribe = channel.on_collection_snapshot(
        "orders", database.collection("orders").where("status", "==", "open"),
        lambda snapshot: print(snapshot.size),
    )
"""

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..constants import CLEAN_CLOSE_CODE, DEFAULT_CONNECT_TIMEOUT
from ..database.query import Query
from ..database.snapshots import DocumentSnapshot, QuerySnapshot
from ..exceptions import ChannelError, CompatError
from ..observability.logging import get_logger, listener_scope
from .backoff import ReconnectPolicy
from .messages import (
    InboundMessage,
    decode_record,
    encode_frame,
    parse_message,
    subscribe_frame,
    unsubscribe_frame,
)

if TYPE_CHECKING:
    from ..auth.manager import AuthTokenManager
    from ..database.store import Database

logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ChannelState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


@dataclass
class Listener:
    """A registered snapshot listener."""

    id: str
    collection: str
    on_next: Callable[[Any], Any]
    on_error: Callable[[Exception], Any] | None = None
    query: Query | None = None
    document_id: str | None = None

    @property
    def is_document(self) -> bool:
        return self.document_id is not None

    def accepts(self, message: InboundMessage) -> bool:
        if message.subscription_id is not None and message.subscription_id != self.id:
            return False
        if message.collection != self.collection:
            return False
        if message.type == "document_change":
            return self.is_document and message.document_id == self.document_id
        return not self.is_document


async def websocket_connector(url: str) -> Any:
    return await websockets.connect(url)


class RealtimeChannel:
    """
    Multiplexed realtime listener channel.

    Args:
        url: Push server websocket URL
        database: Database used for the initial snapshot of each listener
        auth: Optional token manager; its access token is sent on the
            handshake and it is asked to refresh on ``auth_required``
        connector: Coroutine function opening a connection for a URL
        connect_timeout: Handshake deadline in seconds
        reconnect_policy: Backoff policy (1s doubling, 5 attempts by default)
        sleep: Sleep coroutine used between reconnect attempts
    """

    def __init__(
        self,
        url: str,
        database: "Database",
        *,
        auth: "AuthTokenManager | None" = None,
        connector: Connector | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        reconnect_policy: ReconnectPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._url = url
        self._database = database
        self._auth = auth
        self._connector = connector or websocket_connector
        self._connect_timeout = connect_timeout
        self._policy = reconnect_policy or ReconnectPolicy()
        self._sleep = sleep

        self._state = ChannelState.CLOSED
        self._ws: Any = None
        self._listeners: dict[str, Listener] = {}
        self._buffer: list[dict[str, Any]] = []
        self._send_queue: asyncio.Queue | None = None
        self._reader: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._shut_down = False
        self._exhausted = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ChannelState.OPEN

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def reconnect_exhausted(self) -> bool:
        return self._exhausted

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the connection if it is closed.

        A failed attempt schedules a reconnect according to the backoff
        policy instead of raising.
        """
        if self._state != ChannelState.CLOSED:
            return
        self._shut_down = False
        self._state = ChannelState.CONNECTING

        try:
            ws = await asyncio.wait_for(
                self._connector(self._handshake_url()), timeout=self._connect_timeout
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._state = ChannelState.CLOSED
            logger.warning(f"Realtime connection to {self._url} failed: {e}")
            self._schedule_reconnect(code=None)
            return

        if self._shut_down:
            self._state = ChannelState.CLOSED
            await self._close_quietly(ws, CLEAN_CLOSE_CODE, "channel closed")
            return

        self._ws = ws
        self._state = ChannelState.OPEN
        self._exhausted = False
        self._policy.reset()
        logger.info(f"Realtime channel open ({len(self._listeners)} listener(s))")

        self._send_queue = asyncio.Queue()
        self._flush_on_open()
        self._writer = asyncio.create_task(self._write_loop(ws, self._send_queue))
        self._reader = asyncio.create_task(self._read_loop(ws))

    async def reconnect(self) -> None:
        """Drop the current connection and open a new one immediately."""
        self._cancel_reconnect()
        self._policy.reset()
        await self._drop_connection(CLEAN_CLOSE_CODE, "reconnect")
        await self.connect()

    async def close(self) -> None:
        """Close with code 1000. Clears all listeners; no reconnect follows."""
        self._shut_down = True
        self._cancel_reconnect()
        await self._drop_connection(CLEAN_CLOSE_CODE, "client closed")
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._listeners.clear()
        self._buffer.clear()
        logger.info("Realtime channel closed")

    def _handshake_url(self) -> str:
        token = self._auth.access_token if self._auth is not None else None
        if not token:
            return self._url
        parts = urlsplit(self._url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query.append(("token", token))
        return urlunsplit(parts._replace(query=urlencode(query)))

    def _flush_on_open(self) -> None:
        queue = self._send_queue
        subscribed: set[str] = set()
        for frame in self._buffer:
            sub_id = frame.get("subscriptionId")
            if frame["type"] == "subscribe":
                if sub_id in self._listeners and sub_id not in subscribed:
                    queue.put_nowait(frame)
                    subscribed.add(sub_id)
            elif frame["type"] != "unsubscribe":
                queue.put_nowait(frame)
        self._buffer.clear()

        for listener_id, listener in self._listeners.items():
            if listener_id not in subscribed:
                queue.put_nowait(subscribe_frame(listener))

    async def _drop_connection(self, code: int, reason: str) -> None:
        ws = self._ws
        self._ws = None
        self._send_queue = None
        self._state = ChannelState.CLOSED
        current = asyncio.current_task()
        for task in (self._reader, self._writer):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader = None
        self._writer = None
        if ws is not None:
            await self._close_quietly(ws, code, reason)

    @staticmethod
    async def _close_quietly(ws: Any, code: int, reason: str) -> None:
        try:
            await ws.close(code=code, reason=reason)
        except (OSError, WebSocketException) as e:
            logger.debug(f"Error closing realtime connection: {e}")

    def _connection_lost(self, ws: Any) -> None:
        # Superseded connections were closed locally
        if ws is not self._ws:
            return
        self._ws = None
        self._send_queue = None
        self._state = ChannelState.CLOSED
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
        self._writer = None
        self._reader = None

        code = getattr(ws, "close_code", None)
        if code == CLEAN_CLOSE_CODE:
            logger.info("Realtime connection closed cleanly")
            return
        logger.warning(f"Realtime connection lost (code {code})")
        self._schedule_reconnect(code=code)

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, code: int | None) -> None:
        if self._shut_down:
            return
        delay = self._policy.next_delay()
        if delay is None:
            self._exhausted = True
            logger.error(
                f"Realtime reconnect gave up after {self._policy.max_attempts} attempts"
            )
            self._fan_out_error(
                ChannelError("Realtime connection could not be re-established", code=code)
            )
            return
        logger.info(f"Realtime reconnect attempt {self._policy.attempts} in {delay:g}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        if self._reconnect_task is asyncio.current_task():
            self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # ------------------------------------------------------------------
    # I/O loops
    # ------------------------------------------------------------------

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_raw(raw)
        except ConnectionClosed as e:
            logger.debug(f"Realtime read loop ended: {e}")
        except OSError as e:
            logger.warning(f"Realtime read failed: {e}")
        self._connection_lost(ws)

    async def _write_loop(self, ws: Any, queue: asyncio.Queue) -> None:
        while True:
            frame = await queue.get()
            try:
                await ws.send(encode_frame(frame))
            except (ConnectionClosed, OSError) as e:
                logger.debug(f"Realtime send failed, waiting for reconnect: {e}")
                return

    def _enqueue(self, frame: dict[str, Any]) -> None:
        if self._state == ChannelState.OPEN and self._send_queue is not None:
            self._send_queue.put_nowait(frame)
            return
        self._buffer.append(frame)
        if self._state == ChannelState.CLOSED and self._reconnect_task is None:
            if self._exhausted:
                # New work after giving up starts a fresh round of attempts
                self._policy.reset()
                self._exhausted = False
            self._spawn(self.connect())

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    def _handle_raw(self, raw: str | bytes) -> None:
        try:
            message = parse_message(raw)
        except ValueError as e:
            logger.warning(f"Ignoring unrecognized realtime message: {e}")
            return

        if message.type == "collection_change":
            self._dispatch_collection(message)
        elif message.type == "document_change":
            self._dispatch_document(message)
        elif message.type == "error":
            self._fan_out_error(ChannelError(message.error or "Realtime server error"))
        elif message.type == "auth_required":
            self._spawn(self._handle_auth_required())

    def _dispatch_collection(self, message: InboundMessage) -> None:
        records = message.data if isinstance(message.data, list) else []
        documents = [
            DocumentSnapshot.from_record(decode_record(r)) for r in records if isinstance(r, dict)
        ]
        for listener in list(self._listeners.values()):
            if not self._is_live(listener) or not listener.accepts(message):
                continue
            docs = listener.query.sort_documents(documents) if listener.query else documents
            self._deliver(listener, QuerySnapshot(docs))

    def _dispatch_document(self, message: InboundMessage) -> None:
        if message.document_id is None:
            logger.warning("Ignoring document_change without documentId")
            return
        data = decode_record(message.data) if isinstance(message.data, dict) else None
        exists = message.operation != "delete" and data is not None
        snapshot = DocumentSnapshot(message.document_id, data if exists else None, exists)
        for listener in list(self._listeners.values()):
            if self._is_live(listener) and listener.accepts(message):
                self._deliver(listener, snapshot)

    async def _handle_auth_required(self) -> None:
        logger.info("Realtime server requested re-authentication")
        if self._auth is not None:
            await self._auth.refresh_access_token()
        await self.reconnect()

    # ------------------------------------------------------------------
    # Listener registry
    # ------------------------------------------------------------------

    def on_collection_snapshot(
        self,
        collection: str,
        query: Query | None,
        on_next: Callable[[QuerySnapshot], Any],
        on_error: Callable[[Exception], Any] | None = None,
    ) -> Callable[[], None]:
        """
        Listen to a collection (optionally narrowed by a query).

        The first snapshot comes from a regular read; later ones are pushed.

        Returns:
            Idempotent unsubscribe callable
        """
        listener = Listener(
            id=self._listener_id(collection),
            collection=collection,
            on_next=on_next,
            on_error=on_error,
            query=query,
        )
        return self._register(listener)

    def on_document_snapshot(
        self,
        collection: str,
        document_id: str,
        on_next: Callable[[DocumentSnapshot], Any],
        on_error: Callable[[Exception], Any] | None = None,
    ) -> Callable[[], None]:
        """Listen to one document. Returns an idempotent unsubscribe callable."""
        listener = Listener(
            id=self._listener_id(f"{collection}/{document_id}"),
            collection=collection,
            on_next=on_next,
            on_error=on_error,
            document_id=document_id,
        )
        return self._register(listener)

    @staticmethod
    def _listener_id(target: str) -> str:
        return f"{target}#{uuid.uuid4().hex[:12]}"

    def _register(self, listener: Listener) -> Callable[[], None]:
        self._listeners[listener.id] = listener
        logger.debug(f"Listener {listener.id} registered")
        self._enqueue(subscribe_frame(listener))
        self._spawn(self._deliver_initial(listener))

        def unsubscribe() -> None:
            if self._listeners.pop(listener.id, None) is None:
                return
            logger.debug(f"Listener {listener.id} removed")
            # A closed connection already dropped its server-side subscriptions
            if self._state == ChannelState.OPEN:
                self._enqueue(unsubscribe_frame(listener))
            else:
                self._buffer = [
                    f for f in self._buffer if f.get("subscriptionId") != listener.id
                ]

        return unsubscribe

    def _is_live(self, listener: Listener) -> bool:
        return self._listeners.get(listener.id) is listener

    async def _deliver_initial(self, listener: Listener) -> None:
        try:
            if listener.is_document:
                ref = self._database.collection(listener.collection).doc(listener.document_id)
                snapshot: Any = await ref.get()
            else:
                target = listener.query or self._database.collection(listener.collection)
                snapshot = await target.get()
        except CompatError as e:
            if self._is_live(listener):
                self._report_error(listener, e)
            return

        # The listener may have unsubscribed while the read was in flight
        if self._is_live(listener):
            self._deliver(listener, snapshot)

    def _deliver(self, listener: Listener, snapshot: Any) -> None:
        with listener_scope(listener.id, listener.collection):
            try:
                result = listener.on_next(snapshot)
            except Exception as e:
                logger.exception(f"Listener {listener.id} raised while handling a snapshot")
                self._report_error(listener, e)
                return
        if inspect.isawaitable(result):
            self._spawn(self._await_callback(listener, result))

    async def _await_callback(self, listener: Listener, result: Awaitable[Any]) -> None:
        try:
            await result
        except Exception as e:
            logger.exception(f"Listener {listener.id} raised while handling a snapshot")
            self._report_error(listener, e)

    def _report_error(self, listener: Listener, error: Exception) -> None:
        if listener.on_error is None:
            logger.warning(f"Unhandled error for listener {listener.id}: {error}")
            return
        try:
            result = listener.on_error(error)
            if inspect.isawaitable(result):
                self._spawn(result)
        except Exception:
            logger.exception(f"Error callback for listener {listener.id} raised")

    def _fan_out_error(self, error: ChannelError) -> None:
        for listener in list(self._listeners.values()):
            if self._is_live(listener):
                self._report_error(listener, error)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
