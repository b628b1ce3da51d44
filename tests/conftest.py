"""
Pytest configuration and shared fixtures for MDB_COMPAT tests.

This module provides:
- An in-memory stand-in for Motor databases and collections
- A fake websocket connection and connector for the realtime channel
- A fake auth service mounted on httpx.MockTransport
- Common test utilities
"""

import asyncio
import copy
import json
import time
import uuid
from types import SimpleNamespace
from typing import Any

import httpx
import jwt
import pytest
import pytest_asyncio
from pymongo.errors import ServerSelectionTimeoutError

from mdb_compat.auth import AuthApiClient, AuthTokenManager, MemoryTokenStore
from mdb_compat.database import Database

_MISSING = object()

TEST_JWT_SECRET = "test_secret_key_for_testing_only_" + "x" * 32


# ============================================================================
# IN-MEMORY MONGODB FIXTURES
# ============================================================================


def _compare(op: str, value: Any, operand: Any) -> bool:
    if op == "$eq":
        return value == operand
    if op == "$ne":
        return value != operand
    if op == "$in":
        return value in operand
    if value is _MISSING or value is None:
        return False
    try:
        if op == "$gt":
            return value > operand
        if op == "$gte":
            return value >= operand
        if op == "$lt":
            return value < operand
        if op == "$lte":
            return value <= operand
    except TypeError:
        return False
    raise ValueError(f"Fake collection does not support {op}")


def matches(document: dict[str, Any], query_filter: dict[str, Any]) -> bool:
    """Evaluate the subset of the MongoDB filter language the layer emits."""
    for key, condition in query_filter.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
            continue

        value = document.get(key, _MISSING)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op == "$elemMatch":
                    if not isinstance(value, list) or not any(
                        all(_compare(o, item, x) for o, x in operand.items()) for item in value
                    ):
                        return False
                elif not _compare(op, value, operand):
                    return False
        elif value != condition:
            return False
    return True


class FakeCursor:
    def __init__(self, records: list[dict[str, Any]], fail_with: Exception | None = None):
        self._records = records
        self._fail_with = fail_with

    def sort(self, keys: list[tuple[str, int]]) -> "FakeCursor":
        for field, direction in reversed(keys):
            self._records.sort(
                key=lambda d, f=field: (d.get(f) is not None, d.get(f)),
                reverse=direction == -1,
            )
        return self

    def skip(self, count: int) -> "FakeCursor":
        self._records = self._records[count:]
        return self

    def limit(self, count: int) -> "FakeCursor":
        if count:
            self._records = self._records[:count]
        return self

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        if self._fail_with is not None:
            raise self._fail_with
        return copy.deepcopy(self._records if length is None else self._records[:length])


class FakeCollection:
    """Motor-like collection holding documents in a list."""

    def __init__(self, name: str):
        self.name = name
        self.documents: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None
        self.calls: list[tuple[str, Any]] = []

    def _check(self, operation: str, argument: Any) -> None:
        self.calls.append((operation, argument))
        if self.fail_with is not None:
            raise self.fail_with

    def _index(self, query_filter: dict[str, Any]) -> int | None:
        for i, document in enumerate(self.documents):
            if matches(document, query_filter):
                return i
        return None

    async def find_one(self, query_filter: dict[str, Any]) -> dict[str, Any] | None:
        self._check("find_one", query_filter)
        index = self._index(query_filter)
        return copy.deepcopy(self.documents[index]) if index is not None else None

    def find(self, query_filter: dict[str, Any]) -> FakeCursor:
        # Motor cursors are lazy; failures surface when the cursor is read
        self.calls.append(("find", query_filter))
        records = [d for d in self.documents if matches(d, query_filter)]
        return FakeCursor(records, self.fail_with)

    async def insert_one(self, document: dict[str, Any]) -> SimpleNamespace:
        self._check("insert_one", document)
        stored = copy.deepcopy(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def replace_one(
        self, query_filter: dict[str, Any], replacement: dict[str, Any], upsert: bool = False
    ) -> SimpleNamespace:
        self._check("replace_one", query_filter)
        index = self._index(query_filter)
        if index is not None:
            stored = copy.deepcopy(replacement)
            stored["_id"] = self.documents[index]["_id"]
            self.documents[index] = stored
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        stored = copy.deepcopy(replacement)
        stored.setdefault("_id", query_filter.get("_id", uuid.uuid4().hex))
        self.documents.append(stored)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=stored["_id"])

    async def update_one(
        self, query_filter: dict[str, Any], update: dict[str, Any]
    ) -> SimpleNamespace:
        self._check("update_one", update)
        index = self._index(query_filter)
        if index is None:
            return SimpleNamespace(matched_count=0, modified_count=0)
        document = self.documents[index]
        document.update(copy.deepcopy(update.get("$set", {})))
        for field, spec in update.get("$addToSet", {}).items():
            values = document.setdefault(field, [])
            for element in spec["$each"]:
                if element not in values:
                    values.append(element)
        for field, elements in update.get("$pullAll", {}).items():
            document[field] = [v for v in document.get(field, []) if v not in elements]
        return SimpleNamespace(matched_count=1, modified_count=1)

    async def delete_one(self, query_filter: dict[str, Any]) -> SimpleNamespace:
        self._check("delete_one", query_filter)
        index = self._index(query_filter)
        if index is None:
            return SimpleNamespace(deleted_count=0)
        del self.documents[index]
        return SimpleNamespace(deleted_count=1)


class FakeMongoDatabase:
    """Motor-like database returning FakeCollection instances."""

    def __init__(self, name: str = "test_db"):
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self.reachable = True

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
            if not self.reachable:
                self.collections[name].fail_with = ServerSelectionTimeoutError("No servers available")
        return self.collections[name]

    async def command(self, name: str) -> dict[str, Any]:
        if not self.reachable:
            raise ServerSelectionTimeoutError("No servers available")
        return {"ok": 1}

    def go_offline(self) -> None:
        self.reachable = False
        for collection in self.collections.values():
            collection.fail_with = ServerSelectionTimeoutError("No servers available")


@pytest.fixture
def mongo_db() -> FakeMongoDatabase:
    """Empty in-memory Motor database."""
    return FakeMongoDatabase()


@pytest.fixture
def database(mongo_db: FakeMongoDatabase) -> Database:
    """Database facade over the in-memory Motor database."""
    return Database(mongo_db, request_timeout=1.0)


@pytest.fixture
def permissive_database(mongo_db: FakeMongoDatabase) -> Database:
    """Database facade that degrades reads instead of raising."""
    return Database(mongo_db, request_timeout=1.0, permissive_reads=True)


# ============================================================================
# REALTIME FIXTURES
# ============================================================================

_CLOSED = object()


class FakeWebSocket:
    """Websocket connection double; inbound frames are pushed by the test."""

    def __init__(self, url: str):
        self.url = url
        self.sent: list[dict[str, Any]] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.close_code: int | None = None
        self.closed = False

    async def send(self, data: str) -> None:
        if self.closed:
            raise OSError("connection closed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self.incoming.put_nowait(_CLOSED)

    def push(self, message: dict[str, Any]) -> None:
        self.incoming.put_nowait(json.dumps(message))

    def push_raw(self, raw: str) -> None:
        self.incoming.put_nowait(raw)

    def drop(self, code: int = 1006) -> None:
        """Simulate the server going away."""
        self.closed = True
        self.close_code = code
        self.incoming.put_nowait(_CLOSED)

    def frames(self, frame_type: str) -> list[dict[str, Any]]:
        return [f for f in self.sent if f["type"] == frame_type]

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Connector double; fails the next ``failures`` attempts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.urls: list[str] = []
        self.connections: list[FakeWebSocket] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket(url)
        self.connections.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.connections[-1]


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settle():
    """Let spawned tasks run to quiescence."""

    async def _settle(rounds: int = 25) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


# ============================================================================
# AUTH SERVICE FIXTURES
# ============================================================================


class FakeAuthService:
    """
    In-process auth service served through httpx.MockTransport.

    Tokens are real HS256 JWTs so that metadata extraction can be exercised.
    """

    def __init__(self, expires_in: int = 3600):
        self.expires_in = expires_in
        self.users: dict[str, dict[str, Any]] = {}
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.requests: list[tuple[str, str]] = []
        self.network_down = False
        self.reject_refresh = False
        self.refresh_started: asyncio.Event | None = None
        self.refresh_gate: asyncio.Event | None = None

    def add_user(self, email: str, password: str, **profile: Any) -> str:
        uid = f"user_{len(self.users) + 1}"
        self.users[email] = {"uid": uid, "email": email, "password": password, **profile}
        return uid

    def count(self, path: str) -> int:
        return sum(1 for _, p in self.requests if p.endswith(path))

    def _issue(self, email: str) -> dict[str, Any]:
        user = self.users[email]
        now = int(time.time())
        access = jwt.encode(
            {"sub": user["uid"], "iat": now, "exp": now + self.expires_in, "jti": uuid.uuid4().hex},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )
        refresh = uuid.uuid4().hex
        self.access_tokens[access] = email
        self.refresh_tokens[refresh] = email
        return {
            "user": {"uid": user["uid"], "email": email, "displayName": user.get("displayName")},
            "accessToken": access,
            "refreshToken": refresh,
            "expiresIn": self.expires_in,
        }

    @staticmethod
    def _error(status: int, code: str, message: str) -> httpx.Response:
        return httpx.Response(status, json={"code": code, "message": message})

    def _bearer_email(self, request: httpx.Request) -> str | None:
        header = request.headers.get("Authorization", "")
        token = header.removeprefix("Bearer ")
        return self.access_tokens.get(token)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if self.network_down:
            raise httpx.ConnectError("connection refused", request=request)

        body = json.loads(request.content) if request.content else {}

        if path.endswith("/signin"):
            user = self.users.get(body.get("email"))
            if user is None or user["password"] != body.get("password"):
                return self._error(401, "auth/invalid-credential", "Invalid email or password")
            return httpx.Response(200, json=self._issue(body["email"]))

        if path.endswith("/signup"):
            if body.get("email") in self.users:
                return self._error(409, "auth/email-already-in-use", "Email already registered")
            self.add_user(body["email"], body["password"])
            return httpx.Response(201, json=self._issue(body["email"]))

        if path.endswith("/signout"):
            email = self._bearer_email(request)
            self.access_tokens = {t: e for t, e in self.access_tokens.items() if e != email}
            return httpx.Response(200, json={})

        if path.endswith("/refresh"):
            if self.refresh_started is not None:
                self.refresh_started.set()
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            email = self.refresh_tokens.pop(body.get("refreshToken"), None)
            if email is None or self.reject_refresh:
                return self._error(401, "auth/user-token-expired", "Refresh token expired")
            return httpx.Response(200, json=self._issue(email))

        if path.endswith("/verify"):
            email = self._bearer_email(request)
            if email is None:
                return self._error(401, "auth/invalid-user-token", "Invalid token")
            user = self.users[email]
            return httpx.Response(200, json={"user": {"uid": user["uid"], "email": email}})

        if path.endswith("/token-info"):
            if self._bearer_email(request) is None:
                return self._error(401, "auth/invalid-user-token", "Invalid token")
            return httpx.Response(200, json={"signInProvider": "password", "claims": {"role": "user"}})

        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def auth_service() -> FakeAuthService:
    service = FakeAuthService()
    service.add_user("ada@example.com", "correct-horse", displayName="Ada")
    return service


@pytest.fixture
def auth_client(auth_service: FakeAuthService) -> AuthApiClient:
    return AuthApiClient(
        "http://auth.test/api/auth", transport=httpx.MockTransport(auth_service.handler)
    )


@pytest_asyncio.fixture
async def auth_manager(auth_client: AuthApiClient, database: Database):
    manager = AuthTokenManager(auth_client, MemoryTokenStore(), database=database)
    yield manager
    await manager.close()
