"""
Realtime wire messages.

Inbound frames from the push server:

    {"type": "collection_change", "collection": "orders", "data": [...]}
    {"type": "document_change", "collection": "orders", "documentId": "a1",
     "operation": "update", "data": {...}}
    {"type": "error", "error": "..."}
    {"type": "auth_required"}

Any inbound frame may carry ``subscriptionId`` to target one listener.

Outbound frames sent by the client:

    {"type": "subscribe", "subscriptionId": "...", "collection": "orders",
     "query": {...}}
    {"type": "subscribe", "subscriptionId": "...", "collection": "orders",
     "documentId": "a1"}
    {"type": "unsubscribe", "subscriptionId": "...", "collection": "orders"}
"""

import json
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Literal

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from ..constants import TIMESTAMP_FIELDS
from ..database.snapshots import Timestamp

if TYPE_CHECKING:
    from .channel import Listener


class InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["collection_change", "document_change", "error", "auth_required"]
    collection: str | None = None
    document_id: str | None = Field(default=None, alias="documentId")
    subscription_id: str | None = Field(default=None, alias="subscriptionId")
    data: Any = None
    operation: Literal["insert", "update", "delete"] | None = None
    error: str | None = None


def parse_message(raw: str | bytes) -> InboundMessage:
    """
    Decode and validate an inbound frame.

    Raises:
        ValueError: If the frame is not valid JSON or not a known message
            (pydantic's ValidationError is a ValueError)
    """
    return InboundMessage.model_validate_json(raw)


def _parse_datetime(value: str) -> datetime | None:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def decode_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Undo the JSON encoding of a pushed record: known temporal fields sent as
    ISO strings become datetimes again. Unparseable strings are left as is.
    """
    decoded = dict(record)
    for field in TIMESTAMP_FIELDS:
        value = decoded.get(field)
        if isinstance(value, str):
            parsed = _parse_datetime(value)
            if parsed is not None:
                decoded[field] = parsed
    return decoded


def _json_default(value: Any) -> Any:
    if isinstance(value, Timestamp):
        return value.to_date().isoformat()
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_frame(frame: dict[str, Any]) -> str:
    return json.dumps(frame, default=_json_default)


def subscribe_frame(listener: "Listener") -> dict[str, Any]:
    frame: dict[str, Any] = {
        "type": "subscribe",
        "subscriptionId": listener.id,
        "collection": listener.collection,
    }
    if listener.document_id is not None:
        frame["documentId"] = listener.document_id
    else:
        frame["query"] = listener.query.to_wire() if listener.query is not None else {}
    return frame


def unsubscribe_frame(listener: "Listener") -> dict[str, Any]:
    frame: dict[str, Any] = {
        "type": "unsubscribe",
        "subscriptionId": listener.id,
        "collection": listener.collection,
    }
    if listener.document_id is not None:
        frame["documentId"] = listener.document_id
    return frame
