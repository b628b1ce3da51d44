"""
Realtime listener channel for MDB_COMPAT.

A single websocket connection multiplexing collection and document
listeners, with exponential-backoff reconnect.
"""

from .backoff import ReconnectPolicy
from .channel import ChannelState, Listener, RealtimeChannel, websocket_connector
from .messages import InboundMessage, decode_record, encode_frame, parse_message

__all__ = [
    "ChannelState",
    "InboundMessage",
    "Listener",
    "RealtimeChannel",
    "ReconnectPolicy",
    "decode_record",
    "encode_frame",
    "parse_message",
    "websocket_connector",
]
