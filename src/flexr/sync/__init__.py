"""Watch/phone synchronization."""

from .bridge import (
    DeviceSyncBridge,
    LinkState,
    LinkStatus,
    PhoneSyncBridge,
    WatchSyncBridge,
)
from .identity import SessionIdentity, get_session_identity
from .messages import MessageType, decode_data, decode_record, encode_message, message_type
from .transport import LoopbackTransport, PeerTransport, TransportDelegate

__all__ = [
    "DeviceSyncBridge",
    "LinkState",
    "LinkStatus",
    "PhoneSyncBridge",
    "WatchSyncBridge",
    "SessionIdentity",
    "get_session_identity",
    "MessageType",
    "decode_data",
    "decode_record",
    "encode_message",
    "message_type",
    "LoopbackTransport",
    "PeerTransport",
    "TransportDelegate",
]
