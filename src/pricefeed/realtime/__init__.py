"""Live subscriber connections, authentication and event relays."""

from pricefeed.realtime.auth import (
    AuthenticationError,
    SubscriberIdentity,
    decode_token,
    extract_token,
)
from pricefeed.realtime.broadcaster import (
    LiveUpdateBroadcaster,
    SubscriberConnection,
    encode_message,
)
from pricefeed.realtime.events import DepositUpdate, notify_deposit_update
from pricefeed.realtime.transport import WebSocketTransport


__all__ = [
    "AuthenticationError",
    "DepositUpdate",
    "LiveUpdateBroadcaster",
    "SubscriberConnection",
    "SubscriberIdentity",
    "WebSocketTransport",
    "decode_token",
    "encode_message",
    "extract_token",
    "notify_deposit_update",
]
