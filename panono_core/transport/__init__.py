"""Transport layer for the Panono control channel.

Components:
- ws: WebSocket connection setup and error mapping
- ws_client: frame decoding and message iteration
"""

from .ws import connect_websocket
from .ws_client import PanonoWsClient, PanonoWsMessage, PanonoWsMessageType

__all__ = [
    "PanonoWsClient",
    "PanonoWsMessage",
    "PanonoWsMessageType",
    "connect_websocket",
]
