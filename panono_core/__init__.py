"""Controller core for the Panono 360 camera.

Session management, JSON-RPC correlation, SSDP discovery and the command
surface for the camera's WebSocket control channel.
"""

__version__ = "0.1.0"

from .config import PanonoConfig, load_config
from .correlator import PendingCall, RpcCorrelator
from .discovery import DiscoveryListener, parse_announcement
from .dispatcher import CommandDispatcher
from .errors import (
    ConfigError,
    PanonoClientError,
    PanonoConnectionError,
    PanonoDeviceUnreachable,
    PanonoFileError,
    PanonoHandshakeError,
    PanonoResourceError,
    PanonoResponseError,
    PanonoTimeout,
    ResponseParseError,
    TransportFailure,
)
from .http import PanonoHttpClient
from .models import DeviceAddress, LinkKind, SessionState
from .protocol import OutcomeKind, RpcOutcome, build_request, parse_response
from .session import PanonoSession
from .transport import (
    PanonoWsClient,
    PanonoWsMessage,
    PanonoWsMessageType,
    connect_websocket,
)

__all__ = [
    "CommandDispatcher",
    "ConfigError",
    "DeviceAddress",
    "DiscoveryListener",
    "LinkKind",
    "OutcomeKind",
    "PanonoClientError",
    "PanonoConfig",
    "PanonoConnectionError",
    "PanonoDeviceUnreachable",
    "PanonoFileError",
    "PanonoHandshakeError",
    "PanonoHttpClient",
    "PanonoResourceError",
    "PanonoResponseError",
    "PanonoSession",
    "PanonoTimeout",
    "PanonoWsClient",
    "PanonoWsMessage",
    "PanonoWsMessageType",
    "PendingCall",
    "ResponseParseError",
    "RpcCorrelator",
    "RpcOutcome",
    "SessionState",
    "TransportFailure",
    "__version__",
    "build_request",
    "connect_websocket",
    "load_config",
    "parse_announcement",
    "parse_response",
]
