"""Core data model shared by the transport, discovery and session layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit


class LinkKind(Enum):
    """Physical link the camera is reachable over.

    Only the wireless link carries SSDP announcements.
    """

    TETHERED = "tethered"
    WIRELESS = "wireless"


class SessionState(Enum):
    """Connection state of a camera session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class DeviceAddress:
    """A reachable camera control channel.

    Attributes:
        url: WebSocket URL of the JSON-RPC control channel.
        link: Link kind the address was obtained on.
        identity: Announced unique service name, when discovered via SSDP.
    """

    url: str
    link: LinkKind
    identity: str | None = None

    @property
    def host(self) -> str | None:
        """Hostname or IP of the control channel."""
        return urlsplit(self.url).hostname

    def __str__(self) -> str:
        return self.url
