"""WebSocket helpers for the Panono control channel."""

from __future__ import annotations

import asyncio
import errno
from collections.abc import Sequence

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    PanonoConnectionError,
    PanonoHandshakeError,
    PanonoResourceError,
    PanonoTimeout,
    TransportFailure,
)

# Socket allocation failures on the host, not on the camera
_RESOURCE_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE, errno.ENOBUFS, errno.ENOMEM})


async def connect_websocket(
    url: str,
    *,
    subprotocols: Sequence[str] = (),
    ping_interval: float | None = 20,
    timeout: float = 10.0,
) -> ClientConnection:
    """Connect to the camera control channel WebSocket.

    Args:
        url: WebSocket URL, e.g. ws://192.168.80.80:12345/8086
        subprotocols: Subprotocols to offer during the handshake
        ping_interval: Interval for ping frames, None disables keepalive
        timeout: Connection timeout
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                subprotocols=list(subprotocols) or None,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise PanonoTimeout("WebSocket connection timed out") from err
    except InvalidURI as err:
        raise PanonoHandshakeError(f"Invalid WebSocket URL: {url}") from err
    except InvalidHandshake as err:
        raise PanonoHandshakeError("WebSocket handshake failed") from err
    except ConnectionRefusedError as err:
        raise PanonoConnectionError(
            "WebSocket connection refused", TransportFailure.REFUSED
        ) from err
    except OSError as err:
        if err.errno in _RESOURCE_ERRNOS:
            raise PanonoResourceError(f"Cannot allocate socket: {err}") from err
        raise PanonoConnectionError("WebSocket connection failed") from err
    except WebSocketException as err:
        raise PanonoConnectionError("WebSocket connection failed") from err
