"""WebSocket client wrapper for the Panono control channel."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..errors import PanonoConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_LOGGER = logging.getLogger(__name__)


class PanonoWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class PanonoWsMessage:
    """Normalized WebSocket message payload.

    TEXT messages carry one decoded JSON object in ``data``.
    """

    type: PanonoWsMessageType
    data: dict[str, Any] | None = None


class PanonoWsClient:
    """Wrapper around the websockets library for the camera control channel.

    Iterating the client yields decoded frames until the link goes down, then
    exactly one CLOSED or ERROR message. Iteration cannot be restarted; a new
    ``connect`` is required.
    """

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        url: str,
        *,
        subprotocols: Sequence[str] = (),
        ping_interval: float | None = 20,
        timeout: float = 10.0,
    ) -> None:
        """Connect to the camera websocket."""
        self._ws = await connect_websocket(
            url,
            subprotocols=subprotocols,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload to the websocket."""
        if self._ws is None:
            raise PanonoConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(json.dumps(payload))
        except ConnectionClosed as err:
            raise PanonoConnectionError("WebSocket closed while sending") from err

    def __aiter__(self) -> AsyncIterator[PanonoWsMessage]:
        if self._ws is None:
            raise PanonoConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[PanonoWsMessage]:
        if self._ws is None:
            raise PanonoConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                for frame in self.decode_frames(msg):
                    yield PanonoWsMessage(PanonoWsMessageType.TEXT, frame)
        except ConnectionClosed:
            yield PanonoWsMessage(type=PanonoWsMessageType.CLOSED)
        except Exception:
            _LOGGER.exception("WebSocket receive failed")
            yield PanonoWsMessage(type=PanonoWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield PanonoWsMessage(type=PanonoWsMessageType.CLOSED)

    @staticmethod
    def decode_frames(raw: str | bytes) -> list[dict[str, Any]]:
        """Decode one WebSocket message into JSON-RPC frames.

        The camera may pack several JSON documents into one text message, one
        per line. Lines that are not JSON objects are dropped with a warning.
        """
        if isinstance(raw, bytes):
            _LOGGER.warning("Dropping binary frame (%d bytes)", len(raw))
            return []

        frames: list[dict[str, Any]] = []
        for line in raw.splitlines():
            if not line.strip():
                continue
            try:
                decoded = json.loads(line)
            except ValueError:
                _LOGGER.warning("Dropping malformed frame: %.200s", line)
                continue
            if not isinstance(decoded, dict):
                _LOGGER.warning("Dropping non-object frame: %.200s", line)
                continue
            frames.append(decoded)
        return frames
