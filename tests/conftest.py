"""Pytest configuration and fixtures for panono_core tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from panono_core.errors import PanonoConnectionError
from panono_core.transport.ws_client import PanonoWsMessage, PanonoWsMessageType

Responder = Callable[[dict[str, Any]], dict[str, Any] | None]


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    read_data: bytes | None = None,
    chunks: list[bytes] | None = None,
    content_length: int | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        read_data: Data to return from read() call
        chunks: Body chunks yielded by content.iter_chunked()
        content_length: Value of the Content-Length header

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status
    response.content_length = content_length

    if read_data is not None:
        response.read.return_value = read_data

    async def iter_chunked(size: int):
        for chunk in chunks or []:
            yield chunk

    response.content = MagicMock()
    response.content.iter_chunked = iter_chunked

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def rpc_responder(
    results: dict[str, Any] | None = None,
    errors: dict[str, dict[str, Any]] | None = None,
    silent: tuple[str, ...] = (),
) -> Responder:
    """Build a camera that answers requests by method name.

    Methods in ``errors`` get that error object, methods in ``silent`` get no
    reply at all, everything else gets its entry in ``results`` (or ``{}``).
    """
    results = results or {}
    errors = errors or {}

    def respond(frame: dict[str, Any]) -> dict[str, Any] | None:
        method = frame["method"]
        if method in silent:
            return None
        if method in errors:
            return {"jsonrpc": "2.0", "id": frame["id"], "error": errors[method]}
        return {"jsonrpc": "2.0", "id": frame["id"], "result": results.get(method, {})}

    return respond


class FakeWsClient:
    """In-memory stand-in for PanonoWsClient."""

    def __init__(
        self,
        responder: Responder | None = None,
        *,
        connect_error: Exception | None = None,
    ) -> None:
        self.responder = responder
        self.sent: list[dict[str, Any]] = []
        self.fail_sends = False
        self._inbox: asyncio.Queue[PanonoWsMessage] = asyncio.Queue()
        self.connect = AsyncMock(side_effect=connect_error)
        self.close = AsyncMock(side_effect=self.drop)

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.fail_sends:
            raise PanonoConnectionError("WebSocket closed while sending")
        self.sent.append(payload)
        if self.responder is not None:
            reply = self.responder(payload)
            if reply is not None:
                self.push(reply)

    def push(self, frame: dict[str, Any]) -> None:
        """Deliver a frame as if the camera sent it."""
        self._inbox.put_nowait(PanonoWsMessage(PanonoWsMessageType.TEXT, frame))

    def drop(self) -> None:
        """Close the link from the camera side."""
        self._inbox.put_nowait(PanonoWsMessage(PanonoWsMessageType.CLOSED))

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            msg = await self._inbox.get()
            yield msg
            if msg.type is not PanonoWsMessageType.TEXT:
                return


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


@pytest.fixture
def status_payload() -> dict[str, Any]:
    """Reply to auth / get_status as sent by firmware 1.2."""
    return {
        "auth_token": "ab12cd34",
        "capture_available": True,
        "current_time": "2016-05-10T12:00:00Z",
        "device_id": "panono-12345",
        "firmware_update_url": "http://192.168.80.80/firmware",
        "firmware_version": "1.2.0",
        "is_auth": True,
        "serial_number": "SN12345",
        "storage": {"internal": {"total": 16000000000, "usage": 4200000000}},
        "update_ready": False,
    }
