"""Request/response correlation for the JSON-RPC control channel.

The correlator sits between the session and the WebSocket client. It issues
tokens, keeps the table of outstanding calls and resolves each call exactly
once: with the device response, a timeout, or a transport failure. Frames
that do not answer an issued token are pushed to ``unsolicited``.

All table access happens on the event loop thread, so no lock is needed;
``future.done()`` guards against double resolution.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from typing import Any

from .errors import PanonoClientError
from .protocol import (
    DEFAULT_UNSUPPORTED_CODES,
    RpcOutcome,
    build_request,
    frame_token,
    parse_response,
)

_LOGGER = logging.getLogger(__name__)

SendFrame = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(slots=True)
class PendingCall:
    """Outstanding request awaiting its response."""

    token: int
    method: str
    params: dict[str, Any] | None
    created_at: float
    future: asyncio.Future[RpcOutcome]


class RpcCorrelator:
    """Match JSON-RPC responses to requests by token.

    Usage:
        correlator = RpcCorrelator(ws_client.send_json)
        # receive loop: correlator.handle_frame(frame) for every frame
        outcome = await correlator.call("get_status")
    """

    def __init__(
        self,
        send: SendFrame,
        *,
        default_timeout: float = 10.0,
        unsupported_codes: Collection[int] = DEFAULT_UNSUPPORTED_CODES,
    ) -> None:
        self._send = send
        self._default_timeout = default_timeout
        self._unsupported_codes = frozenset(unsupported_codes)
        self._tokens = itertools.count(1)
        self._last_token = 0
        self._pending: dict[int, PendingCall] = {}
        self.unsolicited: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def last_token(self) -> int:
        """Most recently issued token, 0 before the first call."""
        return self._last_token

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RpcOutcome:
        """Send a request and wait for its outcome.

        Never raises for device or transport problems; those are returned as
        outcomes. Cancelling the caller removes the pending entry.
        """
        if timeout is None:
            timeout = self._default_timeout

        token = next(self._tokens)
        self._last_token = token
        pending = PendingCall(
            token=token,
            method=method,
            params=params,
            created_at=time.monotonic(),
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[token] = pending

        try:
            try:
                await self._send(build_request(token, method, params))
            except PanonoClientError as err:
                _LOGGER.debug("Send failed for %s (id=%d): %s", method, token, err)
                return RpcOutcome.transport_error(str(err))

            _LOGGER.debug("Sent %s (id=%d)", method, token)
            try:
                return await asyncio.wait_for(pending.future, timeout)
            except TimeoutError:
                _LOGGER.warning(
                    "%s (id=%d) timed out after %.1fs",
                    method,
                    token,
                    time.monotonic() - pending.created_at,
                )
                return RpcOutcome.timeout(f"no response to {method} within {timeout}s")
        finally:
            self._pending.pop(token, None)

    def handle_frame(self, frame: dict[str, Any]) -> None:
        """Route one decoded frame from the receive loop."""
        token = frame_token(frame)
        if "method" in frame or token is None or not 0 < token <= self._last_token:
            self.unsolicited.put_nowait(frame)
            return

        pending = self._pending.pop(token, None)
        if pending is None or pending.future.done():
            _LOGGER.debug("Discarding late response for id=%d", token)
            return

        outcome = parse_response(frame, self._unsupported_codes)
        if outcome.warning:
            _LOGGER.warning(
                "%s (id=%d) warning %s: %s",
                pending.method,
                token,
                outcome.warning.get("code"),
                outcome.warning.get("message"),
            )
        _LOGGER.debug(
            "%s (id=%d) -> %s in %.3fs",
            pending.method,
            token,
            outcome.kind.value,
            time.monotonic() - pending.created_at,
        )
        pending.future.set_result(outcome)

    def fail_all(self, detail: str) -> int:
        """Resolve every outstanding call as a transport error."""
        failed = 0
        while self._pending:
            _, pending = self._pending.popitem()
            if not pending.future.done():
                pending.future.set_result(RpcOutcome.transport_error(detail))
                failed += 1
        if failed:
            _LOGGER.debug("Failed %d pending calls: %s", failed, detail)
        return failed
