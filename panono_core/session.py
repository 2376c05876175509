"""Session manager for the Panono camera control channel.

This module owns the connection lifecycle. It handles:
- Choosing an address (explicit, announced via SSDP, or the direct fallback)
- The handshake that proves the control channel is alive
- The Disconnected / Connecting / Connected / Degraded state machine
- Reconnect with exponential backoff after the link drops
- Routing pushed device messages

Callers use ``call()`` and never talk to the transport directly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from .config import PanonoConfig
from .correlator import RpcCorrelator
from .discovery import DiscoveryListener
from .errors import (
    PanonoClientError,
    PanonoDeviceUnreachable,
    PanonoResourceError,
)
from .models import DeviceAddress, SessionState
from .protocol import OutcomeKind, RpcOutcome
from .transport.ws_client import PanonoWsClient, PanonoWsMessageType

_LOGGER = logging.getLogger(__name__)

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.DISCONNECTED: frozenset({SessionState.CONNECTING}),
    SessionState.CONNECTING: frozenset(
        {SessionState.CONNECTED, SessionState.DISCONNECTED}
    ),
    SessionState.CONNECTED: frozenset(
        {SessionState.DEGRADED, SessionState.DISCONNECTED}
    ),
    SessionState.DEGRADED: frozenset(
        {SessionState.CONNECTED, SessionState.DISCONNECTED}
    ),
}

_LIVE_STATES = frozenset({SessionState.CONNECTED, SessionState.DEGRADED})
_HANDSHAKE_FAILURES = frozenset({OutcomeKind.TIMEOUT, OutcomeKind.TRANSPORT_ERROR})


class PanonoSession:
    """Connection manager for one camera.

    Usage:
        session = PanonoSession(PanonoConfig())
        session.on_state_changed(my_state_handler)
        status = await session.start()
        outcome = await session.call("get_status")
        await session.close()
    """

    def __init__(
        self,
        config: PanonoConfig | None = None,
        *,
        discovery: DiscoveryListener | None = None,
    ) -> None:
        """Initialize session.

        Args:
            config: Runtime configuration, defaults when omitted
            discovery: Announcement listener; built from config when omitted
                and discovery is enabled
        """
        self.config = config or PanonoConfig()
        if discovery is None and self.config.discovery_enabled:
            discovery = DiscoveryListener(
                search_target=self.config.search_target,
                group=self.config.ssdp_group,
                port=self.config.ssdp_port,
            )
        self._discovery = discovery

        # Connection state
        self._state = SessionState.DISCONNECTED
        self._address: DeviceAddress | None = None
        self._announced: DeviceAddress | None = None
        self._announcement = asyncio.Event()
        self._grace_period_used = False
        self._ws: PanonoWsClient | None = None
        self._correlator: RpcCorrelator | None = None
        self._shutdown_requested = False
        self._terminal_error: PanonoClientError | None = None
        self._last_error: PanonoClientError | None = None

        # Tasks
        self._connect_task: asyncio.Task[bool] | None = None
        self._discovery_task: asyncio.Task[None] | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._push_task: asyncio.Task[None] | None = None

        # Device state
        self.handshake_outcome: RpcOutcome | None = None
        self.device_status: dict[str, Any] = {}

        # Callbacks
        self._state_callback: Callable[[SessionState], None] | None = None
        self._push_callback: Callable[[dict[str, Any]], None] | None = None

    async def __aenter__(self) -> PanonoSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True while calls are allowed (Connected or Degraded)."""
        return self._state in _LIVE_STATES

    @property
    def address(self) -> DeviceAddress | None:
        """Address of the current or most recent connection attempt."""
        return self._address

    @property
    def announced_address(self) -> DeviceAddress | None:
        """Most recent SSDP announcement."""
        return self._announced

    async def start(self) -> RpcOutcome:
        """Connect to the camera.

        Returns:
            The handshake outcome once Connected.

        Raises:
            PanonoDeviceUnreachable: Connection attempts were exhausted.
            PanonoResourceError: The host could not allocate a socket.
        """
        if self._terminal_error is not None:
            raise self._terminal_error
        if self._shutdown_requested:
            raise PanonoClientError("Session is closed")
        if self.is_connected and self.handshake_outcome is not None:
            return self.handshake_outcome

        self._start_discovery()
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._connect_with_retries())

        if not await self._connect_task or self.handshake_outcome is None:
            raise self._last_error or PanonoDeviceUnreachable(
                "Camera unreachable", self.config.max_connect_attempts
            )
        return self.handshake_outcome

    async def close(self) -> None:
        """Gracefully close session."""
        _LOGGER.info("[%s] Closing session", self._tag)
        self._shutdown_requested = True

        for task in (
            self._connect_task,
            self._discovery_task,
            self._listen_task,
            self._push_task,
        ):
            await _cancel_task(task)
        self._connect_task = None
        self._discovery_task = None
        self._listen_task = None
        self._push_task = None

        await self._teardown_transport("session closed")
        if self._state is not SessionState.DISCONNECTED:
            self._set_state(SessionState.DISCONNECTED)

    # -------------------------------------------------------------------------
    # Public API: Calls
    # -------------------------------------------------------------------------

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RpcOutcome:
        """Call a camera method.

        Fails immediately with a NOT_CONNECTED outcome, without any I/O,
        unless the session is Connected or Degraded.
        """
        correlator = self._correlator
        if self._state not in _LIVE_STATES or correlator is None:
            detail = f"session is {self._state.value}"
            error = self._terminal_error or self._last_error
            if error is not None:
                detail += f": {error}"
            return RpcOutcome.not_connected(detail)

        outcome = await correlator.call(method, params, timeout)

        if correlator is self._correlator:
            if outcome.kind is OutcomeKind.TRANSPORT_ERROR:
                if self._state is SessionState.CONNECTED:
                    _LOGGER.warning(
                        "[%s] %s failed on a live link: %s",
                        self._tag,
                        method,
                        outcome.detail,
                    )
                    self._set_state(SessionState.DEGRADED)
            elif self._state is SessionState.DEGRADED:
                self._set_state(SessionState.CONNECTED)
        return outcome

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_state_changed(self, callback: Callable[[SessionState], None]) -> None:
        """Register callback for session state changes."""
        self._state_callback = callback

    def on_push(self, callback: Callable[[dict[str, Any]], None]) -> None:
        """Register callback for unsolicited device messages.

        Callback receives the raw frame, e.g. {
            "jsonrpc": "2.0",
            "method": "status_update",
            "params": {"capture_available": false}
        }
        """
        self._push_callback = callback

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    @property
    def _tag(self) -> str:
        return self._address.url if self._address else "panono"

    def _set_state(self, state: SessionState) -> None:
        """Update connection state and notify callback."""
        if self._state is state:
            return
        if state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Illegal session transition {self._state.value} -> {state.value}"
            )
        _LOGGER.debug("[%s] State: %s → %s", self._tag, self._state.value, state.value)
        self._state = state
        if self._state_callback:
            try:
                self._state_callback(state)
            except Exception as err:
                _LOGGER.exception("[%s] State callback error: %s", self._tag, err)

    def _backoff_delay(self, attempt: int) -> float:
        return min(
            self.config.retry_base_delay * (2**attempt),
            self.config.retry_max_delay,
        )

    async def _connect_with_retries(self, initial_delay: float = 0.0) -> bool:
        """Run connection attempts until Connected or attempts run out."""
        if initial_delay:
            _LOGGER.info("[%s] Reconnecting in %.1fs", self._tag, initial_delay)
            await asyncio.sleep(initial_delay)
        if self._shutdown_requested or self._state is not SessionState.DISCONNECTED:
            return self.is_connected

        self._set_state(SessionState.CONNECTING)
        attempts = self.config.max_connect_attempts

        for attempt in range(attempts):
            if self._shutdown_requested:
                break
            if attempt:
                delay = self._backoff_delay(attempt - 1)
                _LOGGER.info(
                    "[%s] Retrying in %.1fs (attempt %d/%d)",
                    self._tag,
                    delay,
                    attempt + 1,
                    attempts,
                )
                await asyncio.sleep(delay)

            address = await self._next_candidate()
            if address is None:
                _LOGGER.warning("No camera address known (attempt %d)", attempt + 1)
                continue

            try:
                if await self._attempt(address):
                    self._last_error = None
                    return True
            except PanonoResourceError as err:
                _LOGGER.error("[%s] Session terminated: %s", self._tag, err)
                self._terminal_error = err
                self._last_error = err
                await self._teardown_transport(str(err))
                self._set_state(SessionState.DISCONNECTED)
                return False

        self._last_error = PanonoDeviceUnreachable(
            f"Camera unreachable after {attempts} attempts", attempts
        )
        if not self._shutdown_requested:
            _LOGGER.error("[%s] %s", self._tag, self._last_error)
        self._set_state(SessionState.DISCONNECTED)
        return False

    async def _next_candidate(self) -> DeviceAddress | None:
        """Pick the address for the next attempt.

        An explicit address wins; then the latest announcement. With neither,
        wait once per session for an announcement before falling back to the
        direct address.
        """
        explicit = self.config.explicit_address()
        if explicit is not None:
            return explicit
        if self._announced is not None:
            return self._announced

        grace = self.config.discovery_grace_period
        if self._discovery_task is not None and grace > 0 and not self._grace_period_used:
            self._grace_period_used = True
            _LOGGER.info("Waiting up to %.1fs for a camera announcement", grace)
            try:
                await asyncio.wait_for(self._announcement.wait(), grace)
            except TimeoutError:
                _LOGGER.info("No announcement received, trying direct address")
            if self._announced is not None:
                return self._announced

        return self.config.fallback_address()

    async def _attempt(self, address: DeviceAddress) -> bool:
        """Open the transport and run the handshake once."""
        self._address = address
        _LOGGER.info("[%s] Connecting over %s link", self._tag, address.link.value)

        ws = PanonoWsClient()
        try:
            await ws.connect(
                address.url,
                subprotocols=self.config.subprotocols,
                ping_interval=self.config.ping_interval or None,
                timeout=self.config.connect_timeout,
            )
        except PanonoResourceError:
            raise
        except PanonoClientError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self._tag, err)
            return False

        correlator = RpcCorrelator(
            ws.send_json,
            default_timeout=self.config.call_timeout,
            unsupported_codes=self.config.unsupported_codes,
        )
        self._ws = ws
        self._correlator = correlator
        self._listen_task = asyncio.create_task(self._listen(ws, correlator))
        self._push_task = asyncio.create_task(self._drain_pushes(correlator))

        _LOGGER.debug("[%s] WebSocket connected, sending handshake", self._tag)
        outcome = await correlator.call(
            self.config.handshake_method,
            self.config.handshake_params,
            timeout=self.config.handshake_timeout,
        )
        if outcome.kind in _HANDSHAKE_FAILURES or correlator is not self._correlator:
            _LOGGER.warning("[%s] Handshake failed: %s", self._tag, outcome.detail)
            await self._teardown_transport("handshake failed")
            return False

        # The camera may answer and close before this coroutine resumes
        listen_task = self._listen_task
        if listen_task is None or listen_task.done():
            _LOGGER.warning("[%s] Link closed right after handshake", self._tag)
            await self._teardown_transport("link closed during handshake")
            return False

        if outcome.kind is OutcomeKind.VALUE and isinstance(outcome.value, dict):
            self.device_status.update(outcome.value)
        self.handshake_outcome = outcome
        self._set_state(SessionState.CONNECTED)
        _LOGGER.info(
            "[%s] Connected (handshake %s: %s)",
            self._tag,
            self.config.handshake_method,
            outcome.kind.value,
        )
        return True

    async def _teardown_transport(self, reason: str) -> None:
        """Stop the receive loops and release the socket."""
        ws, self._ws = self._ws, None
        correlator, self._correlator = self._correlator, None
        listen_task, self._listen_task = self._listen_task, None
        push_task, self._push_task = self._push_task, None

        if correlator is not None:
            correlator.fail_all(reason)
        for task in (listen_task, push_task):
            if task is not asyncio.current_task():
                await _cancel_task(task)
        if ws is not None:
            try:
                await asyncio.wait_for(ws.close(), timeout=2.0)
            except TimeoutError:
                _LOGGER.warning("[%s] WebSocket close timed out", self._tag)

    async def _handle_link_down(self, reason: str) -> None:
        """Move to Disconnected after the link dropped and maybe reconnect."""
        _LOGGER.warning("[%s] Control channel lost: %s", self._tag, reason)
        self._set_state(SessionState.DISCONNECTED)
        await self._teardown_transport(reason)

        if (
            self.config.auto_reconnect
            and not self._shutdown_requested
            and self._terminal_error is None
        ):
            self._connect_task = asyncio.create_task(
                self._connect_with_retries(initial_delay=self.config.retry_base_delay)
            )

    # -------------------------------------------------------------------------
    # Internal: Discovery
    # -------------------------------------------------------------------------

    def _start_discovery(self) -> None:
        if self._discovery is None or self.config.explicit_address() is not None:
            return
        if self._discovery_task is None or self._discovery_task.done():
            self._discovery_task = asyncio.create_task(self._discover(self._discovery))

    async def _discover(self, listener: DiscoveryListener) -> None:
        async for address in listener.announcements():
            self._on_announcement(address)
        _LOGGER.debug("Discovery listener stopped")

    def _on_announcement(self, address: DeviceAddress) -> None:
        """Record an announcement; connect when idle."""
        if address != self._announced:
            _LOGGER.info("Camera announced at %s (%s)", address.url, address.identity)
        self._announced = address
        self._announcement.set()

        if (
            self._state is SessionState.DISCONNECTED
            and not self._shutdown_requested
            and self._terminal_error is None
            and (self._connect_task is None or self._connect_task.done())
        ):
            self._connect_task = asyncio.create_task(self._connect_with_retries())

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self, ws: PanonoWsClient, correlator: RpcCorrelator) -> None:
        """Feed frames from the camera to the correlator."""
        message_count = 0
        reason = "link closed by camera"

        try:
            async for msg in ws:
                if msg.type is PanonoWsMessageType.TEXT:
                    if msg.data is not None:
                        message_count += 1
                        correlator.handle_frame(msg.data)
                elif msg.type is PanonoWsMessageType.CLOSED:
                    _LOGGER.info("[%s] WebSocket closed by camera", self._tag)
                    break
                elif msg.type is PanonoWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self._tag)
                    reason = "link error"
                    break
        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self._tag, message_count
            )
            raise
        except PanonoClientError as err:
            _LOGGER.warning("[%s] Client error: %s", self._tag, err)
            reason = str(err)
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected error: %s", self._tag, err)
            reason = "receive loop failed"

        correlator.fail_all(reason)
        if ws is self._ws and self._state in _LIVE_STATES and not self._shutdown_requested:
            await self._handle_link_down(reason)

    async def _drain_pushes(self, correlator: RpcCorrelator) -> None:
        """Handle unsolicited device messages."""
        while True:
            frame = await correlator.unsolicited.get()
            method = frame.get("method")
            params = frame.get("params")
            _LOGGER.debug("[%s] Push %s: %s", self._tag, method, params)

            if method == "status_update" and isinstance(params, dict):
                self.device_status.update(params)

            if self._push_callback:
                try:
                    self._push_callback(frame)
                except Exception as err:
                    _LOGGER.exception("[%s] Push callback error: %s", self._tag, err)


async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
    """Cancel a task and wait for it to finish."""
    if task is None or task is asyncio.current_task():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
