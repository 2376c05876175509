"""JSON-RPC helpers for the Panono control channel.

This module builds request frames and turns response frames into
``RpcOutcome`` values. It performs no I/O.
"""

from __future__ import annotations

import re
from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum
from typing import Any

JSONRPC_VERSION = "2.0"

# JSON-RPC 2.0 "Method not found"
METHOD_NOT_FOUND = -32601
DEFAULT_UNSUPPORTED_CODES: frozenset[int] = frozenset({METHOD_NOT_FOUND})

_UNSUPPORTED_MESSAGE = re.compile(
    r"method[ _]not[ _]found|not[ _]supported|not[ _]implemented|unknown[ _]method",
    re.IGNORECASE,
)


class OutcomeKind(Enum):
    """Tag of an ``RpcOutcome``."""

    VALUE = "value"
    METHOD_UNSUPPORTED = "method_unsupported"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    PROTOCOL_ERROR = "protocol_error"
    NOT_CONNECTED = "not_connected"


@dataclass(frozen=True)
class RpcOutcome:
    """Result of a single control channel call.

    Exactly one of these is produced per call. Only ``VALUE`` outcomes carry
    a ``value``; device error replies keep the device ``code`` and ``data``.
    """

    kind: OutcomeKind
    value: Any = None
    detail: str | None = None
    code: int | None = None
    data: Any = None
    warning: dict[str, Any] | None = None

    @classmethod
    def success(
        cls, value: Any, *, warning: dict[str, Any] | None = None
    ) -> RpcOutcome:
        return cls(OutcomeKind.VALUE, value=value, warning=warning)

    @classmethod
    def unsupported(
        cls, detail: str | None = None, *, code: int | None = None
    ) -> RpcOutcome:
        return cls(OutcomeKind.METHOD_UNSUPPORTED, detail=detail, code=code)

    @classmethod
    def timeout(cls, detail: str | None = None) -> RpcOutcome:
        return cls(OutcomeKind.TIMEOUT, detail=detail)

    @classmethod
    def transport_error(cls, detail: str | None = None) -> RpcOutcome:
        return cls(OutcomeKind.TRANSPORT_ERROR, detail=detail)

    @classmethod
    def protocol_error(
        cls,
        detail: str | None = None,
        *,
        code: int | None = None,
        data: Any = None,
    ) -> RpcOutcome:
        return cls(OutcomeKind.PROTOCOL_ERROR, detail=detail, code=code, data=data)

    @classmethod
    def not_connected(cls, detail: str = "session is not connected") -> RpcOutcome:
        return cls(OutcomeKind.NOT_CONNECTED, detail=detail)

    @property
    def ok(self) -> bool:
        """True for ``VALUE`` outcomes."""
        return self.kind is OutcomeKind.VALUE

    @property
    def is_connectivity_problem(self) -> bool:
        """True when the outcome says nothing about the method itself."""
        return self.kind in {
            OutcomeKind.TIMEOUT,
            OutcomeKind.TRANSPORT_ERROR,
            OutcomeKind.NOT_CONNECTED,
        }


def build_request(
    token: int, method: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build a JSON-RPC request frame.

    ``params`` is omitted from the frame when ``None``; the camera rejects
    ``null`` params on parameterless methods.
    """
    frame: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "id": token,
        "method": method,
    }
    if params is not None:
        frame["params"] = params
    return frame


def frame_token(frame: dict[str, Any]) -> int | None:
    """Return the correlation token of a frame, or None for pushes.

    Only integer ids are tokens; booleans are rejected even though they are
    ints in Python.
    """
    token = frame.get("id")
    if isinstance(token, bool) or not isinstance(token, int):
        return None
    return token


def is_method_unsupported(
    error: dict[str, Any],
    unsupported_codes: Collection[int] = DEFAULT_UNSUPPORTED_CODES,
) -> bool:
    """Check whether an error object is the camera rejecting the method."""
    code = error.get("code")
    if isinstance(code, int) and not isinstance(code, bool) and code in unsupported_codes:
        return True
    message = error.get("message")
    return isinstance(message, str) and bool(_UNSUPPORTED_MESSAGE.search(message))


def parse_response(
    frame: dict[str, Any],
    unsupported_codes: Collection[int] = DEFAULT_UNSUPPORTED_CODES,
) -> RpcOutcome:
    """Turn a response frame into an outcome.

    Error replies look like::

        {"id": 3, "jsonrpc": "2.0",
         "error": {"code": 309, "details": {...}, "request": {...}}}

    The camera sends ``details`` where JSON-RPC 2.0 says ``data``; both are
    accepted.
    """
    if "error" in frame:
        error = frame["error"]
        if not isinstance(error, dict):
            return RpcOutcome.protocol_error(f"malformed error object: {error!r}")
        code = error.get("code")
        if isinstance(code, bool) or not isinstance(code, int):
            code = None
        message = error.get("message")
        detail = message if isinstance(message, str) else None
        if is_method_unsupported(error, unsupported_codes):
            return RpcOutcome.unsupported(detail, code=code)
        data = error.get("data", error.get("details"))
        return RpcOutcome.protocol_error(
            detail or f"device error {code}", code=code, data=data
        )

    if "result" in frame:
        warning = frame.get("warning")
        return RpcOutcome.success(
            frame["result"],
            warning=warning if isinstance(warning, dict) else None,
        )

    return RpcOutcome.protocol_error("response carries neither result nor error")
