"""Tests for RpcCorrelator request/response matching."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from panono_core.correlator import RpcCorrelator
from panono_core.errors import PanonoConnectionError
from panono_core.protocol import OutcomeKind

from .conftest import wait_until


class RecordingSender:
    """Send function that records frames instead of writing to a socket."""

    def __init__(self, error: Exception | None = None) -> None:
        self.frames: list[dict[str, Any]] = []
        self.error = error

    async def __call__(self, frame: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.frames.append(frame)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def correlator(sender: RecordingSender) -> RpcCorrelator:
    return RpcCorrelator(sender, default_timeout=1.0)


def reply(token: int, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": token, "result": result}


class TestCall:
    """Tests for RpcCorrelator.call()."""

    async def test_tokens_increase_from_one(self, correlator, sender):
        """Test each call gets a fresh, increasing token."""
        tasks = [asyncio.create_task(correlator.call("get_status")) for _ in range(3)]
        await wait_until(lambda: len(sender.frames) == 3)

        assert [f["id"] for f in sender.frames] == [1, 2, 3]
        assert correlator.last_token == 3
        assert correlator.pending_count == 3

        for frame in sender.frames:
            correlator.handle_frame(reply(frame["id"], {}))
        await asyncio.gather(*tasks)

    async def test_out_of_order_responses(self, correlator, sender):
        """Test responses are matched by token, not by arrival order."""
        tasks = [
            asyncio.create_task(correlator.call(method))
            for method in ("get_status", "get_options", "get_upf_infos")
        ]
        await wait_until(lambda: len(sender.frames) == 3)

        correlator.handle_frame(reply(3, "upfs"))
        correlator.handle_frame(reply(1, "status"))
        correlator.handle_frame(reply(2, "options"))
        outcomes = await asyncio.gather(*tasks)

        assert [o.value for o in outcomes] == ["status", "options", "upfs"]
        assert correlator.pending_count == 0
        assert correlator.unsolicited.empty()

    async def test_timeout_then_late_response_discarded(self, correlator, sender):
        """Test a response after the timeout is dropped, not pushed."""
        outcome = await correlator.call("capture", timeout=0.01)

        assert outcome.kind is OutcomeKind.TIMEOUT
        assert correlator.pending_count == 0

        correlator.handle_frame(reply(1, {"capture_available": True}))
        assert correlator.unsolicited.empty()

    async def test_method_unsupported(self, correlator, sender):
        task = asyncio.create_task(correlator.call("get_upf_infos"))
        await wait_until(lambda: sender.frames)
        correlator.handle_frame(
            {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "nope"}}
        )

        outcome = await task
        assert outcome.kind is OutcomeKind.METHOD_UNSUPPORTED

    async def test_custom_unsupported_codes(self, sender):
        """Test configured unsupported codes are used for classification."""
        correlator = RpcCorrelator(sender, unsupported_codes={404})
        task = asyncio.create_task(correlator.call("get_upf_infos"))
        await wait_until(lambda: sender.frames)
        correlator.handle_frame({"id": 1, "error": {"code": 404}})

        assert (await task).kind is OutcomeKind.METHOD_UNSUPPORTED

    async def test_device_error(self, correlator, sender):
        task = asyncio.create_task(correlator.call("delete_upf", {"image_id": "x"}))
        await wait_until(lambda: sender.frames)
        correlator.handle_frame(
            {"id": 1, "error": {"code": 309, "details": {"image_id": "x"}}}
        )

        outcome = await task
        assert outcome.kind is OutcomeKind.PROTOCOL_ERROR
        assert outcome.code == 309
        assert outcome.data == {"image_id": "x"}

    async def test_send_failure_is_transport_error(self):
        """Test a failed write resolves the call without waiting."""
        correlator = RpcCorrelator(
            RecordingSender(PanonoConnectionError("WebSocket closed while sending")),
            default_timeout=5.0,
        )

        outcome = await correlator.call("get_status")

        assert outcome.kind is OutcomeKind.TRANSPORT_ERROR
        assert "closed" in outcome.detail
        assert correlator.pending_count == 0

    async def test_cancelled_call_is_removed(self, correlator, sender):
        """Test cancelling the caller frees the pending entry."""
        task = asyncio.create_task(correlator.call("capture"))
        await wait_until(lambda: sender.frames)
        assert correlator.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert correlator.pending_count == 0
        correlator.handle_frame(reply(1, {}))
        assert correlator.unsolicited.empty()

    async def test_duplicate_response_ignored(self, correlator, sender):
        task = asyncio.create_task(correlator.call("get_status"))
        await wait_until(lambda: sender.frames)
        correlator.handle_frame(reply(1, "first"))
        correlator.handle_frame(reply(1, "second"))

        assert (await task).value == "first"
        assert correlator.unsolicited.empty()


class TestHandleFrame:
    """Tests for routing of frames that answer no call."""

    @pytest.mark.parametrize(
        "frame",
        [
            {"jsonrpc": "2.0", "method": "status_update", "params": {"a": 1}},
            {"jsonrpc": "2.0", "result": {}},
            {"jsonrpc": "2.0", "id": 99, "result": {}},
            {"jsonrpc": "2.0", "id": 0, "result": {}},
        ],
    )
    def test_unsolicited_frames_are_queued(self, correlator, frame):
        correlator.handle_frame(frame)
        assert correlator.unsolicited.get_nowait() == frame

    async def test_notification_with_pending_id_is_not_a_response(
        self, correlator, sender
    ):
        """Test a frame carrying a method is never taken as a reply."""
        task = asyncio.create_task(correlator.call("get_status", timeout=0.05))
        await wait_until(lambda: sender.frames)
        push = {"jsonrpc": "2.0", "id": 1, "method": "status_update"}
        correlator.handle_frame(push)

        assert (await task).kind is OutcomeKind.TIMEOUT
        assert correlator.unsolicited.get_nowait() == push


class TestFailAll:
    """Tests for RpcCorrelator.fail_all()."""

    async def test_fail_all_resolves_every_call(self, correlator, sender):
        tasks = [asyncio.create_task(correlator.call("capture")) for _ in range(2)]
        await wait_until(lambda: len(sender.frames) == 2)

        assert correlator.fail_all("link closed by camera") == 2

        outcomes = await asyncio.gather(*tasks)
        assert all(o.kind is OutcomeKind.TRANSPORT_ERROR for o in outcomes)
        assert all(o.detail == "link closed by camera" for o in outcomes)
        assert correlator.pending_count == 0

    def test_fail_all_without_calls(self, correlator):
        assert correlator.fail_all("nothing") == 0
