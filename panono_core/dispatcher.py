"""Command dispatch for the interactive camera console.

Each user command maps to one or more ``PanonoSession.call`` invocations.
The dispatcher renders every outcome for the user and never raises for
device or connectivity problems; retry policy lives in the session.
"""

from __future__ import annotations

import json
import logging
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import PanonoClientError, PanonoFileError, ResponseParseError
from .protocol import OutcomeKind, RpcOutcome
from .responses import (
    CaptureResult,
    DeleteResult,
    DeviceStatus,
    OptionValue,
    UpfInfoList,
    parse_option_list,
)

if TYPE_CHECKING:
    from .http import PanonoHttpClient
    from .session import PanonoSession

_LOGGER = logging.getLogger(__name__)

Writer = Callable[[str], None]
Handler = Callable[[list[str]], Awaitable[RpcOutcome | None]]


@dataclass(frozen=True)
class Command:
    """A console command."""

    name: str
    help: str
    handler: Handler
    args: tuple[str, ...] = ()
    optional_args: tuple[str, ...] = ()

    @property
    def usage(self) -> str:
        parts = [self.name, *(f"<{a}>" for a in self.args)]
        parts.extend(f"[{a}]" for a in self.optional_args)
        return " ".join(parts)


def render_failure(method: str, outcome: RpcOutcome) -> str:
    """Describe a non-VALUE outcome for the user."""
    detail = f" ({outcome.detail})" if outcome.detail else ""
    if outcome.kind is OutcomeKind.METHOD_UNSUPPORTED:
        return f"{method}: device firmware does not implement this"
    if outcome.kind is OutcomeKind.TIMEOUT:
        return f"{method}: no response from camera{detail}; check the link and retry"
    if outcome.kind is OutcomeKind.TRANSPORT_ERROR:
        return f"{method}: connection problem{detail}; retry once the camera is reachable"
    if outcome.kind is OutcomeKind.NOT_CONNECTED:
        return f"{method}: not connected to camera{detail}; use 'connect' to retry"
    text = f"{method}: device error"
    if outcome.code is not None:
        text += f" {outcome.code}"
    if outcome.detail:
        text += f": {outcome.detail}"
    if outcome.data is not None:
        text += "\n" + _to_json(outcome.data)
    return text


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, sort_keys=True)


def _local_file_name(image_id: str, suffix: str) -> str | None:
    """File name for a camera image id, or None if it could leave the directory."""
    if image_id in ("", ".", "..") or any(c in image_id for c in "/\\\x00"):
        return None
    return image_id + suffix


class _DownloadProgress:
    """Report download progress in 10% steps."""

    def __init__(self, write: Writer) -> None:
        self._write = write
        self._reported = -1

    def __call__(self, received: int, total: int | None) -> None:
        if not total:
            return
        step = min(100, received * 100 // total) // 10
        if step > self._reported:
            self._reported = step
            self._write(f"  {step * 10:3d}%  {received}/{total} bytes")


class CommandDispatcher:
    """Map console commands onto camera calls.

    Usage:
        dispatcher = CommandDispatcher(session, http_client)
        await dispatcher.dispatch("get_option_value ISO")
    """

    def __init__(
        self,
        session: PanonoSession,
        http: PanonoHttpClient | None = None,
        *,
        output_dir: Path = Path("upfs"),
        write: Writer = print,
    ) -> None:
        self._session = session
        self._http = http
        self._output_dir = output_dir
        self._write = write
        self._commands: dict[str, Command] = {
            command.name: command
            for command in (
                Command("connect", "Connect or reconnect to the camera", self._connect),
                Command("auth", "Authenticate and show device status", self._auth),
                Command("get_status", "Get device status", self._get_status),
                Command("get_options", "Get options", self._get_options),
                Command("get_option_list", "Get option list", self._get_option_list),
                Command(
                    "get_option_value",
                    "Get option value",
                    self._get_option_value,
                    args=("name",),
                ),
                Command("capture", "Capture new panorama", self._capture),
                Command(
                    "delete", "Delete UPF by ID", self._delete, args=("image_id",)
                ),
                Command("get_upf_infos", "List all UPFs", self._get_upf_infos),
                Command("download", "Download any new UPFs", self._download),
                Command(
                    "download_preview",
                    "Download the preview image of a UPF",
                    self._download_preview,
                    args=("image_id",),
                ),
                Command(
                    "upload_firmware",
                    "Upload a firmware image",
                    self._upload_firmware,
                    args=("path",),
                ),
                Command(
                    "call",
                    "Call any RPC method with optional JSON params",
                    self._call,
                    args=("method",),
                    optional_args=("json_params",),
                ),
            )
        }

    @property
    def commands(self) -> dict[str, Command]:
        return dict(self._commands)

    async def dispatch(self, line: str) -> RpcOutcome | None:
        """Run one command line.

        Returns:
            The outcome of the last camera call, or None when no call was made.
        """
        try:
            words = shlex.split(line)
        except ValueError as err:
            self._write(f"Cannot parse command: {err}")
            return None
        if not words:
            return None

        name, args = words[0], words[1:]
        command = self._commands.get(name)
        if command is None:
            self._write(f"Unknown command: {name}")
            return None
        if not len(command.args) <= len(args) <= len(command.args) + len(command.optional_args):
            self._write(f"Usage: {command.usage}")
            return None

        _LOGGER.debug("Dispatching %s %s", name, args)
        return await command.handler(args)

    # -------------------------------------------------------------------------
    # Internal: call helpers
    # -------------------------------------------------------------------------

    async def _invoke(
        self, method: str, params: dict[str, Any] | None = None
    ) -> RpcOutcome:
        outcome = await self._session.call(method, params)
        if not outcome.ok:
            self._write(render_failure(method, outcome))
        elif outcome.warning:
            self._write(
                f"{method}: warning {outcome.warning.get('code')}: "
                f"{outcome.warning.get('message')}"
            )
        return outcome

    def _shape_error(self, method: str, err: ResponseParseError) -> RpcOutcome:
        outcome = RpcOutcome.protocol_error(f"unexpected response shape: {err}")
        self._write(render_failure(method, outcome))
        return outcome

    async def _show_json(
        self, method: str, params: dict[str, Any] | None = None
    ) -> RpcOutcome:
        outcome = await self._invoke(method, params)
        if outcome.ok:
            self._write(_to_json(outcome.value))
        return outcome

    # -------------------------------------------------------------------------
    # Internal: commands
    # -------------------------------------------------------------------------

    async def _connect(self, args: list[str]) -> RpcOutcome | None:
        try:
            outcome = await self._session.start()
        except PanonoClientError as err:
            self._write(f"Cannot connect: {err}")
            return None
        self._write(f"Connected to {self._session.address}")
        return outcome

    async def _auth(self, args: list[str]) -> RpcOutcome:
        return await self._show_json(
            "auth",
            {
                "device": self._session.config.auth_device,
                "force": self._session.config.auth_force,
            },
        )

    async def _get_status(self, args: list[str]) -> RpcOutcome:
        return await self._show_json("get_status")

    async def _get_options(self, args: list[str]) -> RpcOutcome:
        return await self._show_json("get_options")

    async def _capture(self, args: list[str]) -> RpcOutcome:
        outcome = await self._invoke("capture")
        if not outcome.ok:
            return outcome
        try:
            result = CaptureResult.from_dict(outcome.value)
        except ResponseParseError as err:
            return self._shape_error("capture", err)
        self._write("Panorama captured with:")
        for name, value in sorted(result.options.items()):
            self._write(f"  {name} = {value}")
        if not result.capture_available:
            self._write("Camera is not ready for the next capture yet")
        return outcome

    async def _get_option_list(self, args: list[str]) -> RpcOutcome:
        outcome = await self._invoke("get_option_list")
        if not outcome.ok:
            return outcome
        try:
            options = parse_option_list(outcome.value)
        except ResponseParseError as err:
            return self._shape_error("get_option_list", err)
        for option in options:
            constraints = "; ".join(c.describe() for c in option.constraints)
            self._write(f"{option.name} ({option.type.value}): {constraints}")
        return outcome

    async def _get_option_value(self, args: list[str]) -> RpcOutcome:
        outcome = await self._invoke("get_option", {"name": args[0]})
        if not outcome.ok:
            return outcome
        try:
            option = OptionValue.from_dict(outcome.value)
        except ResponseParseError as err:
            return self._shape_error("get_option", err)
        self._write(f"{option.name} = {option.value}")
        return outcome

    async def _delete(self, args: list[str]) -> RpcOutcome:
        image_id = args[0]
        outcome = await self._invoke("delete_upf", {"image_id": image_id})
        if not outcome.ok:
            return outcome
        try:
            result = DeleteResult.from_dict(outcome.value)
        except ResponseParseError as err:
            return self._shape_error("delete_upf", err)
        self._write(
            f"Deleted {image_id}: panorama={'yes' if result.panorama else 'no'} "
            f"preview={'yes' if result.preview else 'no'}"
        )
        return outcome

    async def _list_upfs(self) -> tuple[RpcOutcome, UpfInfoList | None]:
        outcome = await self._invoke("get_upf_infos")
        if not outcome.ok:
            return outcome, None
        try:
            return outcome, UpfInfoList.from_dict(outcome.value)
        except ResponseParseError as err:
            return self._shape_error("get_upf_infos", err), None

    async def _get_upf_infos(self, args: list[str]) -> RpcOutcome:
        outcome, upfs = await self._list_upfs()
        if upfs is None:
            return outcome
        for upf in upfs.by_capture_date():
            self._write(
                f"{upf.capture_date}  {upf.image_id}  {upf.size:>7}  {upf.upf_url}"
            )
        if upfs.is_full:
            self._write("Camera storage is full")
        return outcome

    async def _download(self, args: list[str]) -> RpcOutcome | None:
        if self._http is None:
            self._write("download: file transfer is not available")
            return None
        outcome, upfs = await self._list_upfs()
        if upfs is None:
            return outcome

        to_download = []
        for upf in upfs.upf_infos:
            file_name = _local_file_name(upf.image_id, ".upf")
            if file_name is None:
                self._write(f"Invalid image id {upf.image_id!r}, skipping...")
                continue
            path = self._output_dir / file_name
            if path.exists():
                self._write(f"{path} already exists, skipping...")
            else:
                to_download.append((upf, path))

        self._ensure_output_dir()
        for i, (upf, path) in enumerate(to_download, start=1):
            self._write(
                f"[{i}/{len(to_download)}] downloading {upf.image_id} to {path}"
            )
            await self._http.download(
                upf.upf_url,
                path,
                expected_size=upf.size,
                progress=_DownloadProgress(self._write),
            )
        self._write("complete")
        return outcome

    async def _download_preview(self, args: list[str]) -> RpcOutcome | None:
        if self._http is None:
            self._write("download_preview: file transfer is not available")
            return None
        image_id = args[0]
        file_name = _local_file_name(image_id, ".jpg")
        if file_name is None:
            self._write(f"download_preview: invalid image id {image_id!r}")
            return None
        outcome, upfs = await self._list_upfs()
        if upfs is None:
            return outcome

        upf = next((u for u in upfs.upf_infos if u.image_id == image_id), None)
        if upf is None:
            self._write(f"download_preview: no UPF with id {image_id}")
            return outcome

        data = await self._http.fetch(upf.preview_url)
        self._ensure_output_dir()
        path = self._output_dir / file_name
        try:
            path.write_bytes(data)
        except OSError as err:
            raise PanonoFileError(f"Cannot write {path}: {err}") from err
        self._write(f"Saved preview of {image_id} to {path} ({len(data)} bytes)")
        return outcome

    def _ensure_output_dir(self) -> None:
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise PanonoFileError(f"Cannot create {self._output_dir}: {err}") from err

    async def _upload_firmware(self, args: list[str]) -> RpcOutcome | None:
        if self._http is None:
            self._write("upload_firmware: file transfer is not available")
            return None
        path = Path(args[0])
        if not path.is_file():
            self._write(f"upload_firmware: no such file: {path}")
            return None

        outcome = await self._invoke("get_status")
        if not outcome.ok:
            return outcome
        try:
            status = DeviceStatus.from_dict(outcome.value)
        except ResponseParseError as err:
            return self._shape_error("get_status", err)
        if not status.firmware_update_url:
            self._write("upload_firmware: camera reports no firmware update URL")
            return outcome

        self._write(f"Uploading {path} to {status.firmware_update_url}")
        http_status = await self._http.upload_firmware(status.firmware_update_url, path)
        self._write(f"Firmware upload accepted (HTTP {http_status})")
        return outcome

    async def _call(self, args: list[str]) -> RpcOutcome | None:
        method = args[0]
        params: dict[str, Any] | None = None
        if len(args) > 1:
            try:
                decoded = json.loads(args[1])
            except ValueError as err:
                self._write(f"call: params are not valid JSON: {err}")
                return None
            if not isinstance(decoded, dict):
                self._write("call: params must be a JSON object")
                return None
            params = decoded
        return await self._show_json(method, params)
