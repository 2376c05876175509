"""Typed views of camera response payloads.

Only the payloads the command surface relies on are modelled. Parsing is
strict about the fields used and ignores everything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ResponseParseError


def _require(data: Any, key: str, kind: type | tuple[type, ...]) -> Any:
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected an object, got {type(data).__name__}")
    if key not in data:
        raise ResponseParseError(f"Missing field {key!r}")
    value = data[key]
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ResponseParseError(f"Field {key!r} has type bool")
    if not isinstance(value, kind):
        raise ResponseParseError(
            f"Field {key!r} has type {type(value).__name__}"
        )
    return value


@dataclass(frozen=True)
class Storage:
    total: int
    usage: int


@dataclass(frozen=True)
class DeviceStatus:
    """Reply to ``auth`` and ``get_status``."""

    device_id: str
    firmware_version: str
    serial_number: str
    capture_available: bool
    is_auth: bool
    update_ready: bool
    firmware_update_url: str
    auth_token: str = ""
    current_time: str = ""
    storage: dict[str, Storage] = field(default_factory=lambda: {})

    @classmethod
    def from_dict(cls, data: Any) -> DeviceStatus:
        storage_raw = data.get("storage", {}) if isinstance(data, dict) else {}
        if not isinstance(storage_raw, dict):
            raise ResponseParseError("Field 'storage' has to be an object")
        storage = {
            name: Storage(
                total=_require(entry, "total", int),
                usage=_require(entry, "usage", int),
            )
            for name, entry in storage_raw.items()
        }
        return cls(
            device_id=_require(data, "device_id", str),
            firmware_version=_require(data, "firmware_version", str),
            serial_number=_require(data, "serial_number", str),
            capture_available=_require(data, "capture_available", bool),
            is_auth=_require(data, "is_auth", bool),
            update_ready=_require(data, "update_ready", bool),
            firmware_update_url=_require(data, "firmware_update_url", str),
            auth_token=data.get("auth_token", ""),
            current_time=data.get("current_time", ""),
            storage=storage,
        )


@dataclass(frozen=True)
class UpfInfo:
    """One stored panorama."""

    capture_date: str
    image_id: str
    preview_url: str
    size: int
    upf_url: str

    @classmethod
    def from_dict(cls, data: Any) -> UpfInfo:
        return cls(
            capture_date=_require(data, "capture_date", str),
            image_id=_require(data, "image_id", str),
            preview_url=_require(data, "preview_url", str),
            size=_require(data, "size", int),
            upf_url=_require(data, "upf_url", str),
        )


@dataclass(frozen=True)
class UpfInfoList:
    """Reply to ``get_upf_infos``."""

    is_full: bool
    upf_infos: tuple[UpfInfo, ...]

    @classmethod
    def from_dict(cls, data: Any) -> UpfInfoList:
        infos = _require(data, "upf_infos", list)
        return cls(
            is_full=_require(data, "is_full", bool),
            upf_infos=tuple(UpfInfo.from_dict(info) for info in infos),
        )

    def by_capture_date(self) -> list[UpfInfo]:
        return sorted(self.upf_infos, key=lambda upf: upf.capture_date)


class ConstraintKind(Enum):
    VALUES = "values"
    MIN = "min"
    MAX = "max"


class OptionType(Enum):
    BOOLEAN = "Boolean"
    ENUMERATION = "Enumeration"
    NUMBER = "Number"
    INTEGER = "Integer"


@dataclass(frozen=True)
class Constraint:
    """Allowed values of an option.

    ``value`` is a list for VALUES constraints and a scalar for MIN/MAX.
    Number options send their bounds as strings, e.g. ``"0.25"``.
    """

    kind: ConstraintKind
    value: Any

    @classmethod
    def from_dict(cls, data: Any) -> Constraint:
        try:
            kind = ConstraintKind(_require(data, "constraint", str))
        except ValueError as err:
            raise ResponseParseError(str(err)) from err
        if kind is ConstraintKind.VALUES:
            value = _require(data, "value", list)
        else:
            value = _require(data, "value", (str, int, float))
        return cls(kind=kind, value=value)

    def describe(self) -> str:
        if self.kind is ConstraintKind.VALUES:
            return "values " + ", ".join(str(v) for v in self.value)
        return f"{self.kind.value} {self.value}"


@dataclass(frozen=True)
class CameraOption:
    name: str
    type: OptionType
    constraints: tuple[Constraint, ...]

    @classmethod
    def from_dict(cls, data: Any) -> CameraOption:
        try:
            option_type = OptionType(_require(data, "type", str))
        except ValueError as err:
            raise ResponseParseError(str(err)) from err
        return cls(
            name=_require(data, "name", str),
            type=option_type,
            constraints=tuple(
                Constraint.from_dict(c) for c in _require(data, "constraints", list)
            ),
        )


def parse_option_list(data: Any) -> list[CameraOption]:
    """Parse the reply to ``get_option_list``."""
    return [CameraOption.from_dict(option) for option in _require(data, "options", list)]


@dataclass(frozen=True)
class OptionValue:
    """Reply to ``get_option``; the value is a string, number or bool."""

    name: str
    value: str | float | bool

    @classmethod
    def from_dict(cls, data: Any) -> OptionValue:
        return cls(
            name=_require(data, "name", str),
            value=_require(data, "value", (str, int, float, bool)),
        )


@dataclass(frozen=True)
class CaptureResult:
    """Reply to ``capture``."""

    capture_available: bool
    options: dict[str, Any]

    @classmethod
    def from_dict(cls, data: Any) -> CaptureResult:
        return cls(
            capture_available=_require(data, "capture_available", bool),
            options=_require(data, "options", dict),
        )


@dataclass(frozen=True)
class DeleteResult:
    """Reply to ``delete_upf``: which parts of the UPF were removed."""

    panorama: bool
    preview: bool

    @classmethod
    def from_dict(cls, data: Any) -> DeleteResult:
        return cls(
            panorama=_require(data, "panorama", bool),
            preview=_require(data, "preview", bool),
        )
