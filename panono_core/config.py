"""Configuration loading for the Panono controller.

Configuration is a flat YAML mapping; every key is optional and falls back
to the defaults below. Handshake and backoff values are conservative
placeholders that may need tuning against real firmware.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .models import DeviceAddress, LinkKind

DEFAULT_DIRECT_ADDRESS = "ws://192.168.80.80:12345/8086"
SSDP_GROUP = "239.255.255.250"
SSDP_PORT = 1900
SEARCH_TARGET = "panono:ball-camera"

_NUMBER_FIELDS = (
    "connect_timeout",
    "call_timeout",
    "handshake_timeout",
    "ping_interval",
    "retry_base_delay",
    "retry_max_delay",
    "discovery_grace_period",
    "http_timeout",
)
_INT_FIELDS = ("max_connect_attempts", "ssdp_port")
_BOOL_FIELDS = ("auto_reconnect", "discovery_enabled")


@dataclass(frozen=True)
class PanonoConfig:
    """Runtime configuration.

    Attributes:
        address: Explicit control channel URL. Disables discovery fallback.
        direct_address: URL tried when no announcement arrives in time.
        direct_link: Link kind assumed for the direct address.
        subprotocols: WebSocket subprotocols offered during the handshake.
        connect_timeout: WebSocket open timeout (seconds).
        call_timeout: Default RPC timeout (seconds).
        handshake_timeout: Timeout of the first call on a new channel.
        ping_interval: WebSocket keepalive interval, 0 disables.
        retry_base_delay: First reconnect delay (seconds), doubled per attempt.
        retry_max_delay: Reconnect delay cap (seconds).
        max_connect_attempts: Attempts before the device is unreachable.
        auto_reconnect: Reconnect after the link drops.
        discovery_enabled: Listen for SSDP announcements.
        discovery_grace_period: Wait for an announcement before going direct.
        search_target: SSDP NT value announced by the camera.
        ssdp_group: SSDP multicast group.
        ssdp_port: SSDP port.
        handshake_method: RPC method issued as the handshake.
        auth_device: ``device`` param of the auth handshake.
        auth_force: ``force`` param of the auth handshake.
        unsupported_codes: Error codes meaning "method not implemented".
        output_dir: Where downloaded UPFs are stored.
        http_timeout: File endpoint request timeout (seconds).
    """

    address: str | None = None
    direct_address: str | None = DEFAULT_DIRECT_ADDRESS
    direct_link: LinkKind = LinkKind.WIRELESS
    subprotocols: tuple[str, ...] = ()
    connect_timeout: float = 10.0
    call_timeout: float = 10.0
    handshake_timeout: float = 5.0
    ping_interval: float = 20.0
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    max_connect_attempts: int = 5
    auto_reconnect: bool = True
    discovery_enabled: bool = True
    discovery_grace_period: float = 5.0
    search_target: str = SEARCH_TARGET
    ssdp_group: str = SSDP_GROUP
    ssdp_port: int = SSDP_PORT
    handshake_method: str = "auth"
    auth_device: str = "test"
    auth_force: str = "test"
    unsupported_codes: frozenset[int] = field(default_factory=lambda: frozenset({-32601}))
    output_dir: Path = Path("upfs")
    http_timeout: float = 60.0

    def __post_init__(self) -> None:
        for name in _NUMBER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
        for name in _INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in _BOOL_FIELDS:
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false")

        if self.max_connect_attempts < 1:
            raise ConfigError("max_connect_attempts must be at least 1")
        for name in (
            "connect_timeout",
            "call_timeout",
            "handshake_timeout",
            "retry_base_delay",
            "http_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.retry_max_delay < self.retry_base_delay:
            raise ConfigError("retry_max_delay must not be below retry_base_delay")
        if self.discovery_grace_period < 0:
            raise ConfigError("discovery_grace_period must not be negative")

    @property
    def handshake_params(self) -> dict[str, Any] | None:
        if self.handshake_method == "auth":
            return {"device": self.auth_device, "force": self.auth_force}
        return None

    def explicit_address(self) -> DeviceAddress | None:
        """Address given by the user, if any."""
        if not self.address:
            return None
        return DeviceAddress(self.address, self.direct_link)

    def fallback_address(self) -> DeviceAddress | None:
        """Address tried when discovery stays silent."""
        if not self.direct_address:
            return None
        return DeviceAddress(self.direct_address, self.direct_link)

    def replace(self, **changes: Any) -> PanonoConfig:
        """Return a copy with ``changes`` applied, skipping None values."""
        return dataclasses.replace(
            self, **{k: v for k, v in changes.items() if v is not None}
        )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> PanonoConfig:
        """Build a config from a plain mapping such as parsed YAML."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        values = dict(data)
        try:
            if "direct_link" in values:
                values["direct_link"] = LinkKind(values["direct_link"])
            if "subprotocols" in values:
                values["subprotocols"] = tuple(values["subprotocols"] or ())
            if "unsupported_codes" in values:
                values["unsupported_codes"] = frozenset(
                    int(code) for code in values["unsupported_codes"] or ()
                )
            if "output_dir" in values:
                values["output_dir"] = Path(values["output_dir"])
            return cls(**values)
        except (TypeError, ValueError) as err:
            raise ConfigError(f"Invalid configuration value: {err}") from err


def load_config(path: Path | None = None) -> PanonoConfig:
    """Load configuration from a YAML file, or defaults when path is None.

    Raises:
        ConfigError: If the file is missing, unparsable or invalid.
    """
    if path is None:
        return PanonoConfig()
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return PanonoConfig.from_mapping(data)
