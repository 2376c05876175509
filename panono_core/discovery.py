"""Passive SSDP discovery of Panono cameras.

The camera announces itself with periodic ``NOTIFY`` datagrams on the SSDP
multicast group, but only over its wireless link. The listener joins the
group and never sends anything, so on a tethered link it simply stays
silent; the session treats that silence as a cue to connect directly.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
from typing import TYPE_CHECKING

from .config import SEARCH_TARGET, SSDP_GROUP, SSDP_PORT
from .models import DeviceAddress, LinkKind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_LOGGER = logging.getLogger(__name__)

_NOTIFY_LINE = "NOTIFY * HTTP/1.1"
_MAX_QUEUED_ANNOUNCEMENTS = 64


def parse_announcement(
    datagram: bytes, search_target: str = SEARCH_TARGET
) -> DeviceAddress | None:
    """Parse an SSDP datagram into a camera address.

    Returns None for anything that is not an ``ssdp:alive`` notification for
    ``search_target`` with a LOCATION header.
    """
    try:
        text = datagram.decode("utf-8")
    except UnicodeDecodeError:
        return None

    lines = text.split("\r\n") if "\r\n" in text else text.split("\n")
    if not lines or lines[0].strip().upper() != _NOTIFY_LINE:
        return None

    headers: dict[str, str] = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if not sep:
            continue
        headers[name.strip().lower()] = value.strip()

    if headers.get("nts", "").lower() != "ssdp:alive":
        return None
    if headers.get("nt") != search_target:
        return None
    location = headers.get("location")
    if not location:
        return None

    return DeviceAddress(
        url=location,
        link=LinkKind.WIRELESS,
        identity=headers.get("usn") or None,
    )


class _SsdpProtocol(asyncio.DatagramProtocol):
    """Feed parsed announcements into a queue."""

    def __init__(
        self, queue: asyncio.Queue[DeviceAddress | None], search_target: str
    ) -> None:
        self._queue = queue
        self._search_target = search_target

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        address = parse_announcement(data, self._search_target)
        if address is None:
            return
        _LOGGER.debug("Announcement from %s: %s", addr[0], address.url)
        if self._queue.full():
            return
        self._queue.put_nowait(address)

    def error_received(self, exc: Exception) -> None:
        _LOGGER.debug("SSDP socket error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        # Wake the consumer; a full queue means it is awake already.
        if not self._queue.full():
            self._queue.put_nowait(None)


class DiscoveryListener:
    """Listen for camera announcements.

    Usage:
        listener = DiscoveryListener()
        async for address in listener.announcements():
            ...

    Each call to ``announcements()`` binds its own socket, which is released
    when the iterator is closed, so the listener can be restarted.
    """

    def __init__(
        self,
        *,
        search_target: str = SEARCH_TARGET,
        group: str = SSDP_GROUP,
        port: int = SSDP_PORT,
        interface: str = "0.0.0.0",
    ) -> None:
        self.search_target = search_target
        self.group = group
        self.port = port
        self.interface = interface

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(("", self.port))
            mreq = struct.pack(
                "=4s4s",
                socket.inet_aton(self.group),
                socket.inet_aton(self.interface),
            )
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    async def announcements(self) -> AsyncIterator[DeviceAddress]:
        """Yield camera addresses as they are announced.

        Ends quietly if the multicast socket cannot be opened.
        """
        try:
            sock = self._open_socket()
        except OSError as err:
            _LOGGER.warning("SSDP discovery unavailable: %s", err)
            return

        queue: asyncio.Queue[DeviceAddress | None] = asyncio.Queue(
            maxsize=_MAX_QUEUED_ANNOUNCEMENTS
        )
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _SsdpProtocol(queue, self.search_target), sock=sock
        )
        _LOGGER.debug("Listening for %s on %s:%d", self.search_target, self.group, self.port)
        try:
            while True:
                address = await queue.get()
                if address is None:
                    return
                yield address
        finally:
            transport.close()
