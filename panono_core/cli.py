"""Console entry point for the Panono controller."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiohttp

from . import __version__
from .config import PanonoConfig, load_config
from .dispatcher import CommandDispatcher, Writer, render_failure
from .errors import ConfigError, PanonoClientError
from .http import PanonoHttpClient
from .repl import PanonoRepl
from .session import PanonoSession

_LOGGER = logging.getLogger(__name__)

LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_QUIET_LOGGERS = ("websockets", "aiohttp", "asyncio")


def configure_logging(
    level_name: str,
    log_file: Path | None = None,
    *,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%H:%M:%S",
) -> None:
    """Configure root logging to stderr with optional file output.

    Library loggers are held at WARNING unless the level is debug.
    """
    level = LOG_LEVELS.get(level_name.lower(), logging.WARNING)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    formatter = logging.Formatter(fmt, datefmt=datefmt)
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if level != logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="panono",
        description="Interactive controller for the Panono 360 camera",
    )
    parser.add_argument(
        "address",
        nargs="?",
        help=(
            "WebSocket address of the camera, e.g. ws://192.168.80.80:12345/8086. "
            "If omitted, the camera is located with SSDP"
        ),
    )
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument(
        "--no-discovery",
        action="store_true",
        help="Do not listen for SSDP announcements",
    )
    parser.add_argument(
        "--output-dir", type=Path, help="Directory for downloaded UPFs"
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS),
        default="warning",
        help="Logging level (default: warning)",
    )
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


async def run(config: PanonoConfig, *, write: Writer = print) -> int:
    """Connect, run the console and clean up.

    Returns:
        Process exit code.
    """

    def show_push(frame: dict[str, Any]) -> None:
        write(f"push: {frame.get('method')} {json.dumps(frame.get('params'))}")

    async with aiohttp.ClientSession() as http_session, PanonoSession(config) as session:
        session.on_push(show_push)
        if config.address is None:
            write("Searching for camera...")
        else:
            write(f"Connecting to {config.address}")
        try:
            handshake = await session.start()
        except PanonoClientError as err:
            write(f"Cannot connect: {err}")
            return 1

        write(f"Connected to {session.address}")
        if handshake.ok:
            write(json.dumps(handshake.value, indent=2, sort_keys=True))
        else:
            write(render_failure(config.handshake_method, handshake))

        dispatcher = CommandDispatcher(
            session,
            PanonoHttpClient(http_session, timeout=config.http_timeout),
            output_dir=config.output_dir,
            write=write,
        )
        await PanonoRepl(dispatcher, write=write).run()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        config = load_config(args.config).replace(
            address=args.address,
            output_dir=args.output_dir,
        )
        if args.no_discovery:
            config = config.replace(discovery_enabled=False)
    except ConfigError as err:
        print(f"Configuration error: {err}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        _LOGGER.debug("Interrupted")
        return 130
