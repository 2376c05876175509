"""Interactive command loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .dispatcher import CommandDispatcher, Writer
from .errors import PanonoClientError

_LOGGER = logging.getLogger(__name__)

LineReader = Callable[[str], Awaitable[str]]

_EXIT_COMMANDS = frozenset({"quit", "exit"})


async def read_stdin(prompt: str) -> str:
    """Read one line from stdin without blocking the event loop.

    Raises:
        EOFError: When stdin is closed.
    """
    return await asyncio.to_thread(input, prompt)


class PanonoRepl:
    """Read commands, dispatch them and keep going whatever the outcome."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        *,
        read_line: LineReader = read_stdin,
        write: Writer = print,
        prompt: str = "panono> ",
    ) -> None:
        self._dispatcher = dispatcher
        self._read_line = read_line
        self._write = write
        self._prompt = prompt

    def print_help(self) -> None:
        commands = self._dispatcher.commands.values()
        width = max(len(c.usage) for c in commands)
        for command in commands:
            self._write(f"  {command.usage:<{width}}  {command.help}")
        self._write(f"  {'help':<{width}}  Show this help")
        self._write(f"  {'quit':<{width}}  Leave the console")

    async def run(self) -> None:
        """Run until EOF or an exit command."""
        self._write("Type 'help' for a list of commands")
        while True:
            try:
                line = (await self._read_line(self._prompt)).strip()
            except EOFError:
                break
            if not line:
                continue
            if line in _EXIT_COMMANDS:
                break
            if line == "help":
                self.print_help()
                continue

            try:
                await self._dispatcher.dispatch(line)
            except (PanonoClientError, OSError) as err:
                _LOGGER.debug("Command %r failed", line, exc_info=True)
                self._write(f"Error: {err}")
