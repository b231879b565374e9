"""Local chat source: ``name: message`` lines on stdin become chat lines."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable

from showrunner.core.command_router import resolve_identity

log = logging.getLogger(__name__)

CONSOLE_IDENTITY = "console"

ChatSink = Callable[[str, str], None]


def parse_console_line(line: str, default_identity: str = CONSOLE_IDENTITY) -> tuple[str, str] | None:
    """``alice: !skip`` → ``("alice", "!skip")``; lines without a name use the default."""
    line = line.strip()
    if not line:
        return None
    name, sep, text = line.partition(":")
    if sep and name.strip() and " " not in name.strip() and text.strip():
        return resolve_identity(name, None, default_identity), text.strip()
    return default_identity, line


async def run_console_chat(
    on_chat: ChatSink,
    reader: asyncio.StreamReader | None = None,
    default_identity: str = CONSOLE_IDENTITY,
) -> None:
    """Forward stdin lines to *on_chat* until EOF."""
    if reader is None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
    log.info("console chat ready (type 'name: message')")
    while True:
        raw = await reader.readline()
        if not raw:
            break
        parsed = parse_console_line(raw.decode(errors="replace"), default_identity)
        if parsed is not None:
            on_chat(*parsed)
    log.info("console chat closed")
