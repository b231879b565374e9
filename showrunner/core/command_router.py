"""Classifies chat lines and routes commands to votes or the active game.

Every command first marks its sender active.  ``skip`` goes to vote
consensus; a triggered vote asks the registry for a different program and
queues a swap.  Everything else is forwarded to the active game as-is.  All
lines, commands included, are also published on the ambient feed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from showrunner.core.ambient_feed import AmbientFeed
from showrunner.core.state import ChatCommand, ChatLine

if TYPE_CHECKING:
    from showrunner.core.frame_scheduler import FrameScheduler
    from showrunner.core.vote_consensus import VoteConsensus
    from showrunner.games.registry import GameRegistry

log = logging.getLogger(__name__)

COMMAND_PREFIX = "!"
SKIP_COMMAND = "skip"
ANONYMOUS = "anonymous"


def resolve_identity(
    display_name: str | None, login: str | None, fallback: str = ANONYMOUS
) -> str:
    """Display name, then login handle, then a fixed fallback."""
    for candidate in (display_name, login):
        if candidate and candidate.strip():
            return candidate.strip()
    return fallback


def parse_chat_line(
    identity: str, text: str, prefix: str = COMMAND_PREFIX
) -> ChatCommand | None:
    """Return a command for prefixed lines, ``None`` for ambient messages."""
    trimmed = text.strip()
    if not trimmed.startswith(prefix):
        return None
    parts = trimmed[len(prefix):].split()
    if not parts:
        return None
    return ChatCommand(
        identity=identity,
        command=parts[0].lower(),
        args=parts[1:],
        text=trimmed,
    )


class CommandRouter:
    def __init__(
        self,
        *,
        votes: VoteConsensus,
        scheduler: FrameScheduler,
        registry: GameRegistry,
        feed: AmbientFeed | None = None,
        prefix: str = COMMAND_PREFIX,
    ) -> None:
        self._votes = votes
        self._scheduler = scheduler
        self._registry = registry
        self._feed = feed
        self._prefix = prefix

    def on_chat_line(self, line: ChatLine) -> ChatCommand | None:
        return self.dispatch(line.identity, line.text)

    def dispatch(self, identity: str, text: str) -> ChatCommand | None:
        cmd = parse_chat_line(identity, text, self._prefix)
        if cmd is None:
            if text.strip():
                self._publish(identity, text.strip())
            return None

        self._votes.record_activity(identity)
        self._publish(identity, cmd.text)
        log.debug("%s: %s%s %s", identity, self._prefix, cmd.command, " ".join(cmd.args))

        if cmd.command == SKIP_COMMAND:
            self._handle_skip(identity)
        else:
            self._scheduler.forward_command(cmd)
        return cmd

    # ── Internal ─────────────────────────────────────────────────

    def _handle_skip(self, identity: str) -> None:
        result = self._votes.record_skip_vote(identity)
        if not result.voted:
            log.debug("%s already voted to skip (%d/%d)", identity, result.votes, result.needed)
            return
        log.info("skip vote from %s: %d/%d", identity, result.votes, result.needed)
        if result.triggered:
            self._swap_program()

    def _swap_program(self) -> None:
        current = self._scheduler.active_name
        spec = self._registry.pick_replacement(exclude=current)
        if spec is None:
            log.warning("skip vote passed but no other program is enabled")
        else:
            log.info("skip vote passed, replacing %s with %s", current, spec.name)
            try:
                game = spec.factory()
            except Exception:
                log.exception("could not create %s", spec.name)
            else:
                self._scheduler.swap(game, spec.display_name, name=spec.name)
        self._votes.reset()

    def _publish(self, identity: str, text: str) -> None:
        if self._feed is not None:
            self._feed.publish(identity, text)
