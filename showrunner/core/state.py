"""Value types shared by the scheduler, router, vote logic and API.

None of these outlive the event that produced them except the snapshots,
which are rebuilt on every read.
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ── Chat ─────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class ChatLine:
    """One raw chat message as delivered by a chat source."""

    identity: str
    text: str


@dataclass(slots=True)
class ChatCommand:
    """A prefixed chat line split into command name and positional args."""

    identity: str
    command: str
    args: list[str] = field(default_factory=list)
    text: str = ""


# ── Scheduler ────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class FrameTick:
    """One scheduler iteration.  ``delta_ms`` is measured, never a fixed step."""

    seq: int
    delta_ms: float
    started_at: float


# ── Votes ────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class VoteResult:
    voted: bool
    votes: int
    needed: int
    threshold: float
    triggered: bool

    def to_dict(self) -> dict:
        return {
            "voted": self.voted,
            "votes": self.votes,
            "needed": self.needed,
            "threshold": self.threshold,
            "triggered": self.triggered,
        }
