"""Skip-vote consensus over a decaying chat population.

Quorum is recomputed from the *current* active population on every vote, so
it can shrink as idle identities age out of the activity window.  With a
single active identity ``needed`` is 1 and that identity's vote triggers.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from showrunner.core.state import VoteResult

log = logging.getLogger(__name__)

ACTIVITY_WINDOW_S = 5 * 60.0
VOTE_THRESHOLD = 0.6


class VoteConsensus:
    """Owns the activity record and the skip-vote set for one session."""

    def __init__(
        self,
        *,
        activity_window_s: float = ACTIVITY_WINDOW_S,
        threshold: float = VOTE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        self._window_s = activity_window_s
        self._threshold = threshold
        self._clock = clock

        # identity → last activity (clock seconds)
        self._active: dict[str, float] = {}
        self._skip_votes: set[str] = set()

    @property
    def threshold(self) -> float:
        return self._threshold

    def record_activity(self, identity: str) -> None:
        self._active[identity] = self._clock()

    def record_skip_vote(self, identity: str) -> VoteResult:
        self.record_activity(identity)

        if identity in self._skip_votes:
            return VoteResult(
                voted=False,
                votes=len(self._skip_votes),
                needed=self._needed_for(self.active_user_count()),
                threshold=self._threshold,
                triggered=False,
            )

        self._skip_votes.add(identity)
        votes = len(self._skip_votes)
        needed = self._needed_for(self.active_user_count())
        return VoteResult(
            voted=True,
            votes=votes,
            needed=needed,
            threshold=self._threshold,
            triggered=votes >= needed,
        )

    def active_user_count(self) -> int:
        """Count identities seen inside the window, evicting expired ones."""
        cutoff = self._clock() - self._window_s
        expired = [name for name, ts in self._active.items() if ts < cutoff]
        for name in expired:
            del self._active[name]
        if expired:
            log.debug("evicted %d idle identities", len(expired))
        return len(self._active)

    # ── HUD read surface (no side effects) ───────────────────────

    def get_vote_count(self) -> int:
        return len(self._skip_votes)

    def get_needed_votes(self) -> int:
        cutoff = self._clock() - self._window_s
        active = sum(1 for ts in self._active.values() if ts >= cutoff)
        return self._needed_for(active)

    def reset(self) -> None:
        """Start a new round.  Activity is kept."""
        self._skip_votes.clear()

    def snapshot(self) -> dict:
        return {
            "votes": self.get_vote_count(),
            "needed": self.get_needed_votes(),
            "threshold": self._threshold,
            "tracked_identities": len(self._active),
        }

    def _needed_for(self, active: int) -> int:
        # round() first: 0.6 is inexact in binary and ceil would overshoot
        return math.ceil(round(active * self._threshold, 9))
