"""Tests for skip-vote consensus."""

from __future__ import annotations

import pytest

from showrunner.core.vote_consensus import VoteConsensus


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _votes(clock: FakeClock | None = None) -> VoteConsensus:
    return VoteConsensus(clock=clock or FakeClock())


class TestQuorum:
    @pytest.mark.parametrize(
        "active,needed",
        [(0, 0), (1, 1), (2, 2), (3, 2), (4, 3), (5, 3), (10, 6), (11, 7)],
    )
    def test_needed_is_ceil_sixty_percent(self, active, needed):
        v = _votes()
        for i in range(active):
            v.record_activity(f"user{i}")
        assert v.get_needed_votes() == needed

    def test_lone_voter_triggers(self):
        v = _votes()
        result = v.record_skip_vote("solo")
        assert result.voted
        assert result.votes == 1
        assert result.needed == 1
        assert result.triggered

    def test_five_active_needs_three(self):
        v = _votes()
        for name in ("a", "b", "c", "d", "e"):
            v.record_activity(name)
        assert not v.record_skip_vote("a").triggered
        assert not v.record_skip_vote("b").triggered
        third = v.record_skip_vote("c")
        assert third.triggered
        assert (third.votes, third.needed) == (3, 3)

    def test_ten_active_six_votes(self):
        v = _votes()
        for i in range(10):
            v.record_activity(f"user{i}")
        results = [v.record_skip_vote(f"user{i}") for i in range(6)]
        assert [r.triggered for r in results] == [False] * 5 + [True]
        assert results[-1].needed == 6


class TestDuplicates:
    def test_repeat_vote_is_ignored(self):
        v = _votes()
        for name in ("a", "b", "c"):
            v.record_activity(name)
        first = v.record_skip_vote("a")
        second = v.record_skip_vote("a")
        assert first.voted
        assert not second.voted
        assert not second.triggered
        assert second.votes == 1
        assert v.get_vote_count() == 1

    def test_reset_clears_votes_but_keeps_activity(self):
        v = _votes()
        v.record_activity("a")
        v.record_activity("b")
        v.record_skip_vote("a")
        v.reset()
        assert v.get_vote_count() == 0
        assert v.active_user_count() == 2
        assert v.record_skip_vote("a").voted


class TestDecay:
    def test_idle_identities_age_out(self):
        clock = FakeClock()
        v = _votes(clock)
        for name in ("a", "b", "c", "d", "e"):
            v.record_activity(name)
        clock.now += 301
        v.record_activity("f")
        assert v.active_user_count() == 1
        assert v.record_skip_vote("f").triggered

    def test_entry_exactly_at_window_edge_is_kept(self):
        clock = FakeClock()
        v = _votes(clock)
        v.record_activity("a")
        clock.now += 300
        assert v.active_user_count() == 1

    def test_needed_votes_is_pure(self):
        clock = FakeClock()
        v = _votes(clock)
        v.record_activity("a")
        v.record_activity("b")
        clock.now += 1000
        assert v.get_needed_votes() == 0
        # The read above must not have evicted anything.
        assert v.snapshot()["tracked_identities"] == 2
        assert v.active_user_count() == 0
        assert v.snapshot()["tracked_identities"] == 0

    def test_vote_refreshes_activity(self):
        clock = FakeClock()
        v = _votes(clock)
        v.record_skip_vote("a")
        clock.now += 200
        v.record_skip_vote("a")
        clock.now += 200
        assert v.active_user_count() == 1


def test_invalid_threshold_rejected():
    with pytest.raises(ValueError):
        VoteConsensus(threshold=0.0)
