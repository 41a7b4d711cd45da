"""
Tests for tally and per-participant display.
"""

import itertools

import pytest

from ..engine_core.state import Participant
from ..engine_core.tally import (
    HIDDEN_VOTE,
    NO_VOTE,
    compute_tally,
    display_vote,
    participant_views,
)
from .conftest import make_session


class TestComputeTally:
    """Tests for compute_tally."""

    def test_scenario_average(self, voting_session):
        """Admin without a vote, voters on 3 and 8."""
        tally = compute_tally(voting_session)

        assert tally.average == pytest.approx(5.5)
        assert tally.count("3") == 1
        assert tally.count("8") == 1
        assert tally.total_votes == 2

    def test_admin_vote_excluded(self):
        session = make_session(
            Participant("a", "A", vote="13", is_admin=True),
            Participant("b", "B", vote="5"),
            Participant("c", "C", vote="8"),
        )
        tally = compute_tally(session)

        assert tally.count("13") == 0
        assert tally.total_votes == 2
        assert tally.average == pytest.approx(6.5)

    def test_coffee_counted_but_not_averaged(self):
        session = make_session(
            Participant("b", "B", vote="5"),
            Participant("c", "C", vote="coffee"),
        )
        tally = compute_tally(session)

        assert tally.count("coffee") == 1
        assert tally.numeric_votes == 1
        assert tally.average == pytest.approx(5.0)

    def test_only_coffee_averages_zero(self):
        session = make_session(Participant("b", "B", vote="coffee"))
        assert compute_tally(session).average == 0.0

    def test_no_votes(self):
        session = make_session(
            Participant("a", "A", is_admin=True),
            Participant("b", "B"),
        )
        tally = compute_tally(session)

        assert tally.average == 0.0
        assert tally.total_votes == 0
        assert all(count == 0 for _, count in tally.histogram())

    def test_every_card_present_in_counts(self, voting_session):
        cards = [card for card, _ in compute_tally(voting_session).histogram()]
        assert cards == ["1", "2", "3", "5", "8", "13", "coffee"]

    def test_independent_of_participant_order(self):
        people = [
            Participant("a", "A", vote="1"),
            Participant("b", "B", vote="13"),
            Participant("c", "C", vote="coffee"),
            Participant("d", "D", vote="5", is_admin=True),
        ]
        tallies = {
            (t.average, tuple(sorted(t.counts.items())))
            for t in (compute_tally(make_session(*order)) for order in itertools.permutations(people))
        }
        assert len(tallies) == 1

    def test_tally_ignores_revealed_flag(self, voting_session):
        revealed = make_session(*voting_session.participants.values(), revealed=True)
        assert compute_tally(revealed) == compute_tally(voting_session)


class TestDisplay:
    """Tests for what other participants see."""

    def test_hidden_before_reveal(self):
        assert display_vote(Participant("b", "B", vote="5"), revealed=False) == HIDDEN_VOTE

    def test_shown_after_reveal(self):
        assert display_vote(Participant("b", "B", vote="5"), revealed=True) == "5"

    @pytest.mark.parametrize("revealed", [False, True])
    def test_no_vote_marker(self, revealed):
        assert display_vote(Participant("b", "B"), revealed=revealed) == NO_VOTE

    def test_participant_views(self, voting_session):
        views = {v.participant_id: v for v in participant_views(voting_session)}

        assert views["alice"].label == "Alice 👑"
        assert views["alice"].display_vote == NO_VOTE
        assert views["bob"].label == "Bob"
        assert views["bob"].has_voted
        assert views["bob"].display_vote == HIDDEN_VOTE
