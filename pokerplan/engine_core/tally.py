"""
Tally - Derived views computed from a session snapshot.

Only non-admin participants who have voted are counted. The average
is taken over numeric cards only: "coffee" shows up in the counts
but neither in the sum nor in the divisor.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from .cards import CARD_SET, card_value, is_numeric
from .state import Participant, Session


NO_VOTE = "❌"
HIDDEN_VOTE = "✅"
ADMIN_BADGE = "👑"


@dataclass(frozen=True)
class Tally:
    """Per-card counts and numeric average for one round."""
    counts: dict[str, int] = field(default_factory=dict)
    average: float = 0.0
    total_votes: int = 0
    numeric_votes: int = 0

    def count(self, card: str) -> int:
        return self.counts.get(card, 0)

    def histogram(self) -> list[tuple[str, int]]:
        """(card, count) pairs in card-set order."""
        return [(card, self.counts.get(card, 0)) for card in CARD_SET]


def counted_votes(session: Session) -> list[str]:
    """Votes that take part in the tally."""
    return [
        p.vote for p in session.participants.values()
        if p.vote is not None and not p.is_admin
    ]


def compute_tally(session: Session) -> Tally:
    """Count votes per card and average the numeric ones."""
    votes = counted_votes(session)

    counts = {card: 0 for card in CARD_SET}
    for vote in votes:
        counts[vote] = counts.get(vote, 0) + 1

    numeric = [card_value(v) for v in votes if is_numeric(v)]
    average = sum(numeric) / len(numeric) if numeric else 0.0

    return Tally(
        counts=counts,
        average=average,
        total_votes=len(votes),
        numeric_votes=len(numeric),
    )


@dataclass(frozen=True)
class ParticipantView:
    """How one participant is shown to everyone else."""
    participant_id: str
    name: str
    is_admin: bool
    has_voted: bool
    display_vote: str

    @property
    def label(self) -> str:
        return f"{self.name} {ADMIN_BADGE}" if self.is_admin else self.name


def display_vote(participant: Participant, revealed: bool) -> str:
    """Vote as shown to other participants: the value only once revealed."""
    if participant.vote is None:
        return NO_VOTE
    if revealed:
        return participant.vote
    return HIDDEN_VOTE


def participant_views(session: Session) -> list[ParticipantView]:
    return [
        ParticipantView(
            participant_id=pid,
            name=p.name,
            is_admin=p.is_admin,
            has_voted=p.has_voted,
            display_vote=display_vote(p, session.revealed),
        )
        for pid, p in session.participants.items()
    ]
