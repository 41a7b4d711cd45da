"""
Session Module - The client side of a shared session.

A client:
- Attaches to a session document and follows its snapshots
- Derives the view every participant renders
- Sends join/vote/reveal/reset as fire-and-forget partial updates

Client state is DISPOSABLE:
- Nothing about the session is kept locally beyond the last snapshot
- Every confirmation arrives through the subscription
- Detaching drops the subscription; issued writes still complete
"""

from .reconciler import (
    ClientReconciler,
    CommandRejected,
    ParticipantCapPolicy,
    ReconcilerState,
    SessionView,
    WriteFailure,
)
from .links import Entry, EntryMode, build_share_link, parse_entry

__all__ = [
    "ClientReconciler",
    "CommandRejected",
    "ParticipantCapPolicy",
    "ReconcilerState",
    "SessionView",
    "WriteFailure",
    "Entry",
    "EntryMode",
    "build_share_link",
    "parse_entry",
]
