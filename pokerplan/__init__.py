"""
pokerplan - Real-time planning poker sessions

Participants join a shared session, each casts one card, the admin
reveals all votes at once, and the session resets for the next round.
The package provides:
- The session data model and state machine
- A client reconciler that follows the shared session document
- A reference session store and an HTTP service hosting it
- A command-line client
"""

__version__ = "0.1.0"
