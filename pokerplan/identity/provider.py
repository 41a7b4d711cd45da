"""
Identity Provider - Stable per-device participant identity.

A device gets one participant id for its whole lifetime, generated
on first use and persisted. The display name is stored alongside
it and is independent of any session.
"""

from __future__ import annotations
import uuid

from ..engine_core.state import MAX_NAME_LENGTH
from .storage import KeyValueStore, MemoryKeyValueStore

PARTICIPANT_ID_KEY = "participantId"
DISPLAY_NAME_KEY = "displayName"


class IdentityProvider:
    """
    Hands out the local participant id and display name.

    Usage:
        identity = IdentityProvider(JsonFileKeyValueStore(path))
        pid = identity.get_or_create_participant_id()
        identity.set_display_name("Alice")
    """

    def __init__(self, storage: KeyValueStore | None = None):
        self.storage = storage or MemoryKeyValueStore()

    def get_or_create_participant_id(self) -> str:
        """Return the persisted id, generating and persisting one on first use."""
        participant_id = self.storage.get(PARTICIPANT_ID_KEY)
        if not participant_id:
            participant_id = str(uuid.uuid4())
            self.storage.set(PARTICIPANT_ID_KEY, participant_id)
        return participant_id

    def get_display_name(self) -> str | None:
        name = self.storage.get(DISPLAY_NAME_KEY)
        return name or None

    def set_display_name(self, name: str | None) -> None:
        """Persist a display name. A blank name clears it."""
        text = (name or "").strip()[:MAX_NAME_LENGTH]
        if text:
            self.storage.set(DISPLAY_NAME_KEY, text)
        else:
            self.storage.delete(DISPLAY_NAME_KEY)
