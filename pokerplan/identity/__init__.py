"""
Identity Module - Who this device is.

Produces the stable participant id and display name every other
component keys its writes by. Persistence is local to the device.
"""

from .provider import IdentityProvider, PARTICIPANT_ID_KEY, DISPLAY_NAME_KEY
from .storage import KeyValueStore, MemoryKeyValueStore, JsonFileKeyValueStore

__all__ = [
    "IdentityProvider",
    "PARTICIPANT_ID_KEY",
    "DISPLAY_NAME_KEY",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
]
