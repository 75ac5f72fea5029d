"""Active session management and its local storage ports."""

from ragchat.session.lifecycle import (
    SESSION_DURATION,
    SESSION_STORAGE_KEY,
    SessionLifecycleManager,
)
from ragchat.session.storage import JsonFileStorage, MemoryStorage, Storage

__all__ = [
    "SESSION_DURATION",
    "SESSION_STORAGE_KEY",
    "JsonFileStorage",
    "MemoryStorage",
    "SessionLifecycleManager",
    "Storage",
]
