"""
Core infrastructure: settings, logging, persistence and time.
"""
from .clock import GameClock
from .config import Settings, settings
from .exceptions import ConfigurationRejected, PersistenceError, PlaylensError
from .storage import InMemoryStore, JsonFileStore, KeyValueStore, merge_into

__all__ = [
    "GameClock",
    "Settings",
    "settings",
    "ConfigurationRejected",
    "PersistenceError",
    "PlaylensError",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "merge_into",
]
