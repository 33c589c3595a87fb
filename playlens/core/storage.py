"""
Local key-value persistence

The pipeline treats storage as an opaque key-value store: ``get(key)``
returns the stored value or ``None``, ``set(key, value)`` replaces it.
Values are JSON-compatible dicts/lists/scalars.
"""
import copy
import json
import logging
import math
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from playlens.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque local persistence used for load-merge and checkpoint saves"""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class InMemoryStore:
    """Dict-backed store; values are copied in and out"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self):
        return list(self._data.keys())


class JsonFileStore:
    """
    Single JSON document on disk, loaded lazily and written through on
    every ``set``.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Unreadable store at {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise PersistenceError(f"Store at {self.path} is not a JSON object")

        self._data = raw
        return self._data

    def get(self, key: str) -> Optional[Any]:
        data = self._load()
        return copy.deepcopy(data.get(key))

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = copy.deepcopy(value)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        except (OSError, TypeError) as e:
            raise PersistenceError(f"Failed to write store at {self.path}: {e}", key=key) from e


def _same_kind(default: Any, value: Any) -> bool:
    """Whether a loaded scalar may stand in for a default of this type"""
    if default is None:
        return True
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        return is_number(value)
    return isinstance(value, type(default))


def is_number(value: Any) -> bool:
    """Finite int or float, excluding bool"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def merge_into(defaults: Dict[str, Any], loaded: Any) -> Dict[str, Any]:
    """
    Per-field merge of a loaded record over in-memory defaults.

    Present keys overwrite, absent keys keep their defaults. Nested dicts
    merge recursively. A loaded value only replaces a default of the same
    kind (numbers are interchangeable between int and float); mismatches
    are dropped with a warning and the default stays. Keys the defaults do
    not know are kept so newer records survive a round trip through older
    code.
    """
    if not isinstance(loaded, dict):
        return defaults

    for key, value in loaded.items():
        if key not in defaults:
            defaults[key] = value
            continue

        current = defaults[key]
        if isinstance(current, dict):
            if isinstance(value, dict):
                merge_into(current, value)
            else:
                logger.warning(f"Dropping persisted '{key}': expected mapping, got {type(value).__name__}")
        elif _same_kind(current, value):
            defaults[key] = value
        else:
            logger.warning(
                f"Dropping persisted '{key}': expected {type(current).__name__}, got {type(value).__name__}"
            )

    return defaults


def filter_entries(container: Any, accept: Callable[[Any], bool], label: str) -> Any:
    """
    Drop entries of a persisted list or mapping that fail ``accept``.

    Mappings are filtered by value. Anything else is returned untouched.
    """
    if isinstance(container, dict):
        kept = {k: v for k, v in container.items() if accept(v)}
    elif isinstance(container, list):
        kept = [item for item in container if accept(item)]
    else:
        return container

    dropped = len(container) - len(kept)
    if dropped:
        logger.warning(f"Dropped {dropped} malformed entries from persisted '{label}'")
    return kept

    for key, value in loaded.items():
        current = defaults.get(key)
        if isinstance(current, dict):
            if isinstance(value, dict):
                merge_into(current, value)
            else:
                logger.debug(f"Ignoring non-mapping value for '{key}' during merge")
        else:
            defaults[key] = value

    return defaults


def safe_load(store: Optional[KeyValueStore], key: str) -> Optional[Any]:
    """Read a key, degrading to ``None`` on persistence failure"""
    if store is None:
        return None
    try:
        return store.get(key)
    except PersistenceError as e:
        logger.warning(f"Failed to load '{key}', using defaults: {e}")
        return None


def safe_save(store: Optional[KeyValueStore], key: str, value: Any) -> bool:
    """Write a key, logging instead of raising on persistence failure"""
    if store is None:
        return False
    try:
        store.set(key, value)
        return True
    except PersistenceError as e:
        logger.error(f"Failed to save '{key}': {e}")
        return False
