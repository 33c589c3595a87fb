"""
Exception hierarchy for the analytics pipeline.

None of these cross a public entry point of the pipeline: they are raised by
collaborators (stores, the configuration surface) and handled by the
component that called them.
"""
from typing import Any, Dict, List, Optional


class PlaylensError(Exception):
    """Base class for all pipeline errors"""


class PersistenceError(PlaylensError):
    """The key-value store could not read or write a record"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ConfigurationRejected(PlaylensError):
    """A configuration batch failed validation and was not applied"""

    def __init__(self, reason: str, errors: List[str], parameters: Optional[Dict[str, Any]] = None):
        super().__init__(f"Configuration batch rejected ({reason}): {', '.join(errors)}")
        self.reason = reason
        self.errors = errors
        self.parameters = parameters or {}
