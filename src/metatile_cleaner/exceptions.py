"""
Error Taxonomy

Exceptions raised by the metatile cleaner. Configuration problems are
reported before any work starts, whole-call store failures abort the run,
and per-key deletion failures are plain data carried in a DeleteResult.
"""

from typing import Any, Dict, Optional


class MetatileCleanerError(Exception):
    """Base class for all metatile cleaner errors."""


class ConfigurationError(MetatileCleanerError):
    """A required parameter is missing or a value is out of range."""


class StoreError(MetatileCleanerError):
    """
    A delete_objects call failed as a whole.

    Raised by object stores for authorization, malformed request or network
    faults that survived the client's own retry handling.
    """

    def __init__(self, message: str, code: Optional[str] = None, bucket: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.bucket = bucket

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {super().__str__()}"
        return super().__str__()


class FatalDeleteError(MetatileCleanerError):
    """
    Raised by the pipeline when a worker hit a StoreError.

    Attributes:
        store_error: The StoreError that aborted the run
        statistics: Counter snapshot taken when the run was aborted
    """

    def __init__(self, store_error: StoreError, statistics: Dict[str, Any]):
        super().__init__(f"Couldn't delete objects: {store_error}")
        self.store_error = store_error
        self.statistics = statistics
