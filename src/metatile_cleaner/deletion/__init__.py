"""
Deletion Module

Bulk-delete capability of the object store and the per-worker batching
client built on top of it.
"""

from .object_store import (
    DeleteResult,
    DryRunObjectStore,
    KeyDeleteError,
    ObjectStore,
    S3ObjectStore,
)
from .batch_deleter import BatchDeleter, DeleteBatch

__all__ = [
    "DeleteResult",
    "DryRunObjectStore",
    "KeyDeleteError",
    "ObjectStore",
    "S3ObjectStore",
    "BatchDeleter",
    "DeleteBatch",
]
