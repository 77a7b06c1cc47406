"""
Object Store Capability

Defines the bulk-delete capability the cleaner consumes and its two
implementations:

- S3ObjectStore issues DeleteObjects requests through a boto3 S3 client.
  Throttling, 5xx responses and connection resets are retried inside
  botocore (standard retry mode); anything that still fails raises
  StoreError.
- DryRunObjectStore deletes nothing and reports every key as deleted.

Per-key failures inside a successful call are returned as KeyDeleteError
records, never raised.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import boto3
import structlog
from botocore.config import Config as BotocoreConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import StoreError


# Hard limit of the S3 DeleteObjects API
S3_MAX_DELETE_KEYS = 1000


@dataclass(frozen=True)
class KeyDeleteError:
    """A single key the store failed to delete."""
    key: str
    code: str
    message: str


@dataclass
class DeleteResult:
    """Outcome of one delete_objects call."""
    deleted: List[str] = field(default_factory=list)
    errors: List[KeyDeleteError] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def sample_error(self) -> Optional[KeyDeleteError]:
        return self.errors[0] if self.errors else None


class ObjectStore(ABC):
    """Accepts a batch of keys and reports per-key success or failure."""

    @abstractmethod
    def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteResult:
        """
        Delete a batch of keys from a bucket.

        Args:
            bucket: Bucket name
            keys: Keys to delete

        Returns:
            DeleteResult listing deleted keys and per-key errors

        Raises:
            StoreError: If the call failed as a whole
        """
        pass


class S3ObjectStore(ObjectStore):
    """
    Bulk delete against Amazon S3 or an S3-compatible endpoint.

    The underlying boto3 client is thread-safe and shared by all workers;
    its connection pool is sized to the worker count.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_attempts: int = 5,
        max_pool_connections: int = 32,
        client: Optional[Any] = None
    ):
        """
        Initialize the S3 object store.

        Args:
            region: AWS region, or None for the shared config default
            endpoint_url: Optional S3-compatible endpoint
            max_attempts: Total attempts per request in botocore's standard retry mode
            max_pool_connections: HTTP connection pool size
            client: Pre-built S3 client, mainly for tests

        Raises:
            StoreError: If the session or client cannot be created
        """
        self.logger = structlog.get_logger(store_type="S3ObjectStore")

        if client is not None:
            self.s3_client = client
            return

        try:
            session = boto3.session.Session(region_name=region)
            self.s3_client = session.client(
                's3',
                endpoint_url=endpoint_url,
                config=BotocoreConfig(
                    retries={'mode': 'standard', 'max_attempts': max_attempts},
                    max_pool_connections=max_pool_connections
                )
            )
        except (BotoCoreError, ValueError) as e:
            self.logger.error("Failed to initialize S3 client", error=str(e))
            raise StoreError(f"Couldn't create AWS session: {e}") from e

        self.logger.info(
            "S3 client initialized",
            region=self.s3_client.meta.region_name,
            endpoint_url=endpoint_url,
            max_attempts=max_attempts,
            max_pool_connections=max_pool_connections
        )

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteResult:
        if not keys:
            raise ValueError("At least one key is required")

        if len(keys) > S3_MAX_DELETE_KEYS:
            raise ValueError(
                f"DeleteObjects accepts at most {S3_MAX_DELETE_KEYS} keys, got {len(keys)}"
            )

        try:
            response = self.s3_client.delete_objects(
                Bucket=bucket,
                Delete={
                    'Objects': [{'Key': key} for key in keys],
                    'Quiet': False
                }
            )
        except ClientError as e:
            error = e.response.get('Error', {})
            raise StoreError(
                error.get('Message') or str(e),
                code=error.get('Code'),
                bucket=bucket
            ) from e
        except BotoCoreError as e:
            raise StoreError(str(e), code=type(e).__name__, bucket=bucket) from e

        return self._parse_response(response)

    @staticmethod
    def _parse_response(response: Dict[str, Any]) -> DeleteResult:
        deleted = [item['Key'] for item in response.get('Deleted', [])]
        errors = [
            KeyDeleteError(
                key=item.get('Key', ''),
                code=item.get('Code', ''),
                message=item.get('Message', '')
            )
            for item in response.get('Errors', [])
        ]
        return DeleteResult(deleted=deleted, errors=errors)


class DryRunObjectStore(ObjectStore):
    """Reports every key as deleted without contacting any store."""

    def __init__(self):
        self.logger = structlog.get_logger(store_type="DryRunObjectStore")

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> DeleteResult:
        self.logger.debug(
            "Dry run: skipping delete",
            bucket=bucket,
            key_count=len(keys),
            first_key=keys[0] if keys else None
        )
        return DeleteResult(deleted=list(keys))
