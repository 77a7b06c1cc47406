"""
Unit Tests for the Deletion Module

Exercises the S3 object store against a stubbed boto3 client and the
batching rules of the BatchDeleter: flush counts, trailing partial batches,
per-key error sampling and whole-call failures.
"""

import math
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError
from botocore.stub import Stubber

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from metatile_cleaner.deletion.batch_deleter import BatchDeleter, DeleteBatch
from metatile_cleaner.deletion.object_store import (
    DeleteResult,
    DryRunObjectStore,
    KeyDeleteError,
    ObjectStore,
    S3ObjectStore,
)
from metatile_cleaner.exceptions import StoreError
from metatile_cleaner.monitoring.metrics import MetricsCollector, RunStatistics


def _delete_all(bucket, keys):
    return DeleteResult(deleted=list(keys))


class TestS3ObjectStore(unittest.TestCase):
    """Test suite for the boto3-backed store."""

    def setUp(self):
        self.client = boto3.client(
            's3',
            region_name='us-east-1',
            aws_access_key_id='testing',
            aws_secret_access_key='testing'
        )
        self.stubber = Stubber(self.client)
        self.store = S3ObjectStore(client=self.client)

    def test_delete_objects_success(self):
        keys = ['abcde/build/0/0/0.zip', 'fghij/build/1/0/0.zip']
        self.stubber.add_response(
            'delete_objects',
            {'Deleted': [{'Key': key} for key in keys]}
        )

        with self.stubber:
            result = self.store.delete_objects('tiles', keys)

        self.assertEqual(result.deleted, keys)
        self.assertEqual(result.error_count, 0)
        self.assertIsNone(result.sample_error)
        self.stubber.assert_no_pending_responses()

    def test_delete_objects_per_key_errors(self):
        self.stubber.add_response(
            'delete_objects',
            {
                'Deleted': [{'Key': 'a'}],
                'Errors': [{'Key': 'b', 'Code': 'AccessDenied', 'Message': 'Access Denied'}]
            }
        )

        with self.stubber:
            result = self.store.delete_objects('tiles', ['a', 'b'])

        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(result.error_count, 1)
        self.assertEqual(
            result.sample_error,
            KeyDeleteError(key='b', code='AccessDenied', message='Access Denied')
        )

    def test_delete_objects_client_error_raises_store_error(self):
        self.stubber.add_client_error(
            'delete_objects',
            service_error_code='AccessDenied',
            service_message='Access Denied',
            http_status_code=403
        )

        with self.stubber:
            with self.assertRaises(StoreError) as context:
                self.store.delete_objects('tiles', ['a'])

        self.assertEqual(context.exception.code, 'AccessDenied')
        self.assertEqual(context.exception.bucket, 'tiles')
        self.assertIn('Access Denied', str(context.exception))

    def test_delete_objects_connection_error_raises_store_error(self):
        client = Mock()
        client.delete_objects.side_effect = EndpointConnectionError(
            endpoint_url='https://s3.amazonaws.com'
        )
        store = S3ObjectStore(client=client)

        with self.assertRaises(StoreError) as context:
            store.delete_objects('tiles', ['a'])

        self.assertEqual(context.exception.code, 'EndpointConnectionError')

    def test_rejects_empty_and_oversized_batches(self):
        with self.assertRaises(ValueError):
            self.store.delete_objects('tiles', [])

        with self.assertRaises(ValueError):
            self.store.delete_objects('tiles', [str(i) for i in range(1001)])

    @patch('metatile_cleaner.deletion.object_store.boto3')
    def test_client_configuration(self, mock_boto3):
        S3ObjectStore(region='eu-west-1', max_attempts=7, max_pool_connections=64)

        mock_boto3.session.Session.assert_called_once_with(region_name='eu-west-1')
        session = mock_boto3.session.Session.return_value
        args, kwargs = session.client.call_args

        self.assertEqual(args, ('s3',))
        self.assertEqual(kwargs['config'].retries, {'mode': 'standard', 'max_attempts': 7})
        self.assertEqual(kwargs['config'].max_pool_connections, 64)


class TestDryRunObjectStore(unittest.TestCase):

    def test_reports_everything_deleted(self):
        store = DryRunObjectStore()
        result = store.delete_objects('tiles', ['a', 'b', 'c'])

        self.assertEqual(result.deleted, ['a', 'b', 'c'])
        self.assertEqual(result.errors, [])


class TestBatchDeleter(unittest.TestCase):
    """Test suite for batch accumulation and flushing."""

    def setUp(self):
        self.store = Mock(spec=ObjectStore)
        self.store.delete_objects.side_effect = _delete_all
        self.statistics = RunStatistics()

    def _feed(self, deleter, count):
        batch = DeleteBatch(bucket='tiles')
        for i in range(count):
            deleter.accumulate(batch, f"key-{i}")
        deleter.flush(batch)
        return batch

    def test_flush_count_matches_ceiling(self):
        """N keys with batch size K produce ceil(N / K) calls summing to N."""
        for count, size in [(1, 500), (5, 500), (500, 500), (501, 500), (1234, 100), (7, 3)]:
            self.store.delete_objects.reset_mock()
            deleter = BatchDeleter(self.store, RunStatistics(), max_batch_size=size)

            self._feed(deleter, count)

            calls = self.store.delete_objects.call_args_list
            sizes = [len(call.args[1]) for call in calls]

            self.assertEqual(len(calls), math.ceil(count / size))
            self.assertEqual(sum(sizes), count)
            self.assertTrue(all(s == size for s in sizes[:-1]))
            self.assertTrue(0 < sizes[-1] <= size)

    def test_accumulate_flushes_when_full(self):
        deleter = BatchDeleter(self.store, self.statistics, max_batch_size=3)
        batch = DeleteBatch(bucket='tiles')

        self.assertIsNone(deleter.accumulate(batch, 'a'))
        self.assertIsNone(deleter.accumulate(batch, 'b'))
        result = deleter.accumulate(batch, 'c')

        self.assertEqual(result.deleted, ['a', 'b', 'c'])
        self.assertEqual(len(batch), 0)
        self.store.delete_objects.assert_called_once_with('tiles', ['a', 'b', 'c'])

    def test_flush_empty_batch_is_noop(self):
        deleter = BatchDeleter(self.store, self.statistics)

        self.assertIsNone(deleter.flush(DeleteBatch(bucket='tiles')))
        self.store.delete_objects.assert_not_called()

    def test_statistics_updated(self):
        deleter = BatchDeleter(self.store, self.statistics, max_batch_size=2)
        self._feed(deleter, 5)

        snapshot = self.statistics.snapshot()
        self.assertEqual(snapshot.deleted, 5)
        self.assertEqual(snapshot.errors, 0)
        self.assertEqual(snapshot.batches, 3)

    def test_batch_cleared_when_store_fails(self):
        self.store.delete_objects.side_effect = StoreError('Access Denied', code='AccessDenied')
        deleter = BatchDeleter(self.store, self.statistics, max_batch_size=10)
        batch = DeleteBatch(bucket='tiles', keys=['a', 'b'])

        with self.assertRaises(StoreError):
            deleter.flush(batch)

        self.assertEqual(len(batch), 0)
        self.assertEqual(self.statistics.snapshot().batches, 0)

    def test_sample_error_logged_above_threshold(self):
        def partial_failure(bucket, keys):
            errors = [KeyDeleteError(key=k, code='AccessDenied', message='denied') for k in keys[:11]]
            return DeleteResult(deleted=list(keys[11:]), errors=errors)

        self.store.delete_objects.side_effect = partial_failure
        deleter = BatchDeleter(self.store, self.statistics, max_batch_size=20)
        deleter.logger = Mock()

        self._feed(deleter, 20)

        deleter.logger.warning.assert_called_once()
        args, kwargs = deleter.logger.warning.call_args
        self.assertEqual(args[0], 'Sample error')
        self.assertEqual(kwargs['key'], 'key-0')
        self.assertEqual(kwargs['batch_errors'], 11)

        snapshot = self.statistics.snapshot()
        self.assertEqual(snapshot.deleted, 9)
        self.assertEqual(snapshot.errors, 11)

    def test_no_sample_error_at_threshold(self):
        def partial_failure(bucket, keys):
            errors = [KeyDeleteError(key=k, code='InternalError', message='oops') for k in keys[:10]]
            return DeleteResult(deleted=list(keys[10:]), errors=errors)

        self.store.delete_objects.side_effect = partial_failure
        deleter = BatchDeleter(self.store, self.statistics, max_batch_size=20)
        deleter.logger = Mock()

        self._feed(deleter, 20)

        deleter.logger.warning.assert_not_called()
        self.assertEqual(self.statistics.snapshot().errors, 10)

    def test_metrics_recorded(self):
        metrics = MetricsCollector()
        deleter = BatchDeleter(self.store, self.statistics, max_batch_size=4, metrics=metrics)

        self._feed(deleter, 10)

        self.assertEqual(metrics.get_sample_value('metatile_objects_deleted_total'), 10.0)
        self.assertEqual(
            metrics.get_sample_value('metatile_delete_batches_total', {'status': 'ok'}),
            3.0
        )

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchDeleter(self.store, self.statistics, max_batch_size=0)
