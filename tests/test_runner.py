#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import os
import signal
import unittest
from unittest.mock import MagicMock

from bblperf.lib.errors import BenchmarkError, Cancelled, ParseError
from bblperf.lib.registry import StorageRegistry
from bblperf.lib.runner import (
    DEFAULT_EXCLUDE_SUFFIXES,
    BenchmarkMeta,
    BenchmarkResult,
    CancellationToken,
    benchmark,
    benchmark_and_store,
    get_files,
    handle_interrupt,
    measure_allocations,
    predict_n,
)
from bblperf.lib.storage import StorageClient
from pyfakefs import fake_filesystem_unittest


class MemoryClient(StorageClient):
    kind = 'memory'
    instances = []

    def __init__(self):
        super().__init__()
        self.dumps = []
        MemoryClient.instances.append(self)

    def _dump(self, tags, records):
        self.dumps.append((tags, list(records)))

    def _close(self):
        pass


class TestBenchmark(unittest.TestCase):

    def test_predict_n(self):
        """Iterations grow towards the goal, at most 100x per round"""
        self.assertEqual(240, predict_n(1000000000, 100, 500000000))
        self.assertEqual(100, predict_n(1000000000, 1, 1000))
        # always at least one more iteration
        self.assertEqual(6, predict_n(100, 5, 1000))
        # zero duration doesn't divide by zero
        self.assertEqual(100, predict_n(1000, 1, 0))

    def test_result_per_op(self):
        result = BenchmarkResult(n=3, duration_ns=10, alloced_bytes=7, allocs=4)
        self.assertEqual(3, result.ns_per_op)
        self.assertEqual(2, result.alloced_bytes_per_op)
        self.assertEqual(1, result.allocs_per_op)
        self.assertEqual(0, BenchmarkResult(n=0, duration_ns=10).ns_per_op)

    def test_benchmark_single_run(self):
        """With no time to spend, fn runs once plus the traced call"""
        fn = MagicMock()
        result = benchmark(fn, bench_time=0)
        self.assertEqual(1, result.n)
        self.assertEqual(2, fn.call_count)

    def test_benchmark_grows(self):
        fn = MagicMock()
        result = benchmark(fn, bench_time=0.01)
        self.assertGreater(result.n, 1)
        self.assertGreaterEqual(result.duration_ns, 10000000)

    def test_benchmark_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(Cancelled):
            benchmark(lambda: None, bench_time=10, token=token)

    def test_measure_allocations(self):
        alloced, _ = measure_allocations(lambda: [object() for _ in range(1000)])
        self.assertGreater(alloced, 0)


class TestCancellation(unittest.TestCase):

    def test_token(self):
        token = CancellationToken()
        self.assertFalse(token.cancelled)
        token.raise_if_cancelled()
        token.cancel()
        self.assertTrue(token.cancelled)
        with self.assertRaises(Cancelled):
            token.raise_if_cancelled()

    def test_handle_interrupt(self):
        """SIGINT cancels the token and the previous handler is restored"""
        previous = signal.getsignal(signal.SIGINT)
        with handle_interrupt(CancellationToken()) as token:
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
            self.assertTrue(token.cancelled)
        self.assertIs(previous, signal.getsignal(signal.SIGINT))


class TestBenchmarkAndStore(fake_filesystem_unittest.TestCase):

    def setUp(self):
        self.setUpPyfakefs()
        MemoryClient.instances = []
        self.registry = StorageRegistry()
        self.registry.register('memory', MemoryClient)
        self.client = MagicMock()
        self.connect = MagicMock(return_value=self.client)
        self.meta = BenchmarkMeta(
            address='localhost:9432',
            commit='abc',
            dirs=['/fixtures'],
            language='python',
            level='bblfshd',
            storage='memory',
            bench_time=0,
        )

    def test_get_files(self):
        """Only prefixed files without excluded suffixes are selected"""
        for name in ['bench_b.py', 'bench_a.py', 'bench_a.py.legacy',
                     'bench_a.py.uast', 'other.py']:
            self.fs.create_file(os.path.join('/fixtures', name))
        self.fs.create_file('/more/bench_c.py')
        self.assertListEqual(
            ['/fixtures/bench_a.py', '/fixtures/bench_b.py', '/more/bench_c.py'],
            get_files('bench_', DEFAULT_EXCLUDE_SUFFIXES, ['/fixtures', '/more']))

    def test_benchmark_and_store(self):
        """Each fixture is benchmarked and stored with the run's tags"""
        self.fs.create_file('/fixtures/bench_foo.py', contents='print(1)')
        self.fs.create_file('/fixtures/bench_bar.py', contents='print(2)')

        records = benchmark_and_store(CancellationToken(), self.meta, self.registry,
                                      connect=self.connect)

        self.connect.assert_called_once_with('localhost:9432')
        self.client.parse.assert_any_call('python', 'print(1)',
                                          filename='/fixtures/bench_foo.py')
        self.client.close.assert_called_once_with()
        self.assertEqual(['bar', 'foo'], [r.name for r in records])

        storage = MemoryClient.instances[0]
        self.assertTrue(storage.closed)
        tags, stored = storage.dumps[0]
        self.assertDictEqual(
            {'language': 'python', 'commit': 'abc', 'level': 'bblfshd'}, tags)
        self.assertEqual(records, stored)

    def test_no_files(self):
        with self.assertRaises(BenchmarkError) as e:
            benchmark_and_store(CancellationToken(), self.meta, self.registry,
                                connect=self.connect)
        self.assertIn('no files detected', str(e.exception))
        self.client.close.assert_called_once_with()
        self.assertEqual([], MemoryClient.instances)

    def test_parse_error(self):
        """A failed parse aborts the run before anything is stored"""
        self.fs.create_file('/fixtures/bench_foo.py', contents='print(1)')
        self.client.parse.side_effect = ParseError('boom')
        with self.assertRaises(BenchmarkError) as e:
            benchmark_and_store(CancellationToken(), self.meta, self.registry,
                                connect=self.connect)
        self.assertIsInstance(e.exception.__cause__, ParseError)
        self.client.close.assert_called_once_with()
        self.assertEqual([], MemoryClient.instances)

    def test_cancelled(self):
        self.fs.create_file('/fixtures/bench_foo.py', contents='print(1)')
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(Cancelled):
            benchmark_and_store(token, self.meta, self.registry, connect=self.connect)
        self.client.parse.assert_not_called()
        self.assertEqual([], MemoryClient.instances)


if __name__ == '__main__':
    unittest.main()
