#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import unittest

from bblperf.lib.benchmark import BenchmarkRecord
from bblperf.lib.gobench import parse_line, parse_set, read_benchmarks
from pyfakefs import fake_filesystem_unittest


BENCH_OUTPUT = """goos: linux
goarch: amd64
pkg: github.com/bblfsh/go-driver/driver
BenchmarkGoDriver/transform/accumulator_factory-4  \t    1000\t   1234567 ns/op\t  56789 B/op\t     789 allocs/op
BenchmarkGoDriver/transform/hello.go-4  \t    2000\t    987.5 ns/op\t   12.50 MB/s\t 128 B/op\t 3 allocs/op
BenchmarkGoDriver/transform/accumulator_factory-4  \t    1100\t   1234000 ns/op\t  56000 B/op\t     780 allocs/op
PASS
ok  \tgithub.com/bblfsh/go-driver/driver\t12.345s
"""


class TestParseLine(unittest.TestCase):

    def test_full_line(self):
        b = parse_line('BenchmarkDecode-4   1000   1234 ns/op   56 B/op   7 allocs/op')
        self.assertEqual('BenchmarkDecode-4', b.name)
        self.assertEqual(1000, b.n)
        self.assertEqual(1234.0, b.ns_per_op)
        self.assertEqual(56, b.alloced_bytes_per_op)
        self.assertEqual(7, b.allocs_per_op)

    def test_time_only(self):
        """Lines without memory stats leave allocations at zero"""
        b = parse_line('BenchmarkDecode 50 20.5 ns/op')
        self.assertEqual(20.5, b.ns_per_op)
        self.assertEqual(0, b.alloced_bytes_per_op)
        self.assertEqual(0, b.allocs_per_op)

    def test_unknown_unit(self):
        """Unknown units are ignored"""
        b = parse_line('BenchmarkDecode 50 20 ns/op 3 widgets/op')
        self.assertEqual(20.0, b.ns_per_op)

    def test_not_benchmarks(self):
        for line in ['PASS', 'goos: linux', 'BenchmarkDecode 50',
                     'BenchmarkDecode many 20 ns/op', 'TestDecode 1 2 ns/op', '']:
            self.assertIsNone(parse_line(line), line)


class TestParseSet(unittest.TestCase):

    def test_runs_grouped_by_name(self):
        """Repeated runs are kept under their name in order"""
        benchmarks = parse_set(BENCH_OUTPUT.splitlines())
        self.assertListEqual(
            ['BenchmarkGoDriver/transform/accumulator_factory-4',
             'BenchmarkGoDriver/transform/hello.go-4'],
            list(benchmarks.keys()))
        runs = benchmarks['BenchmarkGoDriver/transform/accumulator_factory-4']
        self.assertEqual([1000, 1100], [b.n for b in runs])
        self.assertEqual([0, 2], [b.ord for b in runs])
        self.assertEqual(12.5, benchmarks['BenchmarkGoDriver/transform/hello.go-4'][0].mb_per_s)


class TestReadBenchmarks(fake_filesystem_unittest.TestCase):

    def setUp(self):
        self.setUpPyfakefs()

    def test_read_benchmarks(self):
        """Every run becomes a record with a cleaned name"""
        self.fs.create_file('/var/log/bench0', contents=BENCH_OUTPUT)
        records = read_benchmarks('/var/log/bench0')
        self.assertListEqual([
            BenchmarkRecord('accumulator_factory', 1000, 1234567.0, 56789, 789),
            BenchmarkRecord('accumulator_factory', 1100, 1234000.0, 56000, 780),
            BenchmarkRecord('hello', 2000, 987.5, 128, 3),
        ], records)

    def test_read_empty(self):
        self.fs.create_file('/var/log/empty', contents='PASS\n')
        self.assertListEqual([], read_benchmarks('/var/log/empty'))

    def test_read_missing(self):
        with self.assertRaises(OSError):
            read_benchmarks('/var/log/missing')


if __name__ == '__main__':
    unittest.main()
