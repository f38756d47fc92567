#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from bblperf.lib.benchmark import BenchmarkRecord, normalize


logger = logging.getLogger(__name__)

# unit -> attribute of BenchmarkLine
UNITS = {
    "ns/op": "ns_per_op",
    "MB/s": "mb_per_s",
    "B/op": "alloced_bytes_per_op",
    "allocs/op": "allocs_per_op",
}


@dataclass
class BenchmarkLine(object):
    """One line of `go test -bench` output."""

    name: str
    n: int
    ns_per_op: float = 0.0
    mb_per_s: float = 0.0
    alloced_bytes_per_op: int = 0
    allocs_per_op: int = 0
    ord: int = 0
    """position of the benchmark in its file"""

    def to_record(self, trim_prefixes=()) -> BenchmarkRecord:
        return normalize(
            self.name,
            trim_prefixes,
            self.n,
            self.ns_per_op,
            self.alloced_bytes_per_op,
            self.allocs_per_op,
        )


def parse_line(line: str) -> Optional[BenchmarkLine]:
    """Parse a single benchmark line, None when it isn't one.

    Example:
        BenchmarkDecode-4   1000   1234 ns/op   56 B/op   7 allocs/op
    """
    fields = line.split()
    # name, iterations and at least one measurement
    if len(fields) < 4 or not fields[0].startswith("Benchmark"):
        return None
    try:
        n = int(fields[1])
    except ValueError:
        return None

    b = BenchmarkLine(name=fields[0], n=n)
    # the rest of the line is a sequence of "<value> <unit>" pairs
    for value, unit in zip(fields[2::2], fields[3::2]):
        attr = UNITS.get(unit)
        if attr is None:
            continue
        try:
            number = float(value)
        except ValueError:
            logger.debug('Skipping bad value "%s %s" of %s', value, unit, b.name)
            continue
        if attr in ("alloced_bytes_per_op", "allocs_per_op"):
            number = int(number)
        setattr(b, attr, number)
    return b


def parse_set(lines: Iterable[str]) -> Dict[str, List[BenchmarkLine]]:
    """Parse benchmark output into lists of runs keyed by benchmark name.

    Names are kept in order of first appearance.
    """
    benchmarks = OrderedDict()
    ord = 0
    for line in lines:
        b = parse_line(line)
        if b is None:
            continue
        b.ord = ord
        ord += 1
        benchmarks.setdefault(b.name, []).append(b)
    return benchmarks


def read_benchmarks(path, trim_prefixes=()) -> List[BenchmarkRecord]:
    """Read a benchmark log file and return its normalized records."""
    with open(path, "r") as f:
        benchmark_set = parse_set(f)

    records = []
    for runs in benchmark_set.values():
        records.extend(b.to_record(trim_prefixes) for b in runs)
    logger.info('Parsed {} benchmark(s) from "{}"'.format(len(records), path))
    return records
