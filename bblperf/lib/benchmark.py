#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence


# pipeline stage a benchmark was taken at, stored as the "level" tag
BBLFSHD_LEVEL = "bblfshd"
DRIVER_LEVEL = "driver"
DRIVER_NATIVE_LEVEL = "driver-native"
TRANSFORMS_LEVEL = "transforms"

LEVELS = (BBLFSHD_LEVEL, DRIVER_LEVEL, DRIVER_NATIVE_LEVEL, TRANSFORMS_LEVEL)

# fixtures used for benchmarks are named bench_*.<extension>
FILE_FILTER_PREFIX = "bench_"


def parse_benchmark_name(name: str, trim_prefixes: Sequence[str] = ()) -> str:
    """Remove the path and suffixes from a benchmark name.

    Example: BenchmarkGoDriver/transform/accumulator_factory-4 ->
    accumulator_factory
    """
    for prefix in trim_prefixes:
        if prefix and name.startswith(prefix):
            name = name[len(prefix):]
    name = name.rpartition("/")[2]
    for i, c in enumerate(name):
        if c in "-.":
            return name[:i]
    return name


@dataclass(frozen=True)
class BenchmarkRecord(object):
    """Canonical result of a single benchmark, ready to be stored."""

    name: str

    n: int
    """number of iterations the measurement was taken over"""

    ns_per_op: float

    alloced_bytes_per_op: int

    allocs_per_op: int

    @classmethod
    def from_result(cls, name, result, trim_prefixes=()):
        """Build a record from a runner BenchmarkResult."""
        return normalize(
            name,
            trim_prefixes,
            result.n,
            float(result.ns_per_op),
            result.alloced_bytes_per_op,
            result.allocs_per_op,
        )

    @classmethod
    def from_dict(cls, record: Dict[str, Any], trim_prefixes=()):
        """Build a record from the JSON layout written by the native utility."""
        return normalize(
            record["Name"],
            trim_prefixes,
            int(record.get("N", 0)),
            float(record.get("NsPerOp", 0)),
            int(record.get("AllocedBytesPerOp", 0)),
            int(record.get("AllocsPerOp", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "N": self.n,
            "NsPerOp": self.ns_per_op,
            "AllocedBytesPerOp": self.alloced_bytes_per_op,
            "AllocsPerOp": self.allocs_per_op,
        }


def normalize(
    raw_name: str,
    trim_prefixes: Sequence[str],
    n: int,
    ns_per_op: float,
    alloced_bytes_per_op: int,
    allocs_per_op: int,
) -> BenchmarkRecord:
    return BenchmarkRecord(
        name=parse_benchmark_name(raw_name, trim_prefixes),
        n=n,
        ns_per_op=ns_per_op,
        alloced_bytes_per_op=alloced_bytes_per_op,
        allocs_per_op=allocs_per_op,
    )


def records_from_json(
    data: Iterable[Dict[str, Any]], trim_prefixes: Sequence[str] = ()
) -> List[BenchmarkRecord]:
    return [BenchmarkRecord.from_dict(d, trim_prefixes) for d in data]
