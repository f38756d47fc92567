#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import contextlib
import glob
import logging
import os
import signal
import threading
import time
import tracemalloc
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from bblperf.lib.benchmark import FILE_FILTER_PREFIX, BenchmarkRecord
from bblperf.lib.errors import BenchmarkError, Cancelled, ParseError
from bblperf.lib.parse_client import ParseClient


logger = logging.getLogger(__name__)

MAX_ITERATIONS = 1000000000

DEFAULT_EXCLUDE_SUFFIXES = (".legacy", ".native", ".uast")


class CancellationToken(object):
    """Cooperative cancellation, checked between fixtures and container steps.

    Work that is already running (a parse request, a dump) is never
    interrupted.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise Cancelled()


@contextlib.contextmanager
def handle_interrupt(token):
    """Cancel token on SIGINT while the block runs."""

    def handler(signum, frame):
        logger.warning("Interrupted, stopping after the current operation")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


@dataclass
class BenchmarkResult(object):
    n: int
    """number of iterations"""

    duration_ns: int
    """total time taken by the timed iterations"""

    alloced_bytes: int = 0
    allocs: int = 0

    @property
    def ns_per_op(self) -> int:
        if self.n <= 0:
            return 0
        return self.duration_ns // self.n

    @property
    def alloced_bytes_per_op(self) -> int:
        if self.n <= 0:
            return 0
        return self.alloced_bytes // self.n

    @property
    def allocs_per_op(self) -> int:
        if self.n <= 0:
            return 0
        return self.allocs // self.n


def run_n(fn: Callable[[], object], n: int) -> int:
    """Call fn n times, returns the elapsed nanoseconds."""
    start = time.perf_counter_ns()
    for _ in range(n):
        fn()
    return time.perf_counter_ns() - start


def predict_n(goal_ns: int, last: int, prev_ns: int) -> int:
    """Iteration count for the next round, aiming at goal_ns."""
    prev_ns = max(prev_ns, 1)
    n = goal_ns * last // prev_ns
    # run a bit more than predicted, but don't grow too fast
    n += n // 5
    n = min(n, 100 * last)
    n = max(n, last + 1)
    return min(n, MAX_ITERATIONS)


def measure_allocations(fn: Callable[[], object]):
    """Trace memory allocations of one call of fn.

    Returns:
        (peak bytes allocated, number of new memory blocks)
    """
    tracing = tracemalloc.is_tracing()
    if not tracing:
        tracemalloc.start()
    try:
        before = tracemalloc.take_snapshot()
        tracemalloc.reset_peak()
        base, _ = tracemalloc.get_traced_memory()
        fn()
        _, peak = tracemalloc.get_traced_memory()
        after = tracemalloc.take_snapshot()
    finally:
        if not tracing:
            tracemalloc.stop()

    ignore = (tracemalloc.Filter(False, tracemalloc.__file__),)
    stats = after.filter_traces(ignore).compare_to(
        before.filter_traces(ignore), "lineno"
    )
    allocs = sum(max(s.count_diff, 0) for s in stats)
    return max(peak - base, 0), allocs


def benchmark(fn: Callable[[], object], bench_time=1.0, token=None) -> BenchmarkResult:
    """Time fn the way `go test -bench` does.

    fn runs once, then the iteration count grows until one round lasts at
    least bench_time seconds. Allocations are taken from one extra traced
    call and scaled to the iteration count.
    """
    goal_ns = int(bench_time * 1e9)
    n = 1
    duration = run_n(fn, n)
    while duration < goal_ns and n < MAX_ITERATIONS:
        if token is not None:
            token.raise_if_cancelled()
        n = predict_n(goal_ns, n, duration)
        duration = run_n(fn, n)

    alloced_bytes, allocs = measure_allocations(fn)
    return BenchmarkResult(
        n=n, duration_ns=duration, alloced_bytes=alloced_bytes * n, allocs=allocs * n
    )


def get_files(prefix: str, exclude_suffixes: Sequence[str], dirs: Sequence[str]):
    """List files named prefix* in dirs, skipping excluded suffixes."""
    files = []
    for d in dirs:
        for path in sorted(glob.glob(os.path.join(d, prefix + "*"))):
            if any(path.endswith(s) for s in exclude_suffixes):
                continue
            files.append(path)
    return files


def read_fixture(path):
    with open(path, "r") as f:
        return f.read()


def warm_up(client: ParseClient, language: str, path: str) -> float:
    """Send one parse request for path, returns the elapsed seconds."""
    content = read_fixture(path)
    start = time.perf_counter()
    client.parse(language, content, filename=path)
    return time.perf_counter() - start


def bench_file(
    client: ParseClient, language: str, path: str, bench_time=1.0, token=None
) -> BenchmarkResult:
    content = read_fixture(path)
    return benchmark(
        lambda: client.parse(language, content, filename=path), bench_time, token
    )


@dataclass
class BenchmarkMeta(object):
    """What benchmark_and_store needs to reach the endpoint, pick fixtures and
    store the results."""

    address: str
    """gRPC address of bblfshd or the driver"""

    commit: str

    dirs: List[str]
    """directories to look for fixtures in"""

    language: str

    level: str
    """pipeline stage being benchmarked, stored as a tag"""

    storage: str
    """storage kind"""

    filter_prefix: str = FILE_FILTER_PREFIX

    exclude_suffixes: Sequence[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_SUFFIXES)
    )

    bench_time: float = 1.0

    def tags(self):
        return {"language": self.language, "commit": self.commit, "level": self.level}


def bench_files(token, client, meta: BenchmarkMeta) -> List[BenchmarkRecord]:
    files = get_files(meta.filter_prefix, meta.exclude_suffixes, meta.dirs)
    if not files:
        raise BenchmarkError("no files detected")

    token.raise_if_cancelled()
    warm_up_file = files[0]
    logger.debug(
        "warming up the language %s using file %s", meta.language, warm_up_file
    )
    try:
        elapsed = warm_up(client, meta.language, warm_up_file)
    except (OSError, ParseError) as e:
        raise BenchmarkError(
            "warmup for file {} has failed: {}".format(warm_up_file, e)
        ) from e
    logger.debug("warm up done for file %s in %.3fs", warm_up_file, elapsed)

    records = []
    for f in files:
        token.raise_if_cancelled()
        logger.debug("benching file: %s", f)
        try:
            result = bench_file(client, meta.language, f, meta.bench_time, token)
        except (OSError, ParseError) as e:
            raise BenchmarkError(
                "cannot perform benchmark over the file {}: {}".format(f, e)
            ) from e
        records.append(
            BenchmarkRecord.from_result(
                os.path.basename(f), result, [meta.filter_prefix]
            )
        )
    return records


def benchmark_and_store(token, meta: BenchmarkMeta, registry, connect=None):
    """Benchmark the fixtures against the endpoint and store the results.

    Steps:
        1) connect to the gRPC endpoint
        2) collect fixtures from the directories
        3) warm up with the first fixture
        4) benchmark every fixture
        5) dump the results to the storage
    """
    if connect is None:
        connect = ParseClient.connect

    client = connect(meta.address)
    try:
        records = bench_files(token, client, meta)
    finally:
        client.close()

    with registry.new_client(meta.storage) as storage:
        storage.dump(meta.tags(), *records)
    logger.info("Stored {} benchmark(s) to {}".format(len(records), meta.storage))
    return records
