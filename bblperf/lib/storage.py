#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import logging
from abc import ABCMeta, abstractmethod
from typing import Dict, List, Tuple

from bblperf.lib.benchmark import BenchmarkRecord
from bblperf.lib.errors import ClientClosedError


logger = logging.getLogger(__name__)

# metric names shared by every sink
PER_OP_SECONDS = "per_op_seconds"
PER_OP_ALLOC_BYTES = "per_op_alloc_bytes"
PER_OP_ALLOCS = "per_op_allocs"

NAME_TAG = "name"


def split_tags(tags: Dict[str, str]) -> Tuple[List[str], List[str]]:
    """Split a tag mapping into keys and values, ordered by key."""
    keys = sorted(tags)
    return keys, [tags[k] for k in keys]


def per_op_seconds(record: BenchmarkRecord) -> float:
    return record.ns_per_op / 1e9


class StorageClient(object, metaclass=ABCMeta):
    """A StorageClient publishes benchmark records to a metrics backend.

    Clients are created once per command and closed exactly once, either
    explicitly or by leaving a ``with`` block.
    """

    kind = None

    def __init__(self):
        self.closed = False

    def dump(self, tags: Dict[str, str], *records: BenchmarkRecord):
        """Store records, each tagged with tags and its own name.

        Args:
            tags (dict): tags attached to every record, never modified
            records (BenchmarkRecord): records to store as one batch
        """
        if self.closed:
            raise ClientClosedError("{} client is closed".format(self.kind))
        self._dump(dict(tags or {}), records)

    def close(self):
        """Release the client's resources, a no-op when already closed."""
        if self.closed:
            return
        self._close()
        self.closed = True

    @abstractmethod
    def _dump(self, tags: Dict[str, str], records):
        pass

    @abstractmethod
    def _close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
            return False
        # the body's error takes precedence over a close failure
        try:
            self.close()
        except Exception as e:
            logger.error("Failed to close %s client: %s", self.kind, e)
        return False
