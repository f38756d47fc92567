#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

from bblperf.lib.errors import StorageNotImplemented
from bblperf.lib.storage import StorageClient


KIND = "file"


class FileClient(StorageClient):
    """Placeholder for a sink writing benchmark records to a file."""

    kind = KIND

    @classmethod
    def from_env(cls):
        return cls()

    def _dump(self, tags, records):
        raise StorageNotImplemented(KIND)

    def _close(self):
        raise StorageNotImplemented(KIND)
