#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.


class PerformanceError(Exception):
    """Base class for every error the harness reports to the operator."""


class StorageError(PerformanceError):
    pass


class UnsupportedStorageKind(StorageError):
    def __init__(self, kind):
        super().__init__("storage kind {} is not supported".format(kind))
        self.kind = kind


class ClientConstructionError(StorageError):
    pass


class DumpError(StorageError):
    pass


class StorageNotImplemented(StorageError, NotImplementedError):
    def __init__(self, kind):
        super().__init__("{}: not implemented".format(kind))
        self.kind = kind


class ClientClosedError(StorageError):
    pass


class ContainerError(PerformanceError):
    pass


class DriverInstallError(PerformanceError):
    pass


class BenchmarkError(PerformanceError):
    pass


class ParseError(PerformanceError):
    pass


class Cancelled(PerformanceError):
    def __init__(self):
        super().__init__("operation cancelled")
