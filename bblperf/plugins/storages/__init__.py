#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

from bblperf.lib.registry import StorageRegistry
from bblperf.plugins.storages import file, influxdb, prom_pushgateway
from bblperf.plugins.storages.file import FileClient
from bblperf.plugins.storages.influxdb import InfluxClient
from bblperf.plugins.storages.prom_pushgateway import PromClient


DEFAULT_KIND = prom_pushgateway.KIND


def register_storages(registry):
    registry.register(prom_pushgateway.KIND, PromClient.from_env)
    registry.register(influxdb.KIND, InfluxClient.from_env)
    registry.register(file.KIND, FileClient.from_env)


def default_registry():
    registry = StorageRegistry()
    register_storages(registry)
    return registry
