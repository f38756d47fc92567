#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import logging

from bblperf.lib.errors import ClientConstructionError, DumpError
from bblperf.lib.storage import (
    NAME_TAG,
    PER_OP_ALLOC_BYTES,
    PER_OP_ALLOCS,
    PER_OP_SECONDS,
    StorageClient,
    per_op_seconds,
    split_tags,
)
from prometheus_client import CollectorRegistry, Summary
from prometheus_client.exposition import pushadd_to_gateway
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

KIND = "prom"

DESCRIPTIONS = {
    PER_OP_SECONDS: "seconds per operation",
    PER_OP_ALLOC_BYTES: "bytes allocated per operation",
    PER_OP_ALLOCS: "allocations per operation",
}


class PromConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PROM_", frozen=True)

    address: str = Field(min_length=1)
    job: str = Field(min_length=1)


def get_metrics(labels, registry):
    return {
        name: Summary(name, description, labels, registry=registry)
        for name, description in DESCRIPTIONS.items()
    }


class PromClient(StorageClient):
    """Pushes benchmark records to a Prometheus push-gateway as summaries.

    Every dump uses its own collector registry, so metrics from previous
    dumps are never pushed twice.
    """

    kind = KIND

    def __init__(self, config: PromConfig):
        super().__init__()
        self.config = config

    @classmethod
    def from_env(cls):
        try:
            return cls(PromConfig())
        except ValidationError as e:
            raise ClientConstructionError(
                "cannot get pushgateway client: {}".format(e)
            ) from e

    def collect(self, tags, records) -> CollectorRegistry:
        """Observe all records in a new registry."""
        # the record name always fills the name label
        tags = {k: v for k, v in tags.items() if k != NAME_TAG}
        labels, values = split_tags(tags)
        labels = [NAME_TAG] + labels

        registry = CollectorRegistry()
        logger.debug("getting metrics")
        metrics = get_metrics(labels, registry)
        for r in records:
            label_values = [r.name] + values
            logger.debug("observing for the benchmark: %s", r)
            metrics[PER_OP_SECONDS].labels(*label_values).observe(per_op_seconds(r))
            metrics[PER_OP_ALLOC_BYTES].labels(*label_values).observe(
                float(r.alloced_bytes_per_op)
            )
            metrics[PER_OP_ALLOCS].labels(*label_values).observe(
                float(r.allocs_per_op)
            )
        return registry

    def _dump(self, tags, records):
        try:
            registry = self.collect(tags, records)
        except ValueError as e:
            raise DumpError("cannot collect metrics: {}".format(e)) from e

        logger.debug("pushing metrics")
        try:
            pushadd_to_gateway(self.config.address, job=self.config.job, registry=registry)
        except (OSError, ValueError) as e:
            raise DumpError("cannot push metrics: {}".format(e)) from e

    def _close(self):
        # the pusher holds no connection between dumps
        pass
