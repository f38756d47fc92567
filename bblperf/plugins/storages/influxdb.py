#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import logging
import math
import time
from typing import Any, Dict, List
from urllib.parse import urlsplit

from bblperf.lib.errors import ClientConstructionError, DumpError
from bblperf.lib.storage import (
    NAME_TAG,
    PER_OP_ALLOC_BYTES,
    PER_OP_ALLOCS,
    PER_OP_SECONDS,
    StorageClient,
    per_op_seconds,
)
from influxdb import InfluxDBClient
from influxdb.exceptions import InfluxDBClientError, InfluxDBServerError
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from requests.exceptions import RequestException


logger = logging.getLogger(__name__)

KIND = "influxdb"

# batches are written with second precision
PRECISION = "s"

DEFAULT_PORT = 8086


class InfluxConfig(BaseSettings):
    """InfluxDB connection, read from INFLUX_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="INFLUX_", frozen=True)

    address: str = Field(min_length=1)
    db: str = Field(min_length=1)
    measurement: str = Field(
        min_length=1,
        description="container for tags, fields and time, similar to a table in SQL",
    )
    username: str = ""
    password: str = ""


def check_fields(point: Dict[str, Any]):
    for key, value in point["fields"].items():
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError('field "{}" is not finite: {}'.format(key, value))


class InfluxClient(StorageClient):
    """Stores benchmark records to InfluxDB, one batch of points per dump."""

    kind = KIND

    def __init__(self, config: InfluxConfig, influx: InfluxDBClient):
        super().__init__()
        self.config = config
        self.influx = influx

    @classmethod
    def from_env(cls):
        try:
            config = InfluxConfig()
        except ValidationError as e:
            raise ClientConstructionError(
                "cannot get influx db client: {}".format(e)
            ) from e

        url = urlsplit(config.address)
        if url.scheme not in ("http", "https") or not url.hostname:
            raise ClientConstructionError(
                "cannot get influx db client: unsupported protocol scheme "
                '"{}" in {}'.format(url.scheme, config.address)
            )

        influx = InfluxDBClient(
            host=url.hostname,
            port=url.port or DEFAULT_PORT,
            username=config.username,
            password=config.password,
            database=config.db,
            ssl=url.scheme == "https",
            path=url.path.strip("/"),
        )
        return cls(config, influx)

    def batch(self, tags: Dict[str, str], records, event_time=None) -> List[Dict]:
        """Build the points for records, all stamped with event_time."""
        if event_time is None:
            event_time = int(time.time())

        points = []
        for r in records:
            point = {
                "measurement": self.config.measurement,
                "tags": dict(tags, **{NAME_TAG: r.name}),
                "fields": {
                    "n": r.n,
                    PER_OP_SECONDS: per_op_seconds(r),
                    PER_OP_ALLOC_BYTES: int(r.alloced_bytes_per_op),
                    PER_OP_ALLOCS: int(r.allocs_per_op),
                },
                "time": event_time,
            }
            logger.debug("batch -> add point %s", point)
            points.append(point)
        return points

    def _dump(self, tags, records):
        if not records:
            logger.info("No benchmarks to store in influxdb")
            return

        points = self.batch(tags, records)
        # a bad point aborts the batch before anything is written
        try:
            for p in points:
                check_fields(p)
        except ValueError as e:
            raise DumpError("cannot dump batch points: {}".format(e)) from e

        try:
            self.influx.write_points(
                points, time_precision=PRECISION, database=self.config.db
            )
        except (InfluxDBClientError, InfluxDBServerError, RequestException) as e:
            raise DumpError("cannot dump batch points: {}".format(e)) from e

        logger.info(
            'Stored {} point(s) to "{}"'.format(len(points), self.config.measurement)
        )

    def _close(self):
        self.influx.close()
