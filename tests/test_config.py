#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import os
import unittest
from unittest.mock import patch

from bblperf.plugins.storages.influxdb import InfluxConfig
from bblperf.plugins.storages.prom_pushgateway import PromConfig
from pydantic import ValidationError


class TestInfluxConfig(unittest.TestCase):

    @patch.dict(os.environ, {
        'INFLUX_ADDRESS': 'http://localhost:8086',
        'INFLUX_DB': 'mydb',
        'INFLUX_MEASUREMENT': 'benchmark',
        'INFLUX_USERNAME': 'user',
        'INFLUX_PASSWORD': 'secret',
    }, clear=True)
    def test_from_environment(self):
        """Fields are read from INFLUX_* variables"""
        config = InfluxConfig()
        self.assertEqual('http://localhost:8086', config.address)
        self.assertEqual('mydb', config.db)
        self.assertEqual('benchmark', config.measurement)
        self.assertEqual('user', config.username)
        self.assertEqual('secret', config.password)

    @patch.dict(os.environ, {
        'INFLUX_ADDRESS': 'http://localhost:8086',
        'INFLUX_DB': 'mydb',
        'INFLUX_MEASUREMENT': 'benchmark',
    }, clear=True)
    def test_credentials_optional(self):
        config = InfluxConfig()
        self.assertEqual('', config.username)
        self.assertEqual('', config.password)

    @patch.dict(os.environ, {'INFLUX_DB': ''}, clear=True)
    def test_missing_required(self):
        """Missing or empty required variables are rejected"""
        with self.assertRaises(ValidationError) as e:
            InfluxConfig()
        fields = {err['loc'][0] for err in e.exception.errors()}
        self.assertEqual({'address', 'db', 'measurement'}, fields)

    @patch.dict(os.environ, {}, clear=True)
    def test_frozen(self):
        config = InfluxConfig(address='http://localhost:8086', db='mydb',
                              measurement='benchmark')
        with self.assertRaises(ValidationError):
            config.db = 'other'


class TestPromConfig(unittest.TestCase):

    @patch.dict(os.environ, {'PROM_ADDRESS': 'localhost:9091', 'PROM_JOB': 'pushgateway'},
                clear=True)
    def test_from_environment(self):
        config = PromConfig()
        self.assertEqual('localhost:9091', config.address)
        self.assertEqual('pushgateway', config.job)

    @patch.dict(os.environ, {'PROM_ADDRESS': 'localhost:9091'}, clear=True)
    def test_missing_job(self):
        with self.assertRaises(ValidationError):
            PromConfig()


if __name__ == '__main__':
    unittest.main()
