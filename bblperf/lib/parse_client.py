#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import logging

from bblperf.lib.errors import ParseError


logger = logging.getLogger(__name__)


class ParseClient(object):
    """Sends parse requests to a bblfshd or driver gRPC endpoint."""

    def __init__(self, address, client):
        self.address = address
        self.client = client

    @classmethod
    def connect(cls, address):
        # the bblfsh client is an optional dependency, only needed when
        # benchmarks run against a live endpoint
        import bblfsh

        logger.info('Connecting to "%s"', address)
        return cls(address, bblfsh.BblfshClient(address))

    def parse(self, language, content, filename=""):
        """Parse content to a UAST, raising ParseError on failure."""
        try:
            return self.client.parse(filename, language=language, contents=content)
        except Exception as e:
            raise ParseError(
                "parse request to {} failed: {}".format(self.address, e)
            ) from e

    def close(self):
        channel = getattr(self.client, "_channel", None)
        if channel is not None:
            channel.close()
