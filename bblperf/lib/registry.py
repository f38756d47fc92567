#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

from bblperf.lib.errors import UnsupportedStorageKind


class StorageRegistry(object):
    """Registry to construct storage clients based on their kind.

    Registration happens once at startup, before any command runs, so the
    registry is not synchronized.
    """

    def __init__(self):
        self.constructors = {}

    @property
    def registered_kinds(self):
        """list of str: storage kinds registered with the registry."""
        return sorted(self.constructors.keys())

    def register(self, kind, constructor):
        """Registers a storage client constructor, replacing any previous one.

        Args:
            kind (str): storage kind, as given to --storage
            constructor (callable): takes no arguments, returns a StorageClient
        """
        assert callable(constructor)
        self.constructors[kind] = constructor

    def validate_kind(self, kind):
        """Check that kind is supported and return its constructor.

        Commands call this before long running work so an unsupported kind
        fails before containers are started or benchmarks are run.

        Raises:
            UnsupportedStorageKind: kind was never registered
        """
        if kind not in self.constructors:
            raise UnsupportedStorageKind(kind)
        return self.constructors[kind]

    def new_client(self, kind):
        """Create the storage client for kind.

        Raises:
            UnsupportedStorageKind: kind was never registered
            ClientConstructionError: the client configuration is invalid
        """
        constructor = self.validate_kind(kind)
        return constructor()
