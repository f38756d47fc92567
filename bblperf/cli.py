#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import contextlib
import functools
import json
import logging
import os
import posixpath
import sys

import click
from bblperf.lib import containers
from bblperf.lib.benchmark import (
    BBLFSHD_LEVEL,
    DRIVER_LEVEL,
    DRIVER_NATIVE_LEVEL,
    FILE_FILTER_PREFIX,
    TRANSFORMS_LEVEL,
    records_from_json,
)
from bblperf.lib.errors import BenchmarkError, DriverInstallError, PerformanceError
from bblperf.lib.gobench import read_benchmarks
from bblperf.lib.runner import (
    DEFAULT_EXCLUDE_SUFFIXES,
    BenchmarkMeta,
    CancellationToken,
    benchmark_and_store,
    handle_interrupt,
)
from bblperf.plugins.storages import DEFAULT_KIND, default_registry


logger = logging.getLogger("bblperf")

ALIASES = {
    "pas": "parse-and-store",
    "parse-and-dump": "parse-and-store",
    "e2e": "end-to-end",
    "d": "driver",
    "dn": "driver-native",
    "native": "driver-native",
}

# paths inside the driver container used by driver-native
CONTAINER_TMP = "/tmp"
CONTAINER_FIXTURES = CONTAINER_TMP + "/fixtures"
RESULTS_FILE = "results.txt"

STORAGE_HELP = """WARNING! To access storage corresponding environment variables should be set.

\b
# for prometheus pushgateway
export PROM_ADDRESS="localhost:9091"
export PROM_JOB=pushgateway

\b
# for influx db
export INFLUX_ADDRESS="http://localhost:8086"
export INFLUX_USERNAME=""
export INFLUX_PASSWORD=""
export INFLUX_DB=mydb
export INFLUX_MEASUREMENT=benchmark
"""


class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        # report the full command name, not the alias
        _, cmd, args = super().resolve_command(ctx, args)
        return (cmd.name if cmd else None), cmd, args


def fail_on_error(f):
    """Log errors raised by a command and exit(1) without the usage text."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except PerformanceError as e:
            logger.error("%s", e)
            sys.exit(1)

    return wrapper


def storage_options(f):
    f = click.option(
        "--storage",
        "-s",
        default=DEFAULT_KIND,
        show_default=True,
        help="storage kind to store the results (prom, influxdb, file)",
    )(f)
    f = click.option(
        "--commit",
        "-c",
        required=True,
        help="commit id that's being tested and will be used as a tag in "
        "performance report",
    )(f)
    f = click.option(
        "--language", "-l", required=True, help="name of the language to be tested"
    )(f)
    return f


def bench_options(f):
    f = click.option(
        "--bench-time",
        type=float,
        default=1.0,
        show_default=True,
        help="minimum seconds spent benchmarking each file",
    )(f)
    f = click.option(
        "--filter-prefix",
        default=FILE_FILTER_PREFIX,
        show_default=True,
        help="file prefix to be filtered",
    )(f)
    return f


@click.group(cls=AliasedGroup)
@click.option("-v", "--verbose", count=True, default=0)
@click.option(
    "--drivers",
    type=click.Path(dir_okay=False),
    default=lambda: os.environ.get("BBLPERF_DRIVERS", containers.DEFAULT_DRIVERS_FILE),
    help="language to driver repository map",
)
@click.pass_context
def bblperf(ctx, verbose, drivers):
    """Performance test utilities for bblfshd and drivers."""
    ctx.ensure_object(dict)

    # warn is 30, should default to 30 when verbose=0
    # each level below warning is 10 less than the previous
    log_level = verbose * (-10) + 30
    logging.basicConfig(format="%(levelname)s:%(name)s: %(message)s", level=log_level)

    # storages are registered before any command runs
    ctx.obj.setdefault("registry", default_registry())
    ctx.obj["drivers"] = drivers
    logger.info(
        "Registered storages: {}".format(", ".join(ctx.obj["registry"].registered_kinds))
    )


@bblperf.command("parse-and-store", epilog=STORAGE_HELP)
@storage_options
@click.argument(
    "files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False)
)
@click.pass_context
@fail_on_error
def parse_and_store(ctx, language, commit, storage, files):
    """Parse file(s) with golang benchmark output and store them."""
    registry = ctx.obj["registry"]
    tags = {"language": language, "commit": commit, "level": TRANSFORMS_LEVEL}

    with registry.new_client(storage) as client:
        for path in files:
            records = read_benchmarks(path)
            client.dump(tags, *records)


@bblperf.command("end-to-end", epilog=STORAGE_HELP)
@storage_options
@bench_options
@click.option(
    "--docker-tag",
    "-t",
    default=containers.BBLFSHD_DEFAULT_TAG,
    show_default=True,
    help="bblfshd docker image tag to be tested",
)
@click.option(
    "--exclude-substrings",
    multiple=True,
    default=DEFAULT_EXCLUDE_SUFFIXES,
    show_default=True,
    help="file name suffixes to be excluded",
)
@click.option(
    "--custom-driver",
    is_flag=True,
    help="build the driver at the given commit and install it onto bblfshd",
)
@click.argument("dirs", nargs=-1, required=True, type=click.Path(file_okay=False))
@click.pass_context
@fail_on_error
def end_to_end(
    ctx,
    language,
    commit,
    storage,
    bench_time,
    filter_prefix,
    docker_tag,
    exclude_substrings,
    custom_driver,
    dirs,
):
    """Run a bblfshd container, benchmark it and store the results.

    Set BBLFSHD_LOCAL to the address of a running bblfshd to skip the
    container.
    """
    registry = ctx.obj["registry"]
    registry.validate_kind(storage)

    token = CancellationToken()
    with handle_interrupt(token), contextlib.ExitStack() as stack:
        address = os.environ.get("BBLFSHD_LOCAL", "")
        if not address:
            if docker_tag == containers.BBLFSHD_DEFAULT_TAG and custom_driver:
                raise DriverInstallError(
                    "custom driver cannot be installed: bblfshd tag is set to "
                    "{}: all drivers are pre-installed".format(docker_tag)
                )

            token.raise_if_cancelled()
            logger.debug("running bblfshd %s container", docker_tag)
            address, closer = containers.run_bblfshd(docker_tag)
            stack.callback(closer)

            if custom_driver:
                token.raise_if_cancelled()
                drivers = containers.load_drivers(ctx.obj["drivers"])
                containers.install_driver(language, commit, drivers)

        benchmark_and_store(
            token,
            BenchmarkMeta(
                address=address,
                commit=commit,
                dirs=list(dirs),
                language=language,
                level=BBLFSHD_LEVEL,
                storage=storage,
                filter_prefix=filter_prefix,
                exclude_suffixes=list(exclude_substrings),
                bench_time=bench_time,
            ),
            registry,
        )


@bblperf.command("driver", epilog=STORAGE_HELP)
@storage_options
@bench_options
@click.option(
    "--exclude-suffixes",
    multiple=True,
    default=DEFAULT_EXCLUDE_SUFFIXES,
    show_default=True,
    help="file suffixes to be excluded",
)
@click.argument("dirs", nargs=-1, required=True, type=click.Path(file_okay=False))
@click.pass_context
@fail_on_error
def driver(
    ctx, language, commit, storage, bench_time, filter_prefix, exclude_suffixes, dirs
):
    """Run a language driver container, benchmark it and store the results."""
    registry = ctx.obj["registry"]
    registry.validate_kind(storage)
    drivers = containers.load_drivers(ctx.obj["drivers"])

    token = CancellationToken()
    with handle_interrupt(token), contextlib.ExitStack() as stack:
        logger.debug("download and build driver")
        image = containers.download_and_build_driver(language, commit, drivers)

        token.raise_if_cancelled()
        logger.debug("run driver container")
        drv = containers.run_driver(image)
        stack.callback(drv.close)

        benchmark_and_store(
            token,
            BenchmarkMeta(
                address=drv.address,
                commit=commit,
                dirs=list(dirs),
                language=language,
                level=DRIVER_LEVEL,
                storage=storage,
                filter_prefix=filter_prefix,
                exclude_suffixes=list(exclude_suffixes),
                bench_time=bench_time,
            ),
            registry,
        )


@bblperf.command("driver-native", epilog=STORAGE_HELP)
@storage_options
@click.option(
    "--filter-prefix",
    default=FILE_FILTER_PREFIX,
    show_default=True,
    help="file prefix to be filtered",
)
@click.option(
    "--native",
    "-n",
    default="/root/utils/native-driver-test",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="path to native driver performance util",
)
@click.argument("fixtures", type=click.Path(exists=True, file_okay=False))
@click.pass_context
@fail_on_error
def driver_native(ctx, language, commit, storage, filter_prefix, native, fixtures):
    """Benchmark the native driver inside its container and store the results.

    The native util is uploaded to the driver container and must write its
    results as a JSON list of benchmarks.
    """
    registry = ctx.obj["registry"]
    exec_dst = posixpath.join(CONTAINER_TMP, os.path.basename(native))
    results_path = posixpath.join(CONTAINER_TMP, RESULTS_FILE)

    logger.debug("validating storage")
    registry.validate_kind(storage)
    drivers = containers.load_drivers(ctx.obj["drivers"])

    token = CancellationToken()
    with handle_interrupt(token), contextlib.ExitStack() as stack:
        logger.debug("download and build driver")
        image = containers.download_and_build_driver(language, commit, drivers)

        token.raise_if_cancelled()
        logger.debug("run driver container")
        drv = containers.run_driver(
            image, [os.path.abspath(fixtures) + ":" + CONTAINER_FIXTURES]
        )
        stack.callback(drv.close)

        logger.debug("copying file %s to container's dst: %s", native, exec_dst)
        drv.upload(token, native, exec_dst)

        logger.debug("executing command on driver")
        drv.exec(
            token,
            ["LOG_LEVEL=debug"],
            exec_dst,
            "--filter-prefix=" + filter_prefix,
            "--fixtures=" + CONTAINER_FIXTURES,
            "--results=" + results_path,
        )

        logger.debug("getting results")
        data = drv.get_results(token, results_path)
        # names match the ones the runner gives the same fixtures
        trim_prefixes = [CONTAINER_FIXTURES + "/", filter_prefix]
        try:
            records = records_from_json(json.loads(data), trim_prefixes)
        except (ValueError, KeyError, TypeError) as e:
            raise BenchmarkError("cannot read native results: {}".format(e)) from e

        with registry.new_client(storage) as client:
            client.dump(
                {"language": language, "commit": commit, "level": DRIVER_NATIVE_LEVEL},
                *records
            )


def main():
    bblperf(obj={})


if __name__ == "__main__":
    main()
