#!/usr/bin/env python3
# Copyright (c) 2017-present, Facebook, Inc.
# All rights reserved.
#
# This source code is licensed under the BSD-style license found in the
# LICENSE file in the root directory of this source tree. An additional grant
# of patent rights can be found in the PATENTS file in the same directory.

import io
import logging
import os
import shlex
import socket
import subprocess
import tarfile
import tempfile
import time
from dataclasses import dataclass
from typing import Dict, List, Sequence

import docker
import yaml
from bblperf.lib.errors import ContainerError, DriverInstallError
from docker.errors import DockerException


logger = logging.getLogger(__name__)

BBLFSHD_IMAGE = "bblfsh/bblfshd"
BBLFSHD_CONTAINER = "bblfshd-perf"
# bblfshd image tag with every driver pre-installed
BBLFSHD_DEFAULT_TAG = "latest-drivers"
GRPC_PORT = "9432"

DRIVER_CONTAINER = "driver"

DOCKER_SOCKET = "/var/run/docker.sock"

DEFAULT_DRIVERS_FILE = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "conf", "drivers.yml"
)

# port polling, with exponential back-off
PORT_DIAL_TIMEOUT = 0.25
PORT_MAX_WAIT = 60.0


@dataclass(frozen=True)
class Image(object):
    repository: str
    tag: str

    def __str__(self):
        return "{}:{}".format(self.repository, self.tag)


def docker_client():
    try:
        return docker.from_env()
    except DockerException as e:
        raise ContainerError("could not connect to docker: {}".format(e)) from e


def parse_mounts(mounts: Sequence[str]) -> Dict[str, Dict[str, str]]:
    """Convert "src:dst" mounts to docker SDK volumes, with the docker socket."""
    volumes = {DOCKER_SOCKET: {"bind": DOCKER_SOCKET, "mode": "rw"}}
    for m in mounts:
        src, sep, dst = m.partition(":")
        if not sep or not src or not dst:
            raise ContainerError('invalid mount "{}", expected src:dst'.format(m))
        volumes[os.path.abspath(src)] = {"bind": dst, "mode": "rw"}
    return volumes


def host_address(container, port=GRPC_PORT) -> str:
    """Host address the container's port is published on."""
    container.reload()
    bindings = container.attrs["NetworkSettings"]["Ports"].get(port + "/tcp")
    if not bindings:
        raise ContainerError("port {} of {} is not published".format(port, container.name))
    host_ip = bindings[0].get("HostIp") or "localhost"
    if host_ip in ("0.0.0.0", "::"):
        host_ip = "localhost"
    return "{}:{}".format(host_ip, bindings[0]["HostPort"])


def wait_for_port(address: str, max_wait=PORT_MAX_WAIT):
    """Poll address until it accepts TCP connections."""
    host, _, port = address.rpartition(":")
    deadline = time.monotonic() + max_wait
    delay = 0.05
    while True:
        try:
            with socket.create_connection((host, int(port)), timeout=PORT_DIAL_TIMEOUT):
                return
        except OSError as e:
            if time.monotonic() + delay > deadline:
                raise ContainerError(
                    "could not wait until port {} is enabled".format(port)
                ) from e
        time.sleep(delay)
        delay = min(delay * 2, 5.0)


def purge(container):
    try:
        container.remove(force=True, v=True)
    except DockerException as e:
        logger.error("could not purge resource %s: %s", container.name, e)


def run_container(name: str, image: Image, mounts: Sequence[str] = ()):
    """Start a privileged container publishing the gRPC port, and wait for it.

    Returns:
        (container, address)
    """
    client = docker_client()
    try:
        container = client.containers.run(
            str(image),
            name=name,
            detach=True,
            privileged=True,
            ports={GRPC_PORT + "/tcp": GRPC_PORT},
            volumes=parse_mounts(mounts),
        )
    except DockerException as e:
        raise ContainerError("could not start resource {}: {}".format(image, e)) from e

    try:
        address = host_address(container)
        logger.debug("addr used: %s", address)
        logger.debug("waiting for port")
        wait_for_port(address)
    except (ContainerError, DockerException):
        purge(container)
        raise
    return container, address


def run_bblfshd(tag: str = BBLFSHD_DEFAULT_TAG):
    """Run bblfshd with the given tag.

    Returns:
        (address, closer) where closer removes the container
    """
    container, address = run_container(BBLFSHD_CONTAINER, Image(BBLFSHD_IMAGE, tag))
    return address, lambda: purge(container)


class Driver(object):
    """A running language driver container.

    Attributes:
        address (str): the driver's gRPC address
        container (docker.models.containers.Container): container handle
    """

    def __init__(self, container, address):
        self.container = container
        self.address = address
        self.closed = False

    def upload(self, token, src: str, dst: str):
        """Copy the host file src to dst in the container, as an executable."""
        token.raise_if_cancelled()
        buf = io.BytesIO()
        try:
            with tarfile.open(fileobj=buf, mode="w") as tar:
                info = tar.gettarinfo(src, arcname=os.path.basename(dst))
                info.mode = 0o755
                with open(src, "rb") as f:
                    tar.addfile(info, f)
        except OSError as e:
            raise ContainerError("upload failed: {}".format(e)) from e

        try:
            ok = self.container.put_archive(os.path.dirname(dst), buf.getvalue())
        except DockerException as e:
            raise ContainerError("upload failed: {}".format(e)) from e
        if not ok:
            raise ContainerError("upload failed: {} -> {}".format(src, dst))

    def exec(self, token, env: List[str], *cmd: str):
        """Run cmd in the container, fails when the exit code isn't 0."""
        token.raise_if_cancelled()
        logger.debug("executing %s", cmd)
        try:
            result = self.container.exec_run(
                list(cmd), environment=env, privileged=True, tty=True
            )
        except DockerException as e:
            raise ContainerError("failed to exec command: {}".format(e)) from e

        output = result.output.decode("utf-8", errors="replace") if result.output else ""
        logger.debug("container: %s code: %s\n%s", self.container.name, result.exit_code, output)
        if result.exit_code != 0:
            raise ContainerError(
                "failed to exec command: code: {}\n{}".format(result.exit_code, output)
            )

    def get_results(self, token, src: str) -> bytes:
        """Read the content of the file src in the container.

        Do not use it on large files.
        """
        token.raise_if_cancelled()
        try:
            stream, _ = self.container.get_archive(src)
            data = b"".join(stream)
        except DockerException as e:
            raise ContainerError("get results failed: {}".format(e)) from e

        with tarfile.open(fileobj=io.BytesIO(data), mode="r") as tar:
            member = tar.extractfile(os.path.basename(src))
            if member is None:
                raise ContainerError("get results failed: {} is not a file".format(src))
            return member.read()

    def close(self):
        if self.closed:
            return
        purge(self.container)
        self.closed = True


def run_driver(image: Image, mounts: Sequence[str] = ()) -> Driver:
    container, address = run_container(DRIVER_CONTAINER, image, mounts)
    return Driver(container, address)


def exec_cmd(script: str):
    """Run a bash script, the error contains the combined output on failure.

    Do not use this for scripts that produce a large volume of output.
    """
    try:
        proc = subprocess.run(
            ["bash"],
            input=script,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise DriverInstallError(
            "command failed: {}, output: {}".format(e, e.output)
        ) from e
    except OSError as e:
        raise DriverInstallError("command failed: {}".format(e)) from e
    logger.debug("command output: %s", proc.stdout)


def load_drivers(path=DEFAULT_DRIVERS_FILE) -> Dict[str, str]:
    """Load the language -> driver repository map."""
    logger.info('Loading drivers from "%s"', path)
    with open(path) as f:
        drivers = yaml.safe_load(f) or {}
    if not isinstance(drivers, dict):
        raise DriverInstallError("{}: expected a mapping of language to driver".format(path))
    return drivers


def driver_url(driver: str) -> str:
    return "https://github.com/bblfsh/" + driver


def driver_image(driver: str, tag: str) -> Image:
    return Image("bblfsh/" + driver, tag)


def lookup_driver(language: str, drivers: Dict[str, str]) -> str:
    if language not in drivers:
        raise DriverInstallError("language {} is not supported".format(language))
    return drivers[language]


def download_and_build_driver(language: str, commit: str, drivers: Dict[str, str]) -> Image:
    """Clone the driver, check out commit and build its docker image."""
    driver = lookup_driver(language, drivers)
    logger.debug("Selected driver: %s", driver)
    image = driver_image(driver, commit)

    with tempfile.TemporaryDirectory(prefix=driver) as tmp:
        logger.debug("Created temp directory %s", tmp)
        repo = driver_url(driver)
        logger.debug("performing git clone repository %s %s", repo, commit)
        exec_cmd(
            "git clone {0} {1} && cd {1} && git checkout {2}".format(
                shlex.quote(repo), shlex.quote(tmp), shlex.quote(commit)
            )
        )

        logger.debug("building with image %s", image)
        exec_cmd(
            "cd {} && go run build.go {}".format(shlex.quote(tmp), shlex.quote(str(image)))
        )
    return image


def install_driver(language: str, commit: str, drivers: Dict[str, str]):
    """Build the driver at commit and install it into the running bblfshd."""
    image = download_and_build_driver(language, commit, drivers)
    exec_cmd(
        "docker exec {} bblfshctl driver install {} docker-daemon:{}".format(
            shlex.quote(BBLFSHD_CONTAINER), shlex.quote(language), shlex.quote(str(image))
        )
    )
    return image
