# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/node/executor.py
from __future__ import annotations

import logging
import shlex
from typing import List, Protocol, Sequence

import paramiko
from kubernetes.stream import stream
from websocket import WebSocketException

from mcverify.errors import ExecFailed
from mcverify.kube.client import API_ERRORS
from mcverify.utils.ssh_runner import SSHRunner

log = logging.getLogger("mcverify")


class NodeExecutor(Protocol):
    def exec(self, node: str, argv: Sequence[str]) -> str: ...


class DaemonPodExecutor:
    """
    Runs read-only commands in the node's root filesystem through the
    machine-config-daemon pod scheduled on that node (`chroot /rootfs ...`).
    """

    def __init__(
        self,
        core_api,
        *,
        namespace: str = "openshift-machine-config-operator",
        selector: str = "k8s-app=machine-config-daemon",
        container: str = "machine-config-daemon",
        timeout_seconds: int = 60,
    ):
        self.core = core_api
        self.namespace = namespace
        self.selector = selector
        self.container = container
        self.timeout_seconds = timeout_seconds

    def daemon_pod(self, node: str) -> str:
        pods = self.core.list_namespaced_pod(
            self.namespace,
            label_selector=self.selector,
            field_selector=f"spec.nodeName={node}",
        ).items
        if not pods:
            raise ExecFailed(node, [], None, f"no pod matching {self.selector} in {self.namespace}")
        return pods[0].metadata.name

    def exec(self, node: str, argv: Sequence[str]) -> str:
        command: List[str] = ["chroot", "/rootfs", *argv]

        try:
            pod = self.daemon_pod(node)
            log.debug("[exec] %s/%s $ %s", node, pod, shlex.join(command))
            resp = stream(
                self.core.connect_get_namespaced_pod_exec,
                pod,
                self.namespace,
                container=self.container,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
            resp.run_forever(timeout=self.timeout_seconds)
            out = resp.read_stdout() or ""
            err = resp.read_stderr() or ""
            rc = resp.returncode
            resp.close()
        except (*API_ERRORS, WebSocketException) as e:
            raise ExecFailed(node, argv, None, str(e)) from e

        if rc is None or rc != 0:
            raise ExecFailed(node, argv, rc, err)
        return out


class SSHNodeExecutor:
    """Same contract as DaemonPodExecutor, straight on the host over SSH."""

    def __init__(self, runner: SSHRunner, *, timeout_seconds: int = 60):
        self.runner = runner
        self.timeout_seconds = timeout_seconds

    def exec(self, node: str, argv: Sequence[str]) -> str:
        cmd = shlex.join(argv)
        log.debug("[exec] %s (ssh) $ %s", node, cmd)
        try:
            rc, out, err = self.runner.run(cmd, sudo=True, timeout=self.timeout_seconds)
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise ExecFailed(node, argv, None, str(e)) from e

        if rc != 0:
            raise ExecFailed(node, argv, rc, err)
        return out
