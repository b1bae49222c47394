# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/checks/daemon_logs.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from mcverify.config.models import DaemonSettings
from mcverify.observers.dispatcher import EventBus
from mcverify.observers.events import DaemonLogScanned, new_ctx, stamp

log = logging.getLogger("mcverify")

TOKEN_ROTATION_FAILURE = "Unable to rotate token"


@dataclass(frozen=True)
class LogFinding:
    pod: str
    line: str


def check_daemon_logs(
    core_api,
    settings: Optional[DaemonSettings] = None,
    *,
    needle: str = TOKEN_ROTATION_FAILURE,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> List[LogFinding]:
    """
    Scan the machine-config-daemon container logs of every daemon pod for
    `needle` (by default the service-account token rotation failure).
    """
    settings = settings or DaemonSettings()
    bus = bus or EventBus()
    ctx = run_ctx or new_ctx(env="sno", context=None)

    pods = core_api.list_namespaced_pod(settings.namespace, label_selector=settings.selector).items
    findings: List[LogFinding] = []

    for pod in pods:
        name = pod.metadata.name
        text = core_api.read_namespaced_pod_log(name, pod.metadata.namespace or settings.namespace, container=settings.container)
        hits = [LogFinding(pod=name, line=line) for line in (text or "").splitlines() if needle in line]
        for hit in hits:
            log.error("[daemon-logs] %s: %s", name, hit.line)
        bus.emit(DaemonLogScanned(pod=name, findings=len(hits), **stamp(ctx)))
        findings.extend(hits)

    log.info("[daemon-logs] scanned %d pods, %d findings", len(pods), len(findings))
    return findings
