# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/scenarios/catalog.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from mcverify.cluster.changes import ConfigurationChange
from mcverify.config.models import ScenarioSettings
from mcverify.node.facts import CMDLINE, FactProbe
from mcverify.node.kargs import parse_kernel_arguments


@dataclass(frozen=True)
class Scenario:
    name: str
    build_change: Callable[[str], ConfigurationChange]   # role -> fresh change
    probes: Tuple[FactProbe, ...]
    expect_no_reboot: bool = False
    description: str = ""


KERNEL_ARGUMENTS = ("foo=bar", "foo=baz", " baz=test bar=hello world")
KERNEL_TYPE = "realtime"
EXTENSIONS = ("usbguard", "kernel-devel")
EXTENSION_PACKAGES = ("usbguard", "kernel-devel", "kernel-headers")
TEST_SSH_KEY = "test adding authorized key without node reboot"


def kernel_arguments() -> Scenario:
    return Scenario(
        name="kernel-arguments",
        build_change=lambda role: ConfigurationChange.with_kernel_arguments(role, *KERNEL_ARGUMENTS),
        probes=(
            FactProbe(
                name="kernel arguments",
                argv=CMDLINE,
                tokens=tuple(parse_kernel_arguments(KERNEL_ARGUMENTS)),
                matcher="kernel-args",
            ),
        ),
        description="extra kernel arguments land on /proc/cmdline and go away on rollback",
    )


def kernel_type() -> Scenario:
    return Scenario(
        name="kernel-type",
        build_change=lambda role: ConfigurationChange.with_kernel_type(role, KERNEL_TYPE),
        probes=(
            FactProbe(
                name="realtime kernel",
                argv=("rpm", "-qa", "kernel-rt-core"),
                tokens=("kernel-rt-core",),
            ),
        ),
        description="switching to the realtime kernel installs kernel-rt-core",
    )


def extensions() -> Scenario:
    return Scenario(
        name="extensions",
        build_change=lambda role: ConfigurationChange.with_extensions(role, *EXTENSIONS),
        probes=(
            FactProbe(
                name="extensions",
                argv=("rpm", "-qa", *EXTENSION_PACKAGES),
                tokens=EXTENSION_PACKAGES,
            ),
        ),
        description="usbguard and kernel-devel extensions (with kernel-headers) get layered",
    )


def no_reboot(authorized_keys_path: str = "/home/core/.ssh/authorized_keys") -> Scenario:
    return Scenario(
        name="no-reboot",
        build_change=lambda role: ConfigurationChange.with_authorized_key(role, TEST_SSH_KEY),
        probes=(
            FactProbe(
                name="authorized key",
                argv=("cat", authorized_keys_path),
                tokens=(TEST_SSH_KEY,),
            ),
        ),
        expect_no_reboot=True,
        description="adding an SSH key applies and rolls back without rebooting the node",
    )


def all_scenarios(settings: Optional[ScenarioSettings] = None) -> Dict[str, Scenario]:
    settings = settings or ScenarioSettings()
    scenarios: List[Scenario] = [
        kernel_arguments(),
        kernel_type(),
        extensions(),
        no_reboot(settings.authorized_keys_path),
    ]
    return {s.name: s for s in scenarios}
