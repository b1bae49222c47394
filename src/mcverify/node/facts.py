# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/node/facts.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from mcverify.errors import AssertionMismatch
from mcverify.node.executor import NodeExecutor
from mcverify.node.kargs import cmdline_has

log = logging.getLogger("mcverify")

CMDLINE = ("cat", "/proc/cmdline")
UPTIME = ("cat", "/proc/uptime")


def _substring(output: str, token: str) -> bool:
    return token in output


MATCHERS: Dict[str, Callable[[str, str], bool]] = {
    "substring": _substring,
    "kernel-args": cmdline_has,
}


@dataclass(frozen=True)
class FactProbe:
    """A read-only command and the tokens its output must (not) contain."""

    name: str
    argv: Tuple[str, ...]
    tokens: Tuple[str, ...]
    matcher: str = "substring"

    def __post_init__(self):
        if self.matcher not in MATCHERS:
            raise ValueError(f"unknown matcher {self.matcher!r}")

    def found(self, output: str) -> List[str]:
        match = MATCHERS[self.matcher]
        return [t for t in self.tokens if match(output, t)]


def parse_uptime(output: str) -> float:
    """Seconds since boot, the first field of /proc/uptime."""
    fields = output.split()
    if not fields:
        raise ValueError(f"empty uptime output: {output!r}")
    return float(fields[0])


class NodeFactVerifier:
    def __init__(self, executor: NodeExecutor):
        self.executor = executor

    def run(self, node: str, *argv: str) -> str:
        return self.executor.exec(node, list(argv))

    def uptime(self, node: str) -> float:
        output = self.run(node, *UPTIME)
        try:
            return parse_uptime(output)
        except ValueError as e:
            raise AssertionMismatch("uptime", "a number of seconds", repr(output)) from e

    def verify_present(self, node: str, probe: FactProbe) -> str:
        output = self.run(node, *probe.argv)
        found = probe.found(output)
        missing = [t for t in probe.tokens if t not in found]
        if missing:
            raise AssertionMismatch(
                probe.name,
                f"all of {list(probe.tokens)} on node {node}",
                f"missing {missing}",
                output,
            )
        log.info("[facts] Node %s has expected %s", node, probe.name)
        return output

    def verify_absent(self, node: str, probe: FactProbe) -> str:
        output = self.run(node, *probe.argv)
        found = probe.found(output)
        if found:
            raise AssertionMismatch(
                probe.name,
                f"none of {list(probe.tokens)} on node {node} after rollback",
                f"still present {found}",
                output,
            )
        log.info("[facts] Node %s has no %s left", node, probe.name)
        return output

    def verify_uptime_monotonic(self, node: str, before: float, label: str) -> float:
        """A reboot resets uptime near zero, so a lower reading means one happened."""
        now = self.uptime(node)
        if now < before:
            raise AssertionMismatch(
                "uptime",
                f"no reboot {label} (uptime >= {before:.2f}s)",
                f"node {node} uptime decreased to {now:.2f}s",
            )
        log.info("[facts] Node %s didn't reboot %s, uptime %.2f -> %.2f", node, label, before, now)
        return now
