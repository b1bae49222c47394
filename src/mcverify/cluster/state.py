# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/cluster/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

MC_GROUP = "machineconfiguration.openshift.io"
MC_VERSION = "v1"
MACHINE_CONFIGS = "machineconfigs"
MACHINE_CONFIG_POOLS = "machineconfigpools"

CURRENT_CONFIG_ANNOTATION = "machineconfiguration.openshift.io/currentConfig"
DESIRED_CONFIG_ANNOTATION = "machineconfiguration.openshift.io/desiredConfig"
STATE_ANNOTATION = "machineconfiguration.openshift.io/state"
REASON_ANNOTATION = "machineconfiguration.openshift.io/reason"

ROLE_LABEL = "machineconfiguration.openshift.io/role"
NODE_ROLE_LABEL_PREFIX = "node-role.kubernetes.io/"


class DaemonState(str, Enum):
    DONE = "Done"
    WORKING = "Working"
    DEGRADED = "Degraded"
    UNRECONCILABLE = "Unreconcilable"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DaemonState":
        for state in cls:
            if state.value == value:
                return state
        return cls.UNKNOWN

    @property
    def failed(self) -> bool:
        return self in (DaemonState.DEGRADED, DaemonState.UNRECONCILABLE)


# Every state maps to the states the daemon may report next. Staying put is
# always allowed (a poll can land between writes).
TRANSITIONS: Dict[DaemonState, FrozenSet[DaemonState]] = {
    DaemonState.UNKNOWN: frozenset(DaemonState),
    DaemonState.DONE: frozenset({DaemonState.DONE, DaemonState.WORKING, DaemonState.DEGRADED}),
    DaemonState.WORKING: frozenset({
        DaemonState.WORKING,
        DaemonState.DONE,
        DaemonState.DEGRADED,
        DaemonState.UNRECONCILABLE,
    }),
    DaemonState.DEGRADED: frozenset({DaemonState.DEGRADED, DaemonState.WORKING, DaemonState.DONE}),
    DaemonState.UNRECONCILABLE: frozenset({
        DaemonState.UNRECONCILABLE,
        DaemonState.WORKING,
        DaemonState.DONE,
    }),
}


def can_transition(old: DaemonState, new: DaemonState) -> bool:
    return new in TRANSITIONS[old] or new is DaemonState.UNKNOWN


@dataclass(frozen=True)
class NodeState:
    name: str
    current_config: Optional[str]
    desired_config: Optional[str]
    daemon_state: DaemonState
    reason: str = ""
    annotations: Dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def from_annotations(cls, name: str, annotations: Optional[Dict[str, str]]) -> "NodeState":
        annotations = dict(annotations or {})
        return cls(
            name=name,
            current_config=annotations.get(CURRENT_CONFIG_ANNOTATION),
            desired_config=annotations.get(DESIRED_CONFIG_ANNOTATION),
            daemon_state=DaemonState.parse(annotations.get(STATE_ANNOTATION)),
            reason=annotations.get(REASON_ANNOTATION, ""),
            annotations=annotations,
        )

    def describe(self) -> str:
        return (
            f"node {self.name} current={self.current_config} "
            f"desired={self.desired_config} state={self.daemon_state.value}"
        )


@dataclass(frozen=True)
class PoolStatus:
    name: str
    spec_rendered: Optional[str]
    spec_sources: List[str]
    status_rendered: Optional[str]
    updated: Optional[bool]

    @classmethod
    def from_object(cls, obj: dict) -> "PoolStatus":
        spec_cfg = (obj.get("spec") or {}).get("configuration") or {}
        status = obj.get("status") or {}
        status_cfg = status.get("configuration") or {}

        updated = None
        for cond in status.get("conditions") or []:
            if cond.get("type") == "Updated":
                updated = cond.get("status") == "True"

        return cls(
            name=(obj.get("metadata") or {}).get("name", "?"),
            spec_rendered=spec_cfg.get("name"),
            spec_sources=[s.get("name") for s in spec_cfg.get("source") or [] if s.get("name")],
            status_rendered=status_cfg.get("name"),
            updated=updated,
        )

    def describe(self) -> str:
        return (
            f"pool {self.name} spec={self.spec_rendered} "
            f"status={self.status_rendered} updated={self.updated}"
        )


@dataclass(frozen=True)
class PoolConvergenceTarget:
    pool: str
    rendered: str

    def __str__(self) -> str:
        return f"pool {self.pool} -> {self.rendered}"


def is_converged(node: NodeState, target: str) -> bool:
    """The node runs `target` and the daemon says it is done. Neither alone counts."""
    return node.current_config == target and node.daemon_state is DaemonState.DONE


def pool_reached(pool: PoolStatus, target: str) -> bool:
    if pool.status_rendered != target:
        return False
    # Pools without conditions yet are judged on the rendered name alone
    return pool.updated is not False
