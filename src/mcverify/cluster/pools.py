# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/cluster/pools.py
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from mcverify.cluster.state import (
    MACHINE_CONFIG_POOLS,
    MC_GROUP,
    MC_VERSION,
    NODE_ROLE_LABEL_PREFIX,
    DaemonState,
    NodeState,
    PoolConvergenceTarget,
    PoolStatus,
    can_transition,
    is_converged,
    pool_reached,
)
from mcverify.convergence.poller import poll_until
from mcverify.errors import (
    ClusterAPIError,
    ConvergenceTimeout,
    NodeDegraded,
    NodeSelectionError,
    PoolNotReady,
    RenderedConfigNotFound,
)
from mcverify.kube.client import API_ERRORS
from mcverify.utils.retry import RetryPolicy

log = logging.getLogger("mcverify")


class PoolStateReader:
    """
    Read-only view of MachineConfigPools and the nodes behind them.

    Every method except resolve_rendered_configuration is a single API read.
    """

    def __init__(
        self,
        custom_api,
        core_api,
        *,
        render_policy: Optional[RetryPolicy] = None,
        on_transition: Optional[Callable[[str, DaemonState, DaemonState], None]] = None,
    ):
        self.custom = custom_api
        self.core = core_api
        self.render_policy = render_policy or RetryPolicy(interval_seconds=2, timeout_seconds=300)
        self.on_transition = on_transition
        self._last_state: Dict[str, DaemonState] = {}

    # -------------------------------------------------------------------------
    # Pools
    # -------------------------------------------------------------------------

    def pool_status(self, pool: str) -> PoolStatus:
        try:
            obj = self.custom.get_cluster_custom_object(
                MC_GROUP, MC_VERSION, MACHINE_CONFIG_POOLS, pool
            )
        except API_ERRORS as e:
            raise ClusterAPIError(f"read of MachineConfigPool {pool}", e) from e
        return PoolStatus.from_object(obj)

    def current_pool_configuration(self, pool: str) -> str:
        status = self.pool_status(pool)
        if not status.status_rendered:
            raise PoolNotReady(pool, "no rendered configuration in status yet")
        return status.status_rendered

    def resolve_rendered_configuration(self, pool: str, change_name: str) -> str:
        """
        Block until the pool's spec renders a configuration sourced from
        `change_name` and return that rendered name.
        """
        found: Dict[str, str] = {}

        def rendered() -> bool:
            status = self.pool_status(pool)
            if change_name in status.spec_sources and status.spec_rendered:
                found["name"] = status.spec_rendered
                return True
            return False

        try:
            poll_until(rendered, self.render_policy, target=f"render of {change_name} in pool {pool}")
        except ConvergenceTimeout as e:
            raise RenderedConfigNotFound(pool, change_name, e.elapsed) from e

        log.debug("[pools] %s rendered into %s", change_name, found["name"])
        return found["name"]

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def node_state(self, role: str) -> NodeState:
        selector = f"{NODE_ROLE_LABEL_PREFIX}{role}"
        try:
            nodes = self.core.list_node(label_selector=selector).items
        except API_ERRORS as e:
            raise ClusterAPIError(f"list of nodes {selector}", e) from e
        if len(nodes) != 1:
            raise NodeSelectionError(role, [n.metadata.name for n in nodes])

        node = nodes[0]
        state = NodeState.from_annotations(node.metadata.name, node.metadata.annotations)
        self._track(state)
        return state

    def _track(self, state: NodeState) -> None:
        previous = self._last_state.get(state.name)
        self._last_state[state.name] = state.daemon_state
        if previous is None or previous is state.daemon_state:
            return

        log.debug("[pools] %s daemon state %s -> %s", state.name, previous.value, state.daemon_state.value)
        if not can_transition(previous, state.daemon_state):
            log.warning(
                "[pools] %s reported unexpected daemon transition %s -> %s",
                state.name, previous.value, state.daemon_state.value,
            )
        if self.on_transition:
            self.on_transition(state.name, previous, state.daemon_state)

    # -------------------------------------------------------------------------
    # Convergence predicate
    # -------------------------------------------------------------------------

    def pool_converged(
        self,
        target: PoolConvergenceTarget,
        role: str,
        *,
        fail_fast_on_degraded: bool = False,
    ) -> Callable[[], bool]:
        """
        Predicate for poll_until: the pool reports `target.rendered` and the
        single node runs it with daemon state Done.

        Any other observation is "not yet". The reason is raised so the poller
        can keep it as the last observed error.
        """

        def check() -> bool:
            node = self.node_state(role)
            # Only a failure to apply the target itself ends the wait early
            if (
                fail_fast_on_degraded
                and node.daemon_state.failed
                and node.desired_config == target.rendered
            ):
                raise NodeDegraded(node.name, node.daemon_state.value, node.reason)
            if not is_converged(node, target.rendered):
                raise RuntimeError(f"{node.describe()}, want {target.rendered}")

            pool = self.pool_status(target.pool)
            if not pool_reached(pool, target.rendered):
                raise RuntimeError(f"{pool.describe()}, want {target.rendered}")
            return True

        return check
