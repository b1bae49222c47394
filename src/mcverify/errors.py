# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/errors.py
from __future__ import annotations

from typing import Optional, Sequence


class VerifierError(RuntimeError):
    """Base class for mcverify failures."""


class ScenarioError(VerifierError):
    """Fails the current scenario. Never crashes the run."""


class RenderedConfigNotFound(ScenarioError):
    def __init__(self, pool: str, change: str, elapsed: float):
        self.pool = pool
        self.change = change
        self.elapsed = elapsed
        super().__init__(
            f"pool {pool} never rendered a configuration including {change} "
            f"(waited {elapsed:.1f}s)"
        )


class ConvergenceTimeout(ScenarioError):
    def __init__(self, target: object, elapsed: float, last_error: Optional[BaseException] = None):
        self.target = target
        self.elapsed = elapsed
        self.last_error = last_error
        msg = f"{target} is still not converged, waited {elapsed:.1f}s"
        if last_error is not None:
            msg += f": {last_error}"
        super().__init__(msg)


class ExecFailed(ScenarioError):
    def __init__(
        self,
        node: str,
        argv: Sequence[str],
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.node = node
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        rc = "transport error" if returncode is None else f"rc={returncode}"
        super().__init__(
            f"command {' '.join(self.argv)!r} failed on node {node} ({rc}): {stderr.strip()}"
        )


class AssertionMismatch(ScenarioError):
    def __init__(self, probe: str, expected: str, observed: str, output: str = ""):
        self.probe = probe
        self.expected = expected
        self.observed = observed
        self.output = output
        msg = f"[{probe}] expected {expected}, observed {observed}"
        if output:
            msg += f"; output: {output.strip()!r}"
        super().__init__(msg)


class NodeSelectionError(ScenarioError):
    def __init__(self, role: str, found: Sequence[str]):
        self.role = role
        self.found = list(found)
        super().__init__(
            f"expected exactly one node with role {role}, found {len(self.found)}: {self.found}"
        )


class ClusterAPIError(ScenarioError):
    """A single API call the scenario depends on failed (HTTP error or transport)."""

    def __init__(self, action: str, cause: BaseException):
        self.action = action
        self.cause = cause
        super().__init__(f"{action} failed: {cause.__class__.__name__}: {cause}")


class PoolNotReady(ScenarioError):
    def __init__(self, pool: str, detail: str):
        self.pool = pool
        self.detail = detail
        super().__init__(f"pool {pool} is not ready: {detail}")


class NodeDegraded(ScenarioError):
    """Raised by the convergence predicate only when fail-fast is enabled."""

    def __init__(self, node: str, state: str, reason: str = ""):
        self.node = node
        self.state = state
        self.reason = reason
        msg = f"node {node} reports daemon state {state}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CleanupFailed(VerifierError):
    """Deleting our own MachineConfig failed. Reported, never fatal to the verdict."""

    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(f"failed to delete MachineConfig {name}; cluster state may be dirty: {cause}")
