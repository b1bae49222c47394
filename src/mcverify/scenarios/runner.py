# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/scenarios/runner.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from mcverify.cluster.pools import PoolStateReader
from mcverify.cluster.state import PoolConvergenceTarget
from mcverify.cluster.store import ConfigurationStore
from mcverify.config.models import VerifierConfig
from mcverify.convergence.poller import poll_until
from mcverify.errors import (
    AssertionMismatch,
    ConvergenceTimeout,
    ExecFailed,
    NodeDegraded,
    ScenarioError,
)
from mcverify.node.facts import NodeFactVerifier
from mcverify.observers.dispatcher import EventBus
from mcverify.observers.events import (
    CleanupFailedEvent,
    ConfigurationDeleted,
    ConfigurationSubmitted,
    ConvergenceReached,
    ConvergenceStarted,
    ConvergenceTimedOut,
    FactsMismatched,
    FactsVerified,
    RenderedConfigResolved,
    RunSummary,
    ScenarioFinished,
    ScenarioStarted,
    new_ctx,
    stamp,
)
from mcverify.scenarios.catalog import Scenario
from mcverify.utils.retry import RetryPolicy

log = logging.getLogger("mcverify")


class Phase(str, Enum):
    INIT = "Init"
    SUBMITTED = "Submitted"
    AWAITING_RENDER = "AwaitingRender"
    AWAITING_CONVERGENCE = "AwaitingConvergence"
    VERIFIED = "Verified"
    ROLLBACK_SUBMITTED = "RollbackSubmitted"
    AWAITING_ROLLBACK_CONVERGENCE = "AwaitingRollbackConvergence"
    ROLLBACK_VERIFIED = "RollbackVerified"
    DONE = "Done"


@dataclass
class RunnerSettings:
    pool: str = "master"
    role: str = "master"
    convergence: RetryPolicy = field(default_factory=lambda: RetryPolicy(interval_seconds=2, timeout_seconds=1200))
    fail_fast_on_degraded: bool = False

    @classmethod
    def from_config(cls, cfg: VerifierConfig, **policy_overrides) -> "RunnerSettings":
        return cls(
            pool=cfg.pool.pool,
            role=cfg.pool.role,
            convergence=RetryPolicy(
                interval_seconds=cfg.polling.interval_seconds,
                timeout_seconds=cfg.polling.timeout_seconds,
                **policy_overrides,
            ),
            fail_fast_on_degraded=cfg.polling.fail_fast_on_degraded,
        )


@dataclass
class ScenarioOutcome:
    name: str
    status: str = "FAILED"            # "PASSED" | "FAILED"
    phase: Phase = Phase.INIT         # last phase entered
    failed_phase: Optional[Phase] = None
    change: Optional[str] = None
    baseline: Optional[str] = None    # rendered config before the change
    rendered: Optional[str] = None    # rendered config including the change
    error: Optional[str] = None       # first failure, decides the verdict
    errors: List[str] = field(default_factory=list)   # failures after the first one
    cleanup_error: Optional[str] = None
    duration_s: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status == "PASSED"


@dataclass
class RunReport:
    outcomes: List[ScenarioOutcome] = field(default_factory=list)

    def add(self, outcome: ScenarioOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def failed(self) -> List[ScenarioOutcome]:
        return [o for o in self.outcomes if not o.passed]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        passed = sum(1 for o in self.outcomes if o.passed)
        dirty = sum(1 for o in self.outcomes if o.cleanup_error)
        text = f"PASSED={passed} FAILED={len(self.failed)}"
        if dirty:
            text += f" DIRTY={dirty}"
        return text


class ScenarioRunner:
    """
    Drives one scenario at a time through

        Init -> Submitted -> AwaitingRender -> AwaitingConvergence -> Verified
        -> RollbackSubmitted -> AwaitingRollbackConvergence -> RollbackVerified -> Done

    The MachineConfig is deleted on every exit path and the rollback wait
    runs even when the apply half already failed, so the next scenario
    starts from the baseline rendered config.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        reader: PoolStateReader,
        verifier: NodeFactVerifier,
        settings: Optional[RunnerSettings] = None,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict] = None,
    ):
        self.store = store
        self.reader = reader
        self.verifier = verifier
        self.settings = settings or RunnerSettings()
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="sno", context=None)

    def _ctx(self) -> Dict:
        return stamp(self.run_ctx)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_all(self, scenarios: Iterable[Scenario]) -> RunReport:
        report = RunReport()
        for scenario in scenarios:
            report.add(self.run(scenario))

        dirty = sum(1 for o in report.outcomes if o.cleanup_error)
        passed = len(report.outcomes) - len(report.failed)
        self.bus.emit(RunSummary(passed=passed, failed=len(report.failed), dirty=dirty, **self._ctx()))
        log.info("Run finished: %s", report.summary())
        return report

    def run(self, scenario: Scenario) -> ScenarioOutcome:
        outcome = ScenarioOutcome(name=scenario.name)
        t0 = time.monotonic()
        log.info("=== Scenario %s ===", scenario.name)

        try:
            self._run(scenario, outcome)
        except Exception as e:
            self._fail(outcome, e)

        self._finish(outcome, t0)
        return outcome

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _run(self, scenario: Scenario, outcome: ScenarioOutcome) -> None:
        pool, role = self.settings.pool, self.settings.role
        node = self.reader.node_state(role).name

        baseline_uptime = self.verifier.uptime(node) if scenario.expect_no_reboot else None
        if baseline_uptime is not None:
            log.info("Node %s initial uptime: %.2f", node, baseline_uptime)

        # Snapshot before creating anything so the baseline can't include our change
        old_rendered = self.reader.current_pool_configuration(pool)
        outcome.baseline = old_rendered
        self.bus.emit(ScenarioStarted(scenario=scenario.name, pool=pool, baseline=old_rendered, **self._ctx()))

        change = scenario.build_change(role)
        outcome.change = change.name
        applied_uptime = baseline_uptime

        handle = self.store.submitted(
            change,
            on_deleted=lambda name: self.bus.emit(
                ConfigurationDeleted(scenario=scenario.name, name=name, **self._ctx())
            ),
            on_cleanup_failed=lambda err: self.bus.emit(
                CleanupFailedEvent(scenario=scenario.name, name=err.name, error=str(err.cause), **self._ctx())
            ),
        )
        outcome.phase = Phase.SUBMITTED
        try:
            with handle:
                self.bus.emit(
                    ConfigurationSubmitted(scenario=scenario.name, name=change.name, kind=change.kind, **self._ctx())
                )
                try:
                    applied_uptime = self._apply(scenario, outcome, node, baseline_uptime)
                except Exception as e:
                    self._fail(outcome, e)
        except Exception as e:
            # create failed; the rollback wait below still confirms the baseline
            self._fail(outcome, e)

        outcome.phase = Phase.ROLLBACK_SUBMITTED
        if handle.cleanup_error is not None:
            outcome.cleanup_error = str(handle.cleanup_error)

        try:
            self._rollback(scenario, outcome, node, old_rendered, applied_uptime)
        except Exception as e:
            self._fail(outcome, e)
            return

        if outcome.error is None:
            outcome.phase = Phase.DONE

    def _apply(
        self,
        scenario: Scenario,
        outcome: ScenarioOutcome,
        node: str,
        baseline_uptime: Optional[float],
    ) -> Optional[float]:
        pool = self.settings.pool

        outcome.phase = Phase.AWAITING_RENDER
        rendered = self.reader.resolve_rendered_configuration(pool, outcome.change)
        outcome.rendered = rendered
        self.bus.emit(
            RenderedConfigResolved(scenario=scenario.name, name=outcome.change, rendered=rendered, **self._ctx())
        )

        outcome.phase = Phase.AWAITING_CONVERGENCE
        self._wait(scenario, PoolConvergenceTarget(pool, rendered))

        uptime = self._verify(scenario, node, "applied", present=True, uptime_floor=baseline_uptime)
        outcome.phase = Phase.VERIFIED
        return uptime

    def _rollback(
        self,
        scenario: Scenario,
        outcome: ScenarioOutcome,
        node: str,
        old_rendered: str,
        applied_uptime: Optional[float],
    ) -> None:
        outcome.phase = Phase.AWAITING_ROLLBACK_CONVERGENCE
        self._wait(scenario, PoolConvergenceTarget(self.settings.pool, old_rendered))

        self._verify(scenario, node, "rolled-back", present=False, uptime_floor=applied_uptime)
        outcome.phase = Phase.ROLLBACK_VERIFIED

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _wait(self, scenario: Scenario, target: PoolConvergenceTarget) -> None:
        policy = self.settings.convergence
        if self.settings.fail_fast_on_degraded:
            policy = policy.fatal_on(NodeDegraded)

        self.bus.emit(ConvergenceStarted(
            scenario=scenario.name,
            pool=target.pool,
            target=target.rendered,
            timeout_s=policy.timeout_seconds,
            **self._ctx(),
        ))
        log.info("Waiting for %s", target)

        predicate = self.reader.pool_converged(
            target,
            self.settings.role,
            fail_fast_on_degraded=self.settings.fail_fast_on_degraded,
        )
        try:
            elapsed = poll_until(predicate, policy, target=target)
        except (ConvergenceTimeout, NodeDegraded) as e:
            self.bus.emit(ConvergenceTimedOut(
                scenario=scenario.name, pool=target.pool, target=target.rendered, error=str(e), **self._ctx()
            ))
            raise

        self.bus.emit(ConvergenceReached(
            scenario=scenario.name,
            pool=target.pool,
            target=target.rendered,
            duration_ms=int(elapsed * 1000),
            **self._ctx(),
        ))
        log.info("%s reached in %.1fs", target, elapsed)

    def _verify(
        self,
        scenario: Scenario,
        node: str,
        stage: str,
        *,
        present: bool,
        uptime_floor: Optional[float],
    ) -> Optional[float]:
        """Run every probe; with a no-reboot scenario also check uptime didn't go backwards."""
        uptime = uptime_floor
        try:
            for probe in scenario.probes:
                if present:
                    self.verifier.verify_present(node, probe)
                else:
                    self.verifier.verify_absent(node, probe)
            if scenario.expect_no_reboot and uptime_floor is not None:
                label = "while applying" if present else "during rollback"
                uptime = self.verifier.verify_uptime_monotonic(node, uptime_floor, label)
        except (AssertionMismatch, ExecFailed) as e:
            self.bus.emit(FactsMismatched(scenario=scenario.name, node=node, stage=stage, error=str(e), **self._ctx()))
            raise

        self.bus.emit(FactsVerified(
            scenario=scenario.name,
            node=node,
            stage=stage,
            probes=[p.name for p in scenario.probes],
            **self._ctx(),
        ))
        return uptime

    def _fail(self, outcome: ScenarioOutcome, exc: BaseException) -> None:
        if outcome.error is None:
            outcome.error = f"{exc.__class__.__name__}: {exc}"
            outcome.failed_phase = outcome.phase
            log.error(
                "[%s] failed in %s: %s", outcome.name, outcome.phase.value, exc,
                exc_info=not isinstance(exc, ScenarioError),
            )
        else:
            outcome.errors.append(f"{exc.__class__.__name__}: {exc}")
            log.error(
                "[%s] also failed in %s: %s", outcome.name, outcome.phase.value, exc,
                exc_info=not isinstance(exc, ScenarioError),
            )

    def _finish(self, outcome: ScenarioOutcome, t0: float) -> None:
        outcome.duration_s = time.monotonic() - t0
        outcome.status = "PASSED" if outcome.error is None else "FAILED"
        if outcome.cleanup_error:
            log.warning("[%s] %s", outcome.name, outcome.cleanup_error)
        self.bus.emit(ScenarioFinished(
            scenario=outcome.name,
            status=outcome.status,
            phase=(outcome.failed_phase or outcome.phase).value,
            duration_ms=int(outcome.duration_s * 1000),
            error=outcome.error,
            **self._ctx(),
        ))
        log.info("[%s] %s in %.1fs", outcome.name, outcome.status, outcome.duration_s)
