# src/mcverify/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single verification run
    env: str          # cluster label from config (e.g. "sno")
    context: Optional[str]  # kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": _now(),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


def stamp(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Same run context, fresh timestamp."""
    return {**ctx, "ts": _now()}


# ---------------------------------------------------------------------
# Scenario lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ScenarioStarted(BaseEvent):
    scenario: str
    pool: str
    baseline: str

@dataclass(frozen=True)
class ScenarioFinished(BaseEvent):
    scenario: str
    status: str       # "PASSED" | "FAILED"
    phase: str
    duration_ms: int
    error: Optional[str] = None


# ---------------------------------------------------------------------
# MachineConfig lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ConfigurationSubmitted(BaseEvent):
    scenario: str
    name: str
    kind: str

@dataclass(frozen=True)
class RenderedConfigResolved(BaseEvent):
    scenario: str
    name: str
    rendered: str

@dataclass(frozen=True)
class ConfigurationDeleted(BaseEvent):
    scenario: str
    name: str

@dataclass(frozen=True)
class CleanupFailedEvent(BaseEvent):
    scenario: str
    name: str
    error: str


# ---------------------------------------------------------------------
# Convergence waits
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ConvergenceStarted(BaseEvent):
    scenario: str
    pool: str
    target: str
    timeout_s: float

@dataclass(frozen=True)
class ConvergenceReached(BaseEvent):
    scenario: str
    pool: str
    target: str
    duration_ms: int

@dataclass(frozen=True)
class ConvergenceTimedOut(BaseEvent):
    scenario: str
    pool: str
    target: str
    error: str

@dataclass(frozen=True)
class DaemonStateChanged(BaseEvent):
    node: str
    old: str
    new: str


# ---------------------------------------------------------------------
# Node facts
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class FactsVerified(BaseEvent):
    scenario: str
    node: str
    stage: str        # "applied" | "rolled-back"
    probes: List[str]

@dataclass(frozen=True)
class FactsMismatched(BaseEvent):
    scenario: str
    node: str
    stage: str
    error: str


# ---------------------------------------------------------------------
# Run summary & standalone checks
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunSummary(BaseEvent):
    passed: int
    failed: int
    dirty: int        # scenarios whose cleanup failed

@dataclass(frozen=True)
class DaemonLogScanned(BaseEvent):
    pod: str
    findings: int


FAILURE_EVENTS = (ConvergenceTimedOut, FactsMismatched, CleanupFailedEvent)
SUCCESS_EVENTS = (ConvergenceReached, FactsVerified)
