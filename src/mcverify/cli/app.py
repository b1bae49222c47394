# src/mcverify/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import typer

from mcverify.checks.daemon_logs import check_daemon_logs
from mcverify.cluster.pools import PoolStateReader
from mcverify.cluster.store import ConfigurationStore
from mcverify.config.loader import load_config
from mcverify.config.models import VerifierConfig
from mcverify.kube.client import KubeClients, build_clients
from mcverify.logging.log import init_logging
from mcverify.node.executor import DaemonPodExecutor, NodeExecutor, SSHNodeExecutor
from mcverify.node.facts import NodeFactVerifier
from mcverify.observers.console import ConsoleObserver
from mcverify.observers.dispatcher import EventBus
from mcverify.observers.events import DaemonStateChanged, new_ctx, stamp
from mcverify.observers.jsonfile import JsonFileObserver
from mcverify.observers.logger import LoggerObserver
from mcverify.scenarios.catalog import Scenario, all_scenarios
from mcverify.scenarios.runner import RunReport, RunnerSettings, ScenarioRunner
from mcverify.utils.retry import RetryPolicy
from mcverify.utils.ssh_runner import open_ssh


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Verify MachineConfig rollout and rollback on a single-node pool")


# ------------------------------------------------------------------------------
# Scenario selection
# ------------------------------------------------------------------------------

def resolve_scenario_plan(selection: Optional[str], catalog: Dict[str, Scenario]) -> List[Scenario]:
    """
    Resolve which scenarios to run from --scenarios.

    Rules:
    - No --scenarios → run everything, in catalog order
    - --scenarios all → run everything
    - Otherwise → run only the named scenarios, in catalog order
    """
    if not selection:
        return list(catalog.values())

    items = {i.strip() for i in selection.split(",") if i.strip()}
    if "all" in items:
        return list(catalog.values())

    unknown = items - set(catalog)
    if unknown:
        raise typer.BadParameter(
            f"Unknown scenarios: {', '.join(sorted(unknown))}\n"
            f"Valid scenarios: {', '.join(catalog)}"
        )

    return [s for name, s in catalog.items() if name in items]


# ------------------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------------------

def build_executor(cfg: VerifierConfig, clients: KubeClients) -> NodeExecutor:
    if cfg.executor.kind == "ssh":
        return SSHNodeExecutor(open_ssh(cfg.executor), timeout_seconds=cfg.executor.timeout_seconds)
    return DaemonPodExecutor(
        clients.core,
        namespace=cfg.daemon.namespace,
        selector=cfg.daemon.selector,
        container=cfg.daemon.container,
        timeout_seconds=cfg.executor.timeout_seconds,
    )


def build_runner(
    cfg: VerifierConfig,
    clients: KubeClients,
    executor: NodeExecutor,
    *,
    bus: EventBus,
    run_ctx: dict,
) -> ScenarioRunner:
    reader = PoolStateReader(
        clients.custom,
        clients.core,
        render_policy=RetryPolicy(
            interval_seconds=cfg.polling.interval_seconds,
            timeout_seconds=cfg.polling.render_timeout_seconds,
        ),
        on_transition=lambda node, old, new: bus.emit(
            DaemonStateChanged(node=node, old=old.value, new=new.value, **stamp(run_ctx))
        ),
    )
    return ScenarioRunner(
        ConfigurationStore(clients.custom),
        reader,
        NodeFactVerifier(executor),
        RunnerSettings.from_config(cfg),
        bus=bus,
        run_ctx=run_ctx,
    )


def _print_report(report: RunReport) -> None:
    for o in report.outcomes:
        color = typer.colors.GREEN if o.passed else typer.colors.RED
        typer.secho(f"{o.status:<7} {o.name} ({o.duration_s:.0f}s)", fg=color)
        if o.error:
            typer.echo(f"        {o.error}")
        for extra in o.errors:
            typer.echo(f"        also: {extra}")
        if o.cleanup_error:
            typer.secho(f"        cleanup: {o.cleanup_error}", fg=typer.colors.YELLOW)
    typer.echo(report.summary())


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("list-scenarios")
def list_scenarios(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="mcverify YAML config"),
):
    """Show the scenarios this harness knows about."""
    cfg = load_config(config)
    for name, scenario in all_scenarios(cfg.scenarios).items():
        reboot = " [no-reboot]" if scenario.expect_no_reboot else ""
        typer.echo(f"{name:<18}{scenario.description}{reboot}")


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="mcverify YAML config"),
    scenarios: Optional[str] = typer.Option(
        None, "--scenarios", "-s", help="Comma separated scenario names, or 'all'"
    ),
    events_file: Optional[Path] = typer.Option(None, "--events-file", help="Append events as JSON lines"),
    quiet_events: bool = typer.Option(False, "--quiet-events", help="Don't echo events to the console"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG output on the console"),
):
    """Apply each scenario's MachineConfig, verify, delete it and verify the rollback."""
    logger, run_id, log_path = init_logging(verbose=verbose)
    cfg = load_config(config)

    selection = scenarios or ",".join(cfg.scenarios.enabled)
    plan = resolve_scenario_plan(selection, all_scenarios(cfg.scenarios))
    logger.info("Scenarios: %s", ", ".join(s.name for s in plan))

    observers: list = [LoggerObserver(logger)]
    if not quiet_events:
        observers.append(ConsoleObserver())
    if events_file:
        observers.append(JsonFileObserver(events_file))
    bus = EventBus(observers)
    run_ctx = new_ctx(env=cfg.environment, context=cfg.kube.context, run_id=run_id)

    clients = build_clients(cfg.kube)
    executor = build_executor(cfg, clients)
    try:
        report = build_runner(cfg, clients, executor, bus=bus, run_ctx=run_ctx).run_all(plan)
    finally:
        if isinstance(executor, SSHNodeExecutor):
            executor.runner.close()

    _print_report(report)
    typer.echo(f"Full log: {log_path}")
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("check-daemon-logs")
def check_daemon_logs_cmd(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="mcverify YAML config"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Fail if any machine-config-daemon pod logged a token rotation failure."""
    logger, run_id, _ = init_logging(verbose=verbose)
    cfg = load_config(config)
    clients = build_clients(cfg.kube)

    bus = EventBus([LoggerObserver(logger)])
    findings = check_daemon_logs(
        clients.core,
        cfg.daemon,
        bus=bus,
        run_ctx=new_ctx(env=cfg.environment, context=cfg.kube.context, run_id=run_id),
    )
    for f in findings:
        typer.secho(f"{f.pod}: {f.line}", fg=typer.colors.RED)
    if findings:
        raise typer.Exit(code=1)
    typer.echo("No token rotation failures found")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
