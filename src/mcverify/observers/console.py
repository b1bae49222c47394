# src/mcverify/observers/console.py
import typer

from .events import BaseEvent, FAILURE_EVENTS, SUCCESS_EVENTS

_SKIP = ("ts", "run_id", "env", "context")


class ConsoleObserver:
    """One line per event; failures red, milestones green."""

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in _SKIP)
        color = None
        if isinstance(event, FAILURE_EVENTS):
            color = typer.colors.RED
        elif isinstance(event, SUCCESS_EVENTS):
            color = typer.colors.GREEN
        typer.secho(f"[{d['ts']}] {k} {data}", fg=color)
