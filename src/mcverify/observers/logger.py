from __future__ import annotations
import logging
from .events import BaseEvent, FAILURE_EVENTS


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts", "env", "context"))
        level = logging.WARNING if isinstance(event, FAILURE_EVENTS) else logging.DEBUG
        self.logger.log(level, "[EVENT] %s: %s", etype, msg)
