# src/mcverify/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import Iterable, Optional
from .events import BaseEvent

log = logging.getLogger("mcverify")


class EventBus:
    """Fans each event out to every observer, in registration order."""

    def __init__(self, observers: Optional[Iterable] = None):
        self._observers = list(observers or [])

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception as e:
                # a broken observer never fails a verification run
                log.debug("observer %r dropped %s: %s", ob, type(event).__name__, e)
