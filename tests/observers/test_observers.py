import logging

from mcverify.observers.console import ConsoleObserver
from mcverify.observers.dispatcher import EventBus
from mcverify.observers.events import (
    ConvergenceTimedOut,
    DaemonStateChanged,
    RunSummary,
    new_ctx,
    stamp,
)
from mcverify.observers.jsonfile import JsonFileObserver
from mcverify.observers.logger import LoggerObserver


CTX = new_ctx(env="sno", context="admin", run_id="run-1")


def test_stamp_keeps_run_context():
    ctx = stamp(CTX)
    assert ctx["run_id"] == "run-1"
    assert ctx["env"] == "sno"
    assert ctx["context"] == "admin"


def test_new_ctx_generates_run_id():
    assert new_ctx(env="sno", context=None)["run_id"]


def test_bus_survives_broken_observer():
    seen = []

    class Broken:
        def notify(self, ev):
            raise RuntimeError("disk full")

    class Good:
        def notify(self, ev):
            seen.append(ev)

    EventBus([Broken(), Good()]).emit(RunSummary(passed=1, failed=0, dirty=0, **stamp(CTX)))
    assert len(seen) == 1


def test_json_file_observer_appends_lines(tmp_path):
    path = tmp_path / "events" / "run.jsonl"
    ob = JsonFileObserver(path)
    ob.notify(DaemonStateChanged(node="sno-0", old="Done", new="Working", **stamp(CTX)))
    ob.notify(RunSummary(passed=3, failed=1, dirty=0, **stamp(CTX)))

    records = ob.read()
    assert [r["type"] for r in records] == ["DaemonStateChanged", "RunSummary"]
    assert records[0]["new"] == "Working"
    assert records[1]["run_id"] == "run-1"


def test_logger_observer_levels(caplog):
    logger = logging.getLogger("mcverify.test-events")
    ob = LoggerObserver(logger)

    with caplog.at_level(logging.DEBUG, logger="mcverify.test-events"):
        ob.notify(ConvergenceTimedOut(scenario="kernel-type", pool="master", target="r-1", error="late", **stamp(CTX)))
        ob.notify(RunSummary(passed=1, failed=0, dirty=0, **stamp(CTX)))

    levels = [r.levelno for r in caplog.records]
    assert levels == [logging.WARNING, logging.DEBUG]
    assert "ConvergenceTimedOut" in caplog.records[0].getMessage()


def test_console_observer_prints_fields(capsys):
    ConsoleObserver().notify(DaemonStateChanged(node="sno-0", old="Working", new="Done", **stamp(CTX)))
    out = capsys.readouterr().out
    assert "DaemonStateChanged" in out
    assert "node=sno-0" in out
    assert "run_id" not in out
