# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/mcverify/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "mcverify",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per run with every poll and exec at DEBUG; the console gets
    INFO, or DEBUG with --verbose. The run id is returned so events carry it.
    """
    run_id = str(uuid.uuid4())
    log_dir = base_dir or Path.home() / ".mcverify" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    started = datetime.now(timezone.utc)
    log_path = log_dir / f"{name}-{started:%Y%m%d-%H%M%S}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    _attach(logger, logging.FileHandler(log_path), logging.DEBUG)
    _attach(logger, logging.StreamHandler(), logging.DEBUG if verbose else logging.INFO)

    logger.info("mcverify run %s started, log file %s", run_id, log_path)
    return logger, run_id, log_path
