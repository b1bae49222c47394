# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/config/loader.py

import logging
import os
from pathlib import Path
from typing import Iterator, Optional

import yaml

from .models import VerifierConfig

log = logging.getLogger("mcverify")

CONFIG_ENV = "MCVERIFY_CONFIG"
SECRETS_ENV = "MCVERIFY_SECRETS_FILE"


def _merge_into(target: dict, extra: dict) -> dict:
    """Nested update of `target` from `extra`. Empty values in `extra` never win."""
    for key, value in extra.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        elif value not in (None, ""):
            target[key] = value
    return target


def _secrets_candidates(config_path: Path) -> Iterator[Path]:
    explicit = os.environ.get(SECRETS_ENV)
    if explicit:
        # an explicit path replaces discovery
        yield Path(explicit)
        return
    yield config_path.parent / "secrets.yaml"


def _secrets_file(config_path: Path) -> Optional[Path]:
    for candidate in _secrets_candidates(config_path):
        if candidate.is_file():
            return candidate
        if os.environ.get(SECRETS_ENV):
            log.warning("%s=%s does not exist, skipping", SECRETS_ENV, candidate)
    return None


def _read_yaml(path: Path) -> dict:
    text = os.path.expandvars(path.read_text())
    return yaml.safe_load(text) or {}


def load_config(path: str | Path | None = None) -> VerifierConfig:
    """
    Load and validate an mcverify YAML config.

    The path falls back to $MCVERIFY_CONFIG; with neither, the defaults apply
    (pool ``master`` through the current kubeconfig).

    Secrets (``executor.ssh_password`` and the like) may sit in a
    ``secrets.yaml`` next to the config, or wherever $MCVERIFY_SECRETS_FILE
    points. Its keys mirror the config and are merged in before validation.
    ``${ENV_VAR}`` references are expanded in both files.
    """
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        return VerifierConfig()

    path = Path(path)
    data = _read_yaml(path)

    secrets = _secrets_file(path)
    if secrets is None:
        log.debug("No secrets file for %s", path)
    else:
        log.debug("Merging secrets from %s", secrets)
        _merge_into(data, _read_yaml(secrets))

    return VerifierConfig.model_validate(data)
