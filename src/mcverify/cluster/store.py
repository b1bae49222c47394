# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/cluster/store.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from kubernetes.client.exceptions import ApiException

from mcverify.cluster.changes import ConfigurationChange
from mcverify.cluster.state import MACHINE_CONFIGS, MC_GROUP, MC_VERSION
from mcverify.errors import CleanupFailed, ClusterAPIError
from mcverify.kube.client import API_ERRORS
from mcverify.utils.retry import RetryError, retry

log = logging.getLogger("mcverify")


class ConfigurationStore:
    """
    Create/get/delete of MachineConfig objects owned by this harness.
    """

    def __init__(
        self,
        custom_api,
        *,
        delete_retries: int = 3,
        delete_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.custom = custom_api
        self.delete_retries = delete_retries
        self.delete_delay = delete_delay
        self.sleep = sleep

    def create(self, change: ConfigurationChange) -> None:
        try:
            self.custom.create_cluster_custom_object(
                MC_GROUP, MC_VERSION, MACHINE_CONFIGS, change.to_manifest()
            )
        except API_ERRORS as e:
            raise ClusterAPIError(f"create of MachineConfig {change.name}", e) from e
        log.info("[store] Created MachineConfig %s (%s)", change.name, change.kind)

    def get(self, name: str) -> Optional[dict]:
        try:
            return self.custom.get_cluster_custom_object(MC_GROUP, MC_VERSION, MACHINE_CONFIGS, name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def delete(self, name: str) -> None:
        """Delete with retries. An object that is already gone counts as deleted."""

        @retry(
            retries=self.delete_retries,
            delay=self.delete_delay,
            on_retry=lambda attempt, exc: log.debug(
                "[store] delete %s attempt %d failed: %s", name, attempt, exc
            ),
            sleep=self.sleep,
        )
        def _delete() -> None:
            try:
                self.custom.delete_cluster_custom_object(MC_GROUP, MC_VERSION, MACHINE_CONFIGS, name)
            except ApiException as e:
                if e.status != 404:
                    raise
                log.debug("[store] MachineConfig %s already deleted", name)

        _delete()
        log.info("[store] Deleted MachineConfig %s", name)

    def submitted(
        self,
        change: ConfigurationChange,
        on_deleted: Optional[Callable[[str], None]] = None,
        on_cleanup_failed: Optional[Callable[[CleanupFailed], None]] = None,
    ) -> "SubmittedChange":
        return SubmittedChange(self, change, on_deleted=on_deleted, on_cleanup_failed=on_cleanup_failed)


class SubmittedChange:
    """
    Holds a created MachineConfig for the duration of a `with` block and
    deletes it on every exit path. Delete failures end up in `cleanup_error`
    instead of masking whatever happened inside the block.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        change: ConfigurationChange,
        *,
        on_deleted: Optional[Callable[[str], None]] = None,
        on_cleanup_failed: Optional[Callable[[CleanupFailed], None]] = None,
    ):
        self.store = store
        self.change = change
        self.on_deleted = on_deleted
        self.on_cleanup_failed = on_cleanup_failed
        self.created = False
        self.cleanup_error: Optional[CleanupFailed] = None

    def __enter__(self) -> "SubmittedChange":
        try:
            self.store.create(self.change)
        except ClusterAPIError:
            # the server may have stored it before the connection dropped
            self._delete(announce=False)
            raise
        self.created = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._delete()
        return False

    def _delete(self, *, announce: bool = True) -> None:
        try:
            self.store.delete(self.change.name)
        except Exception as e:
            cause = e.__cause__ if isinstance(e, RetryError) and e.__cause__ else e
            self.cleanup_error = CleanupFailed(self.change.name, cause)
            log.error("[store] %s", self.cleanup_error)
            if self.on_cleanup_failed:
                self.on_cleanup_failed(self.cleanup_error)
        else:
            if announce and self.on_deleted:
                self.on_deleted(self.change.name)
