# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/config/models.py

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator


class KubeSettings(BaseModel):
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: bool = False


class PoolSettings(BaseModel):
    pool: str = "master"     # MachineConfigPool name
    role: str = "master"     # MachineConfig role label / node-role label


class DaemonSettings(BaseModel):
    namespace: str = "openshift-machine-config-operator"
    selector: str = "k8s-app=machine-config-daemon"
    container: str = "machine-config-daemon"


class PollingSettings(BaseModel):
    interval_seconds: float = Field(2.0, gt=0)
    timeout_seconds: float = Field(1200.0, ge=0)          # pool/node convergence
    render_timeout_seconds: float = Field(300.0, ge=0)    # change picked up by the renderer
    fail_fast_on_degraded: bool = False


class ExecutorSettings(BaseModel):
    kind: Literal["daemon-pod", "ssh"] = "daemon-pod"
    timeout_seconds: int = 60

    # ssh only
    ssh_host: Optional[str] = None
    ssh_port: int = 22
    ssh_user: str = "core"
    ssh_password: Optional[str] = None
    ssh_key_path: Optional[str] = None

    @model_validator(mode="after")
    def _ssh_needs_host(self):
        if self.kind == "ssh" and not self.ssh_host:
            raise ValueError("executor.ssh_host is required when executor.kind is 'ssh'")
        return self


class ScenarioSettings(BaseModel):
    enabled: List[str] = Field(default_factory=list)     # empty = all
    authorized_keys_path: str = "/home/core/.ssh/authorized_keys"


class VerifierConfig(BaseModel):
    environment: str = "sno"
    kube: KubeSettings = KubeSettings()
    pool: PoolSettings = PoolSettings()
    daemon: DaemonSettings = DaemonSettings()
    polling: PollingSettings = PollingSettings()
    executor: ExecutorSettings = ExecutorSettings()
    scenarios: ScenarioSettings = ScenarioSettings()
