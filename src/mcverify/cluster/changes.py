# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/cluster/changes.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from mcverify.cluster.state import MC_GROUP, MC_VERSION, ROLE_LABEL

IGNITION_VERSION = "3.2.0"


def new_ign_config() -> Dict[str, Any]:
    """Empty Ignition config, the neutral base payload of every change."""
    return {"ignition": {"version": IGNITION_VERSION}}


def unique_name(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


@dataclass(frozen=True)
class ConfigurationChange:
    """
    One MachineConfig submitted by a scenario. Carries exactly one payload kind.
    """

    name: str
    role: str
    kernel_arguments: Tuple[str, ...] = ()
    kernel_type: Optional[str] = None
    extensions: Tuple[str, ...] = ()
    ssh_authorized_key: Optional[str] = None
    ssh_user: str = "core"

    def __post_init__(self):
        kinds = [
            bool(self.kernel_arguments),
            self.kernel_type is not None,
            bool(self.extensions),
            self.ssh_authorized_key is not None,
        ]
        if sum(kinds) != 1:
            raise ValueError(
                f"MachineConfig {self.name} must carry exactly one of kernel arguments, "
                f"kernel type, extensions or an authorized key"
            )

    @classmethod
    def with_kernel_arguments(cls, role: str, *args: str, prefix: str = "kargs") -> "ConfigurationChange":
        return cls(name=unique_name(prefix), role=role, kernel_arguments=tuple(args))

    @classmethod
    def with_kernel_type(cls, role: str, kernel_type: str, prefix: str = "kerneltype") -> "ConfigurationChange":
        return cls(name=unique_name(prefix), role=role, kernel_type=kernel_type)

    @classmethod
    def with_extensions(cls, role: str, *extensions: str, prefix: str = "extensions") -> "ConfigurationChange":
        return cls(name=unique_name(prefix), role=role, extensions=tuple(extensions))

    @classmethod
    def with_authorized_key(
        cls,
        role: str,
        key: str,
        *,
        user: str = "core",
        prefix: str = "authorized-key",
    ) -> "ConfigurationChange":
        return cls(name=unique_name(prefix), role=role, ssh_authorized_key=key, ssh_user=user)

    @property
    def kind(self) -> str:
        if self.kernel_arguments:
            return "kernelArguments"
        if self.kernel_type is not None:
            return "kernelType"
        if self.extensions:
            return "extensions"
        return "sshAuthorizedKey"

    def to_manifest(self) -> Dict[str, Any]:
        ign = new_ign_config()
        spec: Dict[str, Any] = {"config": ign}

        if self.kernel_arguments:
            spec["kernelArguments"] = list(self.kernel_arguments)
        elif self.kernel_type is not None:
            spec["kernelType"] = self.kernel_type
        elif self.extensions:
            spec["extensions"] = list(self.extensions)
        else:
            ign["passwd"] = {
                "users": [{"name": self.ssh_user, "sshAuthorizedKeys": [self.ssh_authorized_key]}]
            }

        return {
            "apiVersion": f"{MC_GROUP}/{MC_VERSION}",
            "kind": "MachineConfig",
            "metadata": {
                "name": self.name,
                "labels": {ROLE_LABEL: self.role},
            },
            "spec": spec,
        }
