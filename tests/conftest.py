# tests/conftest.py
from __future__ import annotations

import types
from typing import Dict, FrozenSet, List, Optional

import pytest
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError, ProtocolError

from mcverify.cluster.pools import PoolStateReader
from mcverify.cluster.state import (
    CURRENT_CONFIG_ANNOTATION,
    DESIRED_CONFIG_ANNOTATION,
    MACHINE_CONFIG_POOLS,
    MACHINE_CONFIGS,
    STATE_ANNOTATION,
)
from mcverify.cluster.store import ConfigurationStore
from mcverify.errors import ExecFailed
from mcverify.node.facts import NodeFactVerifier
from mcverify.observers.dispatcher import EventBus
from mcverify.scenarios.runner import RunnerSettings, ScenarioRunner
from mcverify.utils.retry import RetryPolicy

BASE_RENDERED = "rendered-master-base"
BASE_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5 core@sno"

PACKAGES = {
    "kernel-rt-core": "kernel-rt-core-5.14.0-284.11.1.rt14.296.el9_2.x86_64",
    "usbguard": "usbguard-1.0.0-13.el9.x86_64",
    "kernel-devel": "kernel-devel-5.14.0-284.11.1.el9_2.x86_64",
    "kernel-headers": "kernel-headers-5.14.0-284.11.1.el9_2.x86_64",
}


class FakeClock:
    """Monotonic clock that only moves when someone sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeControlPlane:
    """
    In-memory stand-in for the CustomObjectsApi + CoreV1Api surface we use,
    with a tiny operator: every API read advances it one step.

    create/delete -> after `render_steps` reads the pool spec renders a new
    config -> node goes Working -> after `apply_steps` reads the node is Done
    and the pool status follows.
    """

    def __init__(self, *, node: str = "sno-0", render_steps: int = 2, apply_steps: int = 3):
        self.node = node
        self.render_steps = render_steps
        self.apply_steps = apply_steps

        self.machine_configs: Dict[str, dict] = {}
        self.applied: List[dict] = []
        self.created: List[str] = []
        self.deleted: List[str] = []

        self._names: Dict[FrozenSet[str], str] = {frozenset(): BASE_RENDERED}
        self.spec_name = BASE_RENDERED
        self.spec_sources = ["00-master", "01-master-kubelet"]
        self.status_name = BASE_RENDERED
        self.annotations = {
            CURRENT_CONFIG_ANNOTATION: BASE_RENDERED,
            DESIRED_CONFIG_ANNOTATION: BASE_RENDERED,
            STATE_ANNOTATION: "Done",
        }
        self.uptime = 1000.0

        self._render_countdown: Optional[int] = None
        self._apply_countdown: Optional[int] = None

        # failure knobs
        self.delete_failures = 0
        self.lost_delete_responses = 0
        self.never_render = False
        self.stick_next_render = False
        self.degrade_next_render = False
        self.reboot_on_apply = False
        self.pool_read_errors = 0
        self.node_list_errors = 0
        self.create_transport_errors = 0
        self.delete_transport_errors = 0
        self.extra_nodes: List[str] = []
        self._stuck: set = set()
        self._degraded: set = set()

    # -- operator simulation --------------------------------------------------

    def _rendered_name(self) -> str:
        key = frozenset(self.machine_configs)
        if key not in self._names:
            self._names[key] = f"rendered-master-{len(self._names)}"
        return self._names[key]

    def _step(self) -> None:
        self.uptime += 1.0

        if self._render_countdown is not None:
            self._render_countdown -= 1
            if self._render_countdown <= 0:
                self._render_countdown = None
                self.spec_name = self._rendered_name()
                self.spec_sources = ["00-master", "01-master-kubelet", *sorted(self.machine_configs)]
                if self.stick_next_render:
                    self.stick_next_render = False
                    self._stuck.add(self.spec_name)
                if self.degrade_next_render:
                    self.degrade_next_render = False
                    self._degraded.add(self.spec_name)
                self.annotations[DESIRED_CONFIG_ANNOTATION] = self.spec_name
                self.annotations[STATE_ANNOTATION] = "Working"
                self._apply_countdown = self.apply_steps
            return

        if self._apply_countdown is not None:
            target = self.annotations[DESIRED_CONFIG_ANNOTATION]
            if target in self._degraded:
                self.annotations[STATE_ANNOTATION] = "Degraded"
                return
            if target in self._stuck:
                return
            self._apply_countdown -= 1
            if self._apply_countdown <= 0:
                self._apply_countdown = None
                self.annotations[CURRENT_CONFIG_ANNOTATION] = target
                self.annotations[STATE_ANNOTATION] = "Done"
                self.status_name = target
                self.applied = [dict(mc) for mc in self.machine_configs.values()]
                if self.reboot_on_apply:
                    self.uptime = 3.0

    def _schedule_render(self) -> None:
        if not self.never_render:
            self._render_countdown = self.render_steps

    # -- CustomObjectsApi -----------------------------------------------------

    def get_cluster_custom_object(self, group, version, plural, name):
        if plural == MACHINE_CONFIG_POOLS:
            if self.pool_read_errors:
                self.pool_read_errors -= 1
                raise ApiException(status=503, reason="Service Unavailable")
            self._step()
            return {
                "metadata": {"name": name},
                "spec": {
                    "configuration": {
                        "name": self.spec_name,
                        "source": [{"kind": "MachineConfig", "name": n} for n in self.spec_sources],
                    }
                },
                "status": {
                    "configuration": {"name": self.status_name},
                    "conditions": [
                        {"type": "Updated", "status": "True" if self.status_name == self.spec_name else "False"},
                    ],
                },
            }
        if plural == MACHINE_CONFIGS:
            if name not in self.machine_configs:
                raise ApiException(status=404, reason="Not Found")
            return self.machine_configs[name]
        raise AssertionError(f"unexpected plural {plural}")

    def create_cluster_custom_object(self, group, version, plural, body):
        assert plural == MACHINE_CONFIGS
        if self.create_transport_errors:
            self.create_transport_errors -= 1
            raise ProtocolError("Connection aborted.", ConnectionResetError(104, "Connection reset by peer"))
        name = body["metadata"]["name"]
        self.machine_configs[name] = body
        self.created.append(name)
        self._schedule_render()
        return body

    def delete_cluster_custom_object(self, group, version, plural, name):
        assert plural == MACHINE_CONFIGS
        if self.delete_transport_errors:
            self.delete_transport_errors -= 1
            raise MaxRetryError(None, f"/apis/machineconfiguration.openshift.io/v1/machineconfigs/{name}")
        if self.delete_failures:
            self.delete_failures -= 1
            raise ApiException(status=500, reason="Internal Server Error")
        if name not in self.machine_configs:
            raise ApiException(status=404, reason="Not Found")
        del self.machine_configs[name]
        self.deleted.append(name)
        self._schedule_render()
        if self.lost_delete_responses:
            self.lost_delete_responses -= 1
            raise ApiException(status=504, reason="Gateway Timeout")
        return {}

    # -- CoreV1Api ------------------------------------------------------------

    def list_node(self, label_selector=None):
        if self.node_list_errors:
            self.node_list_errors -= 1
            raise ApiException(status=503, reason="Service Unavailable")
        self._step()
        items = [
            types.SimpleNamespace(
                metadata=types.SimpleNamespace(name=self.node, annotations=dict(self.annotations))
            )
        ]
        for extra in self.extra_nodes:
            items.append(types.SimpleNamespace(metadata=types.SimpleNamespace(name=extra, annotations={})))
        return types.SimpleNamespace(items=items)


class FakeNodeExecutor:
    """Answers the read-only commands the scenarios run, from the applied MachineConfigs."""

    def __init__(self, plane: FakeControlPlane):
        self.plane = plane
        self.calls: List[List[str]] = []
        self.fail_on: Optional[str] = None

    def _applied_spec(self, key: str) -> list:
        values = []
        for mc in self.plane.applied:
            value = mc["spec"].get(key)
            if value is None:
                continue
            values.extend(value if isinstance(value, list) else [value])
        return values

    def exec(self, node, argv):
        argv = list(argv)
        self.calls.append(argv)
        if self.fail_on and self.fail_on in argv:
            raise ExecFailed(node, argv, 1, "boom")

        if argv == ["cat", "/proc/cmdline"]:
            kargs = " ".join(a.strip() for a in self._applied_spec("kernelArguments"))
            return f"BOOT_IMAGE=(hd0,gpt3)/ostree/rhcos/vmlinuz root=UUID=abcd rw {kargs}\n"

        if argv == ["cat", "/proc/uptime"]:
            return f"{self.plane.uptime:.2f} 4321.00\n"

        if argv[:2] == ["rpm", "-qa"]:
            installed = set()
            if "realtime" in self._applied_spec("kernelType"):
                installed.add("kernel-rt-core")
            exts = self._applied_spec("extensions")
            installed.update(exts)
            if "kernel-devel" in exts:
                installed.add("kernel-headers")
            return "".join(f"{PACKAGES[p]}\n" for p in argv[2:] if p in installed)

        if argv[0] == "cat" and argv[1].endswith("authorized_keys"):
            keys = [BASE_KEY]
            for mc in self.plane.applied:
                for user in mc["spec"]["config"].get("passwd", {}).get("users", []):
                    keys.extend(user.get("sshAuthorizedKeys", []))
            return "\n".join(keys) + "\n"

        raise ExecFailed(node, argv, 127, "command not found")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def plane():
    return FakeControlPlane()


@pytest.fixture
def executor(plane):
    return FakeNodeExecutor(plane)


@pytest.fixture
def events():
    class Capture:
        def __init__(self):
            self.events = []

        def notify(self, ev):
            self.events.append(ev)

        def kinds(self):
            return [e.__class__.__name__ for e in self.events]

    return Capture()


@pytest.fixture
def make_runner(plane, executor, clock, events):
    def _make(
        *,
        timeout: float = 60,
        render_timeout: float = 30,
        fail_fast: bool = False,
        delete_retries: int = 2,
    ) -> ScenarioRunner:
        reader = PoolStateReader(
            plane,
            plane,
            render_policy=RetryPolicy(interval_seconds=2, timeout_seconds=render_timeout, clock=clock, sleep=clock.sleep),
        )
        store = ConfigurationStore(plane, delete_retries=delete_retries, delete_delay=0, sleep=clock.sleep)
        settings = RunnerSettings(
            pool="master",
            role="master",
            convergence=RetryPolicy(interval_seconds=2, timeout_seconds=timeout, clock=clock, sleep=clock.sleep),
            fail_fast_on_degraded=fail_fast,
        )
        return ScenarioRunner(store, reader, NodeFactVerifier(executor), settings, bus=EventBus([events]))

    return _make
