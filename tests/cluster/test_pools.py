import pytest

from mcverify.cluster.changes import ConfigurationChange
from mcverify.cluster.pools import PoolStateReader
from mcverify.cluster.state import DaemonState, PoolConvergenceTarget
from mcverify.cluster.store import ConfigurationStore
from mcverify.convergence.poller import poll_until
from mcverify.errors import (
    ClusterAPIError,
    ConvergenceTimeout,
    NodeDegraded,
    NodeSelectionError,
    PoolNotReady,
    RenderedConfigNotFound,
)
from mcverify.utils.retry import RetryPolicy

BASE_RENDERED = "rendered-master-base"


@pytest.fixture
def transitions():
    return []


@pytest.fixture
def reader(plane, clock, transitions):
    return PoolStateReader(
        plane,
        plane,
        render_policy=RetryPolicy(interval_seconds=2, timeout_seconds=20, clock=clock, sleep=clock.sleep),
        on_transition=lambda node, old, new: transitions.append((node, old, new)),
    )


@pytest.fixture
def submit(plane):
    store = ConfigurationStore(plane, delete_delay=0)

    def _submit():
        change = ConfigurationChange.with_kernel_arguments("master", "foo=bar")
        store.create(change)
        return change

    return _submit


def _policy(clock, timeout=60):
    return RetryPolicy(interval_seconds=2, timeout_seconds=timeout, clock=clock, sleep=clock.sleep)


def test_current_pool_configuration(reader):
    assert reader.current_pool_configuration("master") == BASE_RENDERED


def test_current_pool_configuration_requires_status(reader, plane):
    plane.status_name = None
    with pytest.raises(PoolNotReady):
        reader.current_pool_configuration("master")


def test_resolve_waits_for_render_including_change(reader, submit):
    change = submit()
    rendered = reader.resolve_rendered_configuration("master", change.name)

    assert rendered != BASE_RENDERED
    assert rendered.startswith("rendered-master-")


def test_resolve_survives_transient_api_errors(reader, submit, plane):
    change = submit()
    plane.pool_read_errors = 2
    assert reader.resolve_rendered_configuration("master", change.name) != BASE_RENDERED


def test_resolve_gives_up_when_nothing_renders(reader, submit, plane, clock):
    plane.never_render = True
    change = submit()

    with pytest.raises(RenderedConfigNotFound) as exc:
        reader.resolve_rendered_configuration("master", change.name)

    assert exc.value.change == change.name
    assert exc.value.pool == "master"
    assert clock.now >= 20


def test_node_state_requires_exactly_one_node(reader, plane):
    plane.extra_nodes = ["sno-1"]
    with pytest.raises(NodeSelectionError) as exc:
        reader.node_state("master")
    assert exc.value.found == ["sno-0", "sno-1"]


def test_pool_converges_and_reports_transitions(reader, submit, clock, transitions):
    change = submit()
    rendered = reader.resolve_rendered_configuration("master", change.name)
    target = PoolConvergenceTarget("master", rendered)

    reader.node_state("master")
    poll_until(reader.pool_converged(target, "master"), _policy(clock), target=target)

    node = reader.node_state("master")
    assert node.current_config == rendered
    assert node.daemon_state is DaemonState.DONE
    assert ("sno-0", DaemonState.WORKING, DaemonState.DONE) in transitions


def test_predicate_explains_why_not_converged(reader, submit):
    change = submit()
    rendered = reader.resolve_rendered_configuration("master", change.name)
    check = reader.pool_converged(PoolConvergenceTarget("master", rendered), "master")

    with pytest.raises(RuntimeError, match="state=Working"):
        check()


def test_stuck_node_times_out(reader, submit, plane, clock):
    plane.stick_next_render = True
    change = submit()
    rendered = reader.resolve_rendered_configuration("master", change.name)
    target = PoolConvergenceTarget("master", rendered)

    with pytest.raises(ConvergenceTimeout) as exc:
        poll_until(reader.pool_converged(target, "master"), _policy(clock, timeout=30), target=target)
    assert rendered in str(exc.value)


def test_degraded_node_keeps_polling_by_default(reader, submit, plane, clock):
    plane.degrade_next_render = True
    change = submit()
    rendered = reader.resolve_rendered_configuration("master", change.name)
    target = PoolConvergenceTarget("master", rendered)

    with pytest.raises(ConvergenceTimeout) as exc:
        poll_until(reader.pool_converged(target, "master"), _policy(clock, timeout=30), target=target)
    assert "Degraded" in str(exc.value.last_error)


def test_degraded_node_fails_fast_when_enabled(reader, submit, plane, clock):
    plane.degrade_next_render = True
    change = submit()
    rendered = reader.resolve_rendered_configuration("master", change.name)
    target = PoolConvergenceTarget("master", rendered)
    policy = _policy(clock, timeout=300).fatal_on(NodeDegraded)

    with pytest.raises(NodeDegraded) as exc:
        poll_until(reader.pool_converged(target, "master", fail_fast_on_degraded=True), policy, target=target)

    assert exc.value.node == "sno-0"
    assert clock.now < 300


def test_fail_fast_ignores_degraded_state_for_other_config(reader, plane, clock):
    # the node is degraded on something else; waiting for the base config is still a plain wait
    plane.annotations["machineconfiguration.openshift.io/state"] = "Degraded"
    plane.annotations["machineconfiguration.openshift.io/desiredConfig"] = "rendered-master-other"
    target = PoolConvergenceTarget("master", BASE_RENDERED)

    with pytest.raises(ConvergenceTimeout):
        poll_until(
            reader.pool_converged(target, "master", fail_fast_on_degraded=True),
            _policy(clock, timeout=10).fatal_on(NodeDegraded),
            target=target,
        )


def test_failed_pool_read_is_a_scenario_error(reader, plane):
    plane.pool_read_errors = 1
    with pytest.raises(ClusterAPIError) as exc:
        reader.current_pool_configuration("master")
    assert exc.value.cause.status == 503
    assert "MachineConfigPool master" in str(exc.value)


def test_failed_node_list_is_a_scenario_error(reader, plane):
    plane.node_list_errors = 1
    with pytest.raises(ClusterAPIError, match="node-role.kubernetes.io/master"):
        reader.node_state("master")
    assert reader.node_state("master").name == "sno-0"
