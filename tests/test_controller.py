"""
tests/test_controller.py

Integration tests for SimulationController: the run / step / stop / reset
lifecycle, configuration, snapshots and observer hooks.
"""

import math

import numpy as np
import pytest

from bellman_grid import (
    Algorithm, ConfigurationError, GridWorld, InvalidCommandError,
    SimulationConfig, SimulationController, SimulationHooks, Status, WorldSettings,
)
from bellman_grid.q_learning import epsilon_for
from bellman_grid.utils import greedy_rollout, shortest_path_length


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def controller():
    return SimulationController(config=SimulationConfig(seed=0))


def q_config(**kwargs):
    base = dict(algorithm="q-learning", seed=0, max_iterations=10)
    base.update(kwargs)
    return SimulationConfig(**base)


def snapshots_equal(a, b):
    return (np.array_equal(a.values, b.values, equal_nan=True)
            and np.array_equal(a.q_values, b.q_values, equal_nan=True)
            and np.array_equal(a.policy, b.policy))


# ---------------------------------------------------------------------
# Initial state & queries
# ---------------------------------------------------------------------

def test_initial_state(controller):
    state = controller.state
    assert state.status is Status.READY
    assert state.iteration == 0
    assert state.max_change == 0.0
    assert state.algorithm is Algorithm.VALUE_ITERATION
    assert state.epsilon is None
    assert not controller.is_running

    assert controller.value((0, 0)) == 0.0
    assert controller.value((2, 2)) is None
    assert controller.q_values((2, 2)) is None
    assert controller.action((2, 2)) is None


def test_snapshot_is_read_only_copy(controller):
    snap = controller.snapshot()
    assert not snap.values.flags.writeable
    with pytest.raises(ValueError):
        snap.values[0, 0] = 1.0

    controller.step()
    assert snap.values[0, 0] == 0.0
    assert snap.run.iteration == 0
    assert controller.snapshot().run.iteration == 1


# ---------------------------------------------------------------------
# Value iteration runs
# ---------------------------------------------------------------------

def test_run_value_iteration_converges(controller):
    statuses = []
    controller.hooks.on_status = statuses.append

    state = controller.run()

    assert state.status is Status.CONVERGED
    assert statuses == [Status.RUNNING, Status.CONVERGED]
    assert state.iteration <= 100
    assert state.max_change < 0.001
    assert not controller.is_running
    assert controller.value((4, 4)) == pytest.approx(100.0, abs=0.01)

    path = greedy_rollout(controller.world, controller.snapshot().policy)
    assert len(path) - 1 == shortest_path_length(controller.world)


def test_run_value_iteration_exhausts(controller):
    controller.configure(max_iterations=5)
    state = controller.run()
    assert state.status is Status.EXHAUSTED
    assert state.iteration == 5


def test_iteration_hook_reports_each_sweep(controller):
    seen = []
    controller.hooks.on_iteration = lambda it, change: seen.append((it, change))
    controller.configure(max_iterations=3)
    controller.run()

    assert [it for it, _ in seen] == [1, 2, 3]
    assert seen[0][1] == pytest.approx(10.0)


def test_stop_from_hook_leaves_no_terminal_status():
    statuses = []
    hooks = SimulationHooks(on_status=statuses.append)
    ctrl = SimulationController(hooks=hooks)

    def on_iteration(iteration, _change):
        if iteration == 3:
            ctrl.stop()

    hooks.on_iteration = on_iteration
    state = ctrl.run()

    assert state.iteration == 3
    assert state.status is Status.READY
    assert statuses == [Status.RUNNING, Status.READY]
    assert not ctrl.is_running


def test_stop_mid_sweep_completes_current_backup():
    ctrl = SimulationController()
    visits = []

    def on_visit(visit):
        visits.append(visit)
        if len(visits) == 5:
            ctrl.stop()

    ctrl.hooks.on_visit = on_visit
    state = ctrl.run()

    assert len(visits) == 5
    assert state.iteration == 1
    assert state.status is Status.READY
    # the partial sweep does not publish a max change
    assert state.max_change == 0.0
    assert ctrl.value(visits[-1].state) == pytest.approx(visits[-1].value)


def test_run_while_running_acts_as_stop():
    ctrl = SimulationController()
    results = []

    def on_iteration(iteration, _change):
        if iteration == 2:
            results.append(ctrl.run())

    ctrl.hooks.on_iteration = on_iteration
    state = ctrl.run()

    assert state.iteration == 2
    assert state.status is Status.READY
    assert results[0].status is Status.RUNNING


def test_new_run_clears_previous_max_change(controller):
    controller.run()
    assert controller.status is Status.CONVERGED

    def on_visit(_visit):
        controller.stop()

    controller.hooks.on_visit = on_visit
    state = controller.run()

    assert state.iteration == 1
    assert state.status is Status.READY
    # the interrupted first sweep publishes nothing
    assert state.max_change == 0.0


def test_configure_from_hook_applies_to_next_sweep(controller):
    def on_iteration(iteration, _change):
        if iteration == 1:
            controller.configure(gamma=0.5, max_iterations=2)

    controller.hooks.on_iteration = on_iteration
    state = controller.run()

    assert state.iteration == 2
    assert state.status is Status.EXHAUSTED
    # second sweep: 10 + 0.5 * V_1(goal) with V_1(goal) = 10
    assert controller.value((3, 4)) == pytest.approx(15.0)
    assert controller.value((4, 4)) == pytest.approx(15.0)
    assert controller.config.gamma == 0.5


def test_step_while_running_is_rejected():
    ctrl = SimulationController()
    errors = []

    def on_iteration(iteration, _change):
        try:
            ctrl.step()
        except InvalidCommandError as exc:
            errors.append(exc)
        ctrl.stop()

    ctrl.hooks.on_iteration = on_iteration
    state = ctrl.run()

    assert len(errors) == 1
    assert state.iteration == 1


# ---------------------------------------------------------------------
# Stepping
# ---------------------------------------------------------------------

def test_step_value_iteration(controller):
    state = controller.step()
    assert state.iteration == 1
    assert state.max_change == pytest.approx(10.0)
    assert state.status is Status.READY


def test_steps_until_converged(controller):
    for _ in range(100):
        if controller.step().status is Status.CONVERGED:
            break
    assert controller.status is Status.CONVERGED
    assert controller.state.iteration <= 100


def test_step_detects_exhaustion(controller):
    controller.configure(max_iterations=2)
    assert controller.step().status is Status.READY
    assert controller.step().status is Status.EXHAUSTED


def test_step_q_learning_uses_fixed_epsilon():
    ctrl = SimulationController(config=q_config())
    state = ctrl.step()

    assert state.algorithm is Algorithm.Q_LEARNING
    assert state.iteration == 1
    assert state.epsilon == pytest.approx(0.1)
    start = ctrl.world.start
    assert ctrl.value(start) == pytest.approx(float(np.max(ctrl.q_values(start))))


# ---------------------------------------------------------------------
# Q-learning runs
# ---------------------------------------------------------------------

def test_run_q_learning_keeps_table_shape():
    ctrl = SimulationController(config=q_config(max_iterations=5))
    state = ctrl.run()

    assert state.status in (Status.CONVERGED, Status.EXHAUSTED)
    assert 1 <= state.iteration <= 5
    assert state.epsilon == pytest.approx(epsilon_for(state.iteration - 1, 5))

    snap = ctrl.snapshot()
    assert snap.q_values.shape == (5, 5, 4)
    for s in ctrl.world.obstacles:
        assert np.all(np.isnan(snap.q_values[s.row, s.col]))
    for s in ctrl.world.states():
        assert np.all(np.isfinite(snap.q_values[s.row, s.col]))
    assert np.all(snap.q_values[4, 4] == 0.0)


def test_run_q_learning_starts_from_zero_q_table():
    ctrl = SimulationController(config=q_config(max_iterations=1, episodes_per_iteration=1))
    ctrl.step()
    ctrl.step()

    first_visit = []
    ctrl.hooks.on_visit = lambda v: first_visit.append(v) if not first_visit else None
    ctrl.run()

    # with Q reset to zero the first update is alpha * reward (no bootstrap)
    v = first_visit[0]
    assert v.value == pytest.approx(0.1 * v.reward)
    assert ctrl.state.iteration == 1


def test_stalled_episodes_are_counted():
    settings = WorldSettings(size=3, start=(0, 0), goal=(2, 2), obstacles=((0, 1), (1, 0)))
    ctrl = SimulationController(settings, q_config(max_iterations=3, episodes_per_iteration=2,
                                                   max_episode_steps=20))
    state = ctrl.run()

    assert state.iteration == 3
    assert state.stalled_episodes == 6
    assert state.status is Status.EXHAUSTED


# ---------------------------------------------------------------------
# Reset & configuration
# ---------------------------------------------------------------------

def test_reset_is_idempotent(controller):
    controller.run()
    controller.select((1, 1))

    first = controller.reset()
    snap1 = controller.snapshot()
    second = controller.reset()
    snap2 = controller.snapshot()

    assert first == second
    assert first.status is Status.READY
    assert first.iteration == 0
    assert first.selected_state is None
    assert snapshots_equal(snap1, snap2)
    assert np.all(snap1.values[~np.isnan(snap1.values)] == 0.0)


def test_reset_with_new_world(controller):
    controller.reset(WorldSettings(size=4, start=(0, 0), goal=(3, 3), obstacles=((1, 1),)))
    assert controller.world.size == 4
    assert controller.snapshot().values.shape == (4, 4)
    assert controller.value((1, 1)) is None


def test_reset_with_invalid_world_keeps_state(controller):
    controller.step()
    with pytest.raises(ConfigurationError):
        controller.reset(WorldSettings(start=(2, 2)))
    assert controller.state.iteration == 1
    assert controller.world.size == 5


@pytest.mark.parametrize("settings", [
    WorldSettings(goal=(9, 9)),
    WorldSettings(start=(0.5, 0)),
    WorldSettings(obstacles=((1.5, 2),)),
])
def test_invalid_world_rejected_at_construction(settings):
    with pytest.raises(ConfigurationError):
        SimulationController(settings, q_config())


@pytest.mark.parametrize("changes", [
    {"gamma": 0.0},
    {"gamma": 1.5},
    {"alpha": 0.0},
    {"max_iterations": 0},
    {"convergence_threshold": -1.0},
    {"convergence_threshold": math.nan},
    {"algorithm": "policy-iteration"},
    {"episodes_per_iteration": 0},
    {"max_episode_steps": 0},
    {"learning_rate": 0.5},
])
def test_configure_rejects_invalid_values(controller, changes):
    before = controller.config
    with pytest.raises(ConfigurationError):
        controller.configure(**changes)
    assert controller.config is before


def test_configure_algorithm_from_string(controller):
    cfg = controller.configure(algorithm="q-learning", gamma=1.0)
    assert cfg.algorithm is Algorithm.Q_LEARNING
    assert controller.state.algorithm is Algorithm.Q_LEARNING
    assert controller.config.gamma == 1.0


def test_select_state(controller):
    controller.select((1, 2))
    assert controller.state.selected_state == (1, 2)
    controller.select(None)
    assert controller.state.selected_state is None
    with pytest.raises(KeyError):
        controller.select((5, 0))


def test_controller_accepts_custom_world():
    ctrl = SimulationController(WorldSettings(size=3, start=(0, 0), goal=(2, 2), obstacles=()))
    assert isinstance(ctrl.world, GridWorld)
    assert ctrl.run().status is Status.CONVERGED
