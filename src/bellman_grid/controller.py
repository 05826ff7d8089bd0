"""
controller.py - Run/step/stop/reset lifecycle around the two engines.

The SimulationController owns the GridWorld, the value / Q / policy tables
and the engines that write them. A presentation layer drives it through a
handful of commands and observes it through read-only snapshots and
optional hooks:

    Ready --run--> Running --> Converged | Max iterations reached
      ^               |
      +----stop-------+        (reset returns to Ready from anywhere)

Execution is single-threaded and cooperative: `stop()` (typically called
from a hook, or from another thread) clears a flag that the engines check
between two units of update. Pacing and animation delays are the
observer's business; the controller never sleeps.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple

import numpy as np

from .convergence import ConvergenceTracker
from .errors import ConfigurationError, InvalidCommandError
from .events import VisitHook
from .gridworld import GridWorld, State, WorldSettings
from .q_learning import STEP_EPSILON, QLearningEngine
from .tables import PolicyTable, QTable, ValueTable
from .utils import set_seed
from .value_iteration import ValueIterationEngine

logger = logging.getLogger(__name__)


class Status(str, Enum):
    READY = "Ready"
    RUNNING = "Running"
    CONVERGED = "Converged"
    EXHAUSTED = "Max iterations reached"


class Algorithm(str, Enum):
    VALUE_ITERATION = "value-iteration"
    Q_LEARNING = "q-learning"


# =====================================================================
# Configuration & observable state
# =====================================================================

@dataclass(frozen=True)
class SimulationConfig:
    """
    Run parameters. All of them may be changed between updates.

    Parameters
    ----------
    gamma : float
        Discount factor in (0, 1].
    alpha : float
        Q-learning rate in (0, 1].
    max_iterations : int
        Sweep / iteration cap of a continuous run.
    convergence_threshold : float
        Max change below which a run counts as converged (>= 0).
    algorithm : Algorithm or str
        'value-iteration' or 'q-learning'.
    episodes_per_iteration : int
        Q-learning episodes per iteration of a continuous run.
    max_episode_steps : int or None
        Per-episode step cap; None means unbounded.
    seed : int or None
        Seed for the exploration RNG (re-applied on reset).
    """
    gamma: float = 0.9
    alpha: float = 0.1
    max_iterations: int = 100
    convergence_threshold: float = 0.001
    algorithm: Algorithm = Algorithm.VALUE_ITERATION
    episodes_per_iteration: int = 10
    max_episode_steps: Optional[int] = 1000
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "algorithm", Algorithm(self.algorithm))
        except ValueError:
            raise ConfigurationError(f"Unknown algorithm: {self.algorithm!r}") from None

        if not 0.0 < self.gamma <= 1.0:
            raise ConfigurationError(f"gamma must be in (0, 1], got {self.gamma}")
        if not 0.0 < self.alpha <= 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1], got {self.alpha}")
        if not isinstance(self.max_iterations, int) or self.max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be a positive integer, got {self.max_iterations!r}")
        if not self.convergence_threshold >= 0:
            raise ConfigurationError(f"convergence_threshold must be >= 0, got {self.convergence_threshold}")
        if not isinstance(self.episodes_per_iteration, int) or self.episodes_per_iteration < 1:
            raise ConfigurationError(
                f"episodes_per_iteration must be a positive integer, got {self.episodes_per_iteration!r}")
        if self.max_episode_steps is not None and (
                not isinstance(self.max_episode_steps, int) or self.max_episode_steps < 1):
            raise ConfigurationError(
                f"max_episode_steps must be a positive integer or None, got {self.max_episode_steps!r}")


@dataclass
class RunState:
    """Progress of the current / last run."""
    algorithm: Algorithm = Algorithm.VALUE_ITERATION
    status: Status = Status.READY
    iteration: int = 0
    max_change: float = 0.0
    epsilon: Optional[float] = None
    selected_state: Optional[State] = None
    stalled_episodes: int = 0


@dataclass(frozen=True)
class Snapshot:
    """
    Consistent, read-only copy of everything an observer may display.

    Arrays are copies with the write flag cleared. Obstacle cells are NaN in
    `values` / `q_values` and -1 in `policy`.
    """
    values: np.ndarray
    q_values: np.ndarray
    policy: np.ndarray
    run: RunState
    config: SimulationConfig


@dataclass
class SimulationHooks:
    """
    Optional observer callbacks.

    on_visit     : called after each state backup / Q update with a `Visit`
    on_iteration : called after each sweep / iteration with (iteration, max_change)
    on_status    : called with the new `Status` whenever it changes
    """
    on_visit: Optional[VisitHook] = None
    on_iteration: Optional[Callable[[int, float], None]] = None
    on_status: Optional[Callable[[Status], None]] = None


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = arr.copy()
    out.setflags(write=False)
    return out


# =====================================================================
# Controller
# =====================================================================

class SimulationController:
    """
    Owns the tables and drives the selected engine.

    Parameters
    ----------
    settings : WorldSettings or None
        Grid layout and rewards. Defaults to the 5x5 layout.
    config : SimulationConfig or None
        Run parameters. Defaults to `SimulationConfig()`.
    hooks : SimulationHooks or None
        Observer callbacks.
    """

    def __init__(self, settings: Optional[WorldSettings] = None,
                 config: Optional[SimulationConfig] = None,
                 hooks: Optional[SimulationHooks] = None) -> None:
        self.config: SimulationConfig = config if config is not None else SimulationConfig()
        self.hooks: SimulationHooks = hooks if hooks is not None else SimulationHooks()
        self._running = False
        self._build(GridWorld(settings))

    def _build(self, world: GridWorld) -> None:
        self.world = world
        self._values = ValueTable(world)
        self._q = QTable(world)
        self._policy = PolicyTable(world)

        self._vi = ValueIterationEngine(world, self._values, self._policy)
        self._ql = QLearningEngine(world, self._q, self._values, self._policy,
                                   rng=set_seed(self.config.seed),
                                   episodes_per_iteration=self.config.episodes_per_iteration,
                                   max_episode_steps=self.config.max_episode_steps)
        self._state = RunState(algorithm=self.config.algorithm)

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        """Copy of the current run state."""
        return dataclasses.replace(self._state)

    @property
    def status(self) -> Status:
        return self._state.status

    @property
    def is_running(self) -> bool:
        return self._running

    def value(self, state: Tuple[int, int]) -> Optional[float]:
        """V(state), or None for an obstacle."""
        return self._values.get(state)

    def q_values(self, state: Tuple[int, int]) -> Optional[np.ndarray]:
        """Copy of Q(state, ·) in action order, or None for an obstacle."""
        return self._q.get(state)

    def action(self, state: Tuple[int, int]) -> Optional[int]:
        """Greedy action for state, or None for an obstacle."""
        return self._policy.get(state)

    def snapshot(self) -> Snapshot:
        return Snapshot(
            values=_frozen(self._values.data),
            q_values=_frozen(self._q.data),
            policy=_frozen(self._policy.data),
            run=self.state,
            config=self.config,
        )

    # ---------------------------------------------------------------------
    # Commands
    # ---------------------------------------------------------------------

    def configure(self, **changes: Any) -> SimulationConfig:
        """
        Update run parameters; they apply from the next update on.

        Raises
        ------
        ConfigurationError
            On an unknown parameter name or an invalid value.
        """
        try:
            config = dataclasses.replace(self.config, **changes)
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from None

        if config.seed != self.config.seed:
            self._ql.rng = set_seed(config.seed)
        self._ql.episodes_per_iteration = config.episodes_per_iteration
        self._ql.max_episode_steps = config.max_episode_steps
        if not self._running:
            self._state.algorithm = config.algorithm

        self.config = config
        logger.debug("Configuration updated: %s", changes)
        return config

    def select(self, state: Optional[Tuple[int, int]]) -> None:
        """Set (or clear with None) the highlighted state. Presentation hint only."""
        if state is None:
            self._state.selected_state = None
            return
        s = State(*state)
        if not self.world.is_valid(s):
            raise KeyError(f"State out of bounds: {tuple(s)}")
        self._state.selected_state = s

    def reset(self, settings: Optional[WorldSettings] = None) -> RunState:
        """
        Stop any run and reinitialize tables, counters and selection.

        Parameters
        ----------
        settings : WorldSettings or None
            New world layout. Validated before anything is discarded, so an
            invalid layout leaves the controller untouched.
        """
        world = GridWorld(settings) if settings is not None else self.world
        self._running = False
        self._build(world)
        logger.info("Simulation reset: %r", world)
        self._emit_status(Status.READY, force=True)
        return self.state

    def stop(self) -> None:
        """Request the running loop to end after its current unit of update."""
        if self._running:
            logger.info("Stop requested at iteration %d", self._state.iteration)
        self._running = False

    def run(self) -> RunState:
        """
        Run the selected algorithm until converged, exhausted or stopped.

        Calling `run()` while already running acts as `stop()`.

        Returns
        -------
        RunState
            State after the loop ended.
        """
        if self._running:
            self.stop()
            return self.state

        algorithm = self.config.algorithm
        self._running = True
        self._state.algorithm = algorithm
        self._state.iteration = 0
        self._state.max_change = 0.0
        self._state.epsilon = None
        self._emit_status(Status.RUNNING)
        logger.info("Running %s (gamma=%s, alpha=%s, max_iterations=%d)",
                    algorithm.value, self.config.gamma, self.config.alpha,
                    self.config.max_iterations)

        if algorithm is Algorithm.Q_LEARNING:
            self._q.reset()

        try:
            while self._running and self._state.iteration < self.config.max_iterations:
                completed = self._advance(algorithm, continuous=True)
                if not completed:
                    break
                if self._converged():
                    self._emit_status(Status.CONVERGED)
                    break
            else:
                if self._running:
                    self._emit_status(Status.EXHAUSTED)
        finally:
            self._running = False
            if self._state.status is Status.RUNNING:
                # stopped before any terminal condition
                self._emit_status(Status.READY)

        logger.info("Run finished: %s after %d iterations (max change %.6f)",
                    self._state.status.value, self._state.iteration, self._state.max_change)
        return self.state

    def step(self) -> RunState:
        """
        Perform exactly one sweep (value iteration) or one episode (Q-learning).

        Raises
        ------
        InvalidCommandError
            If a run is in progress.
        """
        if self._running:
            raise InvalidCommandError("step() is not allowed while a run is in progress")

        algorithm = self.config.algorithm
        self._state.algorithm = algorithm
        self._advance(algorithm, continuous=False)

        if self._converged():
            self._emit_status(Status.CONVERGED)
        elif self._state.iteration >= self.config.max_iterations:
            self._emit_status(Status.EXHAUSTED)
        return self.state

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    def _keep_going(self) -> bool:
        return self._running

    def _converged(self) -> bool:
        return ConvergenceTracker(self.config.convergence_threshold).converged(self._state.max_change)

    def _advance(self, algorithm: Algorithm, continuous: bool) -> bool:
        """One unit of work; returns False if it was cut short by stop()."""
        cfg = self.config
        # a hook may reset() mid-update; keep writing to the state this unit started with
        state = self._state
        keep_going = self._keep_going if continuous else None
        index = state.iteration
        state.iteration += 1

        if algorithm is Algorithm.VALUE_ITERATION:
            result = self._vi.sweep(cfg.gamma, keep_going, self.hooks.on_visit)
            completed = result.completed
            state.epsilon = None
        elif continuous:
            result = self._ql.run_iteration(index, cfg.max_iterations, cfg.alpha, cfg.gamma,
                                            keep_going, self.hooks.on_visit)
            completed = result.completed
            state.epsilon = result.epsilon
            state.stalled_episodes += result.stalled_episodes
        else:
            result = self._ql.step(cfg.alpha, cfg.gamma, None, self.hooks.on_visit)
            completed = not result.cancelled
            state.epsilon = STEP_EPSILON
            state.stalled_episodes += int(result.stalled)

        if completed:
            state.max_change = result.max_change
            if self.hooks.on_iteration is not None:
                self.hooks.on_iteration(state.iteration, result.max_change)
        return completed

    def _emit_status(self, status: Status, force: bool = False) -> None:
        if status is self._state.status and not force:
            return
        self._state.status = status
        if self.hooks.on_status is not None:
            self.hooks.on_status(status)
