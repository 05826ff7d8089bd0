"""
q_learning.py - Episodic tabular Q-learning on a GridWorld.

Off-policy TD control: the agent follows an ε-greedy behaviour policy while
learning the greedy one,

    Q(s, a) += alpha * (r + gamma * max_a' Q(s', a') - Q(s, a))

Two execution modes are supported:

- run_iteration : `episodes_per_iteration` episodes with a linearly decaying ε
                  (1.0 down to a 0.1 floor over `max_iterations`)
- step          : one episode with a fixed ε = 0.1

Both re-derive V(s) = max_a Q(s, a) and the greedy policy afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .convergence import ConvergenceTracker
from .events import KeepGoing, Visit, VisitHook, keep_going_or_default
from .gridworld import ACTIONS, GridWorld, State
from .tables import PolicyTable, QTable, ValueTable
from .utils import set_seed

logger = logging.getLogger(__name__)

EPSILON_FLOOR = 0.1
STEP_EPSILON = 0.1


@dataclass(frozen=True)
class EpisodeResult:
    """
    Outcome of one episode.

    Parameters
    ----------
    steps : int
        Number of Q updates performed.
    max_change : float
        Largest |ΔQ| in the episode.
    reached_goal : bool
        True iff the agent ended on the goal.
    stalled : bool
        True iff the per-episode step cap was hit first.
    cancelled : bool
        True iff `keep_going` ended the episode.
    """
    steps: int
    max_change: float
    reached_goal: bool
    stalled: bool = False
    cancelled: bool = False


@dataclass(frozen=True)
class IterationResult:
    """Aggregate of the episodes run for one Q-learning iteration."""
    epsilon: float
    episodes: int
    max_change: float
    stalled_episodes: int
    completed: bool


def epsilon_for(iteration: int, max_iterations: int) -> float:
    """
    Linear ε schedule for continuous runs.

    Parameters
    ----------
    iteration : int
        0-based iteration index.
    max_iterations : int
        Iteration cap of the run.

    Returns
    -------
    float
        max(0.1, 1 - iteration / max_iterations)
    """
    return max(EPSILON_FLOOR, 1.0 - iteration / max_iterations)


class QLearningEngine:
    """
    Sampled Q-learning updates over caller-owned tables.

    Parameters
    ----------
    world : GridWorld
    q : QTable
        Updated in place, one (s, a) entry at a time.
    values, policy : ValueTable, PolicyTable
        Re-derived from `q` after each iteration / step.
    rng : np.random.Generator or None
        Source of exploration randomness. A fresh unseeded generator if None.
    episodes_per_iteration : int
        Episodes per `run_iteration` call.
    max_episode_steps : int or None
        Safety cap per episode; None lets an episode run until the goal.
    """

    def __init__(self, world: GridWorld, q: QTable, values: ValueTable, policy: PolicyTable,
                 rng: Optional[np.random.Generator] = None,
                 episodes_per_iteration: int = 10,
                 max_episode_steps: Optional[int] = 1000) -> None:
        self.world = world
        self.q = q
        self.values = values
        self.policy = policy
        self.rng: np.random.Generator = rng if rng is not None else set_seed(None)
        self.episodes_per_iteration = episodes_per_iteration
        self.max_episode_steps = max_episode_steps

    # ---------------------------------------------------------------------
    # Single updates
    # ---------------------------------------------------------------------

    def select_action(self, state: State, epsilon: float) -> int:
        """ε-greedy: uniform random action with probability ε, else greedy."""
        if self.rng.random() < epsilon:
            return int(self.rng.integers(len(ACTIONS)))
        return self.q.best_action(state)

    def update(self, state: State, action: int, alpha: float, gamma: float) -> Visit:
        """Apply one Q-learning update for (state, action) and report it."""
        s2 = self.world.next_state(state, action)
        r = self.world.reward(state, action, s2)

        old_q = self.q.value(state, action)
        td_target = r + gamma * self.q.max_value(s2)
        new_q = old_q + alpha * (td_target - old_q)
        self.q.set(state, action, new_q)

        return Visit(State(*state), action, s2, r, new_q, abs(new_q - old_q))

    # ---------------------------------------------------------------------
    # Episodes
    # ---------------------------------------------------------------------

    def run_episode(self, alpha: float, gamma: float, epsilon: float,
                    keep_going: Optional[KeepGoing] = None,
                    on_visit: Optional[VisitHook] = None) -> EpisodeResult:
        """
        Play one episode from the start state until the goal is reached.

        The loop also ends when `keep_going` returns False (cancelled) or
        after `max_episode_steps` updates (stalled). Every update that has
        started is completed and kept.
        """
        keep_going = keep_going_or_default(keep_going)
        s = self.world.start
        deltas = []
        stalled = cancelled = False

        while not self.world.is_goal(s):
            if not keep_going():
                cancelled = True
                break
            if self.max_episode_steps is not None and len(deltas) >= self.max_episode_steps:
                stalled = True
                logger.warning("Episode stalled after %d steps without reaching the goal %s",
                               len(deltas), tuple(self.world.goal))
                break

            a = self.select_action(s, epsilon)
            visit = self.update(s, a, alpha, gamma)
            deltas.append(visit.change)
            if on_visit is not None:
                on_visit(visit)
            s = visit.next_state

        return EpisodeResult(
            steps=len(deltas),
            max_change=ConvergenceTracker.max_change(deltas),
            reached_goal=self.world.is_goal(s),
            stalled=stalled,
            cancelled=cancelled,
        )

    def run_iteration(self, iteration: int, max_iterations: int, alpha: float, gamma: float,
                      keep_going: Optional[KeepGoing] = None,
                      on_visit: Optional[VisitHook] = None) -> IterationResult:
        """
        Run `episodes_per_iteration` episodes with the decaying ε, then derive
        values and policy.

        Parameters
        ----------
        iteration : int
            0-based iteration index, drives the ε schedule.
        max_iterations : int
            Iteration cap of the run.
        alpha, gamma : float
            Learning rate and discount factor.
        keep_going, on_visit : callable or None
            Cancellation check and per-update observer.
        """
        epsilon = epsilon_for(iteration, max_iterations)
        max_change = 0.0
        stalled = 0
        episodes = 0
        completed = True

        for _ in range(self.episodes_per_iteration):
            result = self.run_episode(alpha, gamma, epsilon, keep_going, on_visit)
            episodes += 1
            max_change = max(max_change, result.max_change)
            stalled += int(result.stalled)
            if result.cancelled:
                completed = False
                break

        self.derive()
        logger.debug("Q-learning iteration %d: eps=%.3f, %d episodes, max change %.6f",
                     iteration + 1, epsilon, episodes, max_change)
        return IterationResult(epsilon, episodes, max_change, stalled, completed)

    def step(self, alpha: float, gamma: float,
             keep_going: Optional[KeepGoing] = None,
             on_visit: Optional[VisitHook] = None) -> EpisodeResult:
        """One episode at the fixed ε = 0.1 (no decay), then derive."""
        result = self.run_episode(alpha, gamma, STEP_EPSILON, keep_going, on_visit)
        self.derive()
        return result

    # ---------------------------------------------------------------------
    # Derived tables
    # ---------------------------------------------------------------------

    def derive(self) -> None:
        """V(s) = Q(s, best_action(s)) and π(s) = best_action(s) for every state."""
        for s in self.world.states():
            a = self.q.best_action(s)
            self.policy.set(s, a)
            self.values.set(s, self.q.value(s, a))
