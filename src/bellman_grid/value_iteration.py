"""
value_iteration.py - Synchronous Bellman optimality sweeps over a GridWorld.

One sweep backs up every non-obstacle state in row-major order:

    V_new(s) = max_a [ R(s, a, s') + gamma * V_old(s') ],   s' = next_state(s, a)

All backups read the frozen values of the previous sweep, so the sweep order
only affects the trace reported to observers, never the numbers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .convergence import ConvergenceTracker
from .events import KeepGoing, Visit, VisitHook, keep_going_or_default
from .gridworld import ACTIONS, GridWorld, State
from .tables import PolicyTable, ValueTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    """
    Outcome of one sweep.

    Parameters
    ----------
    max_change : float
        Largest |V_new(s) - V_old(s)| over the states backed up.
    states_updated : int
        Number of states backed up (less than the full count if cancelled).
    completed : bool
        False if `keep_going` stopped the sweep part-way.
    """
    max_change: float
    states_updated: int
    completed: bool


class ValueIterationEngine:
    """
    Runs value-iteration sweeps that write into caller-owned tables.

    Parameters
    ----------
    world : GridWorld
        Transition and reward model.
    values : ValueTable
        Updated in place, one state at a time.
    policy : PolicyTable
        Greedy action for each backed-up state.
    """

    def __init__(self, world: GridWorld, values: ValueTable, policy: PolicyTable) -> None:
        self.world = world
        self.values = values
        self.policy = policy

    def backup(self, state: State, V_old: np.ndarray, gamma: float) -> Tuple[float, int]:
        """
        One-step lookahead for `state` against a frozen value array.

        Returns
        -------
        best_value : float
            max_a [ r + gamma * V_old[s'] ].
        best_action : int
            First action reaching the max, in (up, down, left, right) order.
        """
        best_value = -np.inf
        best_action = ACTIONS[0]
        for a in ACTIONS:
            s2 = self.world.next_state(state, a)
            r = self.world.reward(state, a, s2)
            candidate = r + gamma * V_old[s2.row, s2.col]
            # strict '>' keeps the earliest action on ties
            if candidate > best_value:
                best_value = candidate
                best_action = a
        return float(best_value), best_action

    def sweep(self, gamma: float,
              keep_going: Optional[KeepGoing] = None,
              on_visit: Optional[VisitHook] = None) -> SweepResult:
        """
        Perform one synchronous sweep.

        Parameters
        ----------
        gamma : float
            Discount factor.
        keep_going : callable or None
            Checked before each state's backup; returning False ends the
            sweep early. A backup that has started always completes.
        on_visit : callable or None
            Receives a `Visit` after each state is written.

        Returns
        -------
        SweepResult
        """
        keep_going = keep_going_or_default(keep_going)
        V_old = self.values.copy()
        deltas = []
        completed = True

        for s in self.world.states():
            if not keep_going():
                completed = False
                break

            new_value, best_action = self.backup(s, V_old, gamma)
            change = abs(new_value - V_old[s.row, s.col])
            self.values.set(s, new_value)
            self.policy.set(s, best_action)
            deltas.append(change)

            if on_visit is not None:
                s2 = self.world.next_state(s, best_action)
                on_visit(Visit(s, best_action, s2,
                               self.world.reward(s, best_action, s2),
                               new_value, change))

        max_change = ConvergenceTracker.max_change(deltas)
        logger.debug("Value sweep: %d states, max change %.6f", len(deltas), max_change)
        return SweepResult(max_change, len(deltas), completed)


def value_iteration(world: GridWorld,
                    gamma: float = 0.9,
                    threshold: float = 0.001,
                    max_iterations: int = 100) -> Tuple[ValueTable, PolicyTable, int, bool]:
    """
    Run value iteration to completion outside of any controller.

    Parameters
    ----------
    world : GridWorld
    gamma : float
        Discount factor in (0, 1].
    threshold : float
        Convergence threshold on the per-sweep max change.
    max_iterations : int
        Sweep cap.

    Returns
    -------
    values : ValueTable
    policy : PolicyTable
    iterations : int
        Number of sweeps performed.
    converged : bool
        True iff the last sweep's max change fell below `threshold`.
    """
    values, policy = ValueTable(world), PolicyTable(world)
    engine = ValueIterationEngine(world, values, policy)
    tracker = ConvergenceTracker(threshold)

    for it in range(1, max_iterations + 1):
        result = engine.sweep(gamma)
        if tracker.converged(result.max_change):
            return values, policy, it, True
    return values, policy, max_iterations, False
