"""
tables.py - Mutable numeric stores shared by the learning engines.

- ValueTable  : V(s) for every non-obstacle state, shape (size, size)
- QTable      : Q(s, a) for every non-obstacle state, shape (size, size, 4)
- PolicyTable : greedy action per non-obstacle state, shape (size, size)

Obstacle cells are masked (NaN / -1) and can never be written; every other
cell is populated from construction on, so lookups never miss.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .gridworld import ACTIONS, UP, GridWorld, State

NO_ACTION = -1


class _GridTable:
    """Common bounds / obstacle handling for the per-cell tables."""

    def __init__(self, world: GridWorld) -> None:
        self.world = world
        self.data: np.ndarray = self._fresh()

    def _fresh(self) -> np.ndarray:
        raise NotImplementedError

    def reset(self) -> None:
        """Reinitialize every entry to its default."""
        self.data = self._fresh()

    def copy(self) -> np.ndarray:
        """Independent copy of the backing array (safe to hand to readers)."""
        return self.data.copy()

    def _index(self, state: Tuple[int, int]) -> State:
        s = State(*state)
        if not self.world.is_valid(s):
            raise KeyError(f"State out of bounds: {tuple(s)}")
        return s

    def _writable(self, state: Tuple[int, int]) -> State:
        s = self._index(state)
        if self.world.is_obstacle(s):
            raise KeyError(f"Obstacle states are never updated: {tuple(s)}")
        return s

    def _obstacle_mask(self) -> np.ndarray:
        mask = np.zeros((self.world.size, self.world.size), dtype=bool)
        for r, c in self.world.obstacles:
            mask[r, c] = True
        return mask


class ValueTable(_GridTable):
    """State values V(s). Obstacles hold NaN and read back as None."""

    def _fresh(self) -> np.ndarray:
        V = np.zeros((self.world.size, self.world.size), dtype=float)
        V[self._obstacle_mask()] = np.nan
        return V

    def get(self, state: Tuple[int, int]) -> Optional[float]:
        s = self._index(state)
        if self.world.is_obstacle(s):
            return None
        return float(self.data[s.row, s.col])

    def set(self, state: Tuple[int, int], value: float) -> None:
        s = self._writable(state)
        self.data[s.row, s.col] = value

    __getitem__ = get
    __setitem__ = set


class QTable(_GridTable):
    """
    Action values Q(s, a).

    Every non-obstacle state has exactly len(ACTIONS) entries, all starting
    at 0. Obstacle rows are NaN.
    """

    def _fresh(self) -> np.ndarray:
        Q = np.zeros((self.world.size, self.world.size, len(ACTIONS)), dtype=float)
        Q[self._obstacle_mask()] = np.nan
        return Q

    def get(self, state: Tuple[int, int]) -> Optional[np.ndarray]:
        """Copy of the 4 action values for `state`, or None for an obstacle."""
        s = self._index(state)
        if self.world.is_obstacle(s):
            return None
        return self.data[s.row, s.col].copy()

    def value(self, state: Tuple[int, int], action: int) -> float:
        s = self._writable(state)
        return float(self.data[s.row, s.col, action])

    def set(self, state: Tuple[int, int], action: int, value: float) -> None:
        s = self._writable(state)
        self.data[s.row, s.col, action] = value

    def max_value(self, state: Tuple[int, int]) -> float:
        s = self._writable(state)
        return float(np.max(self.data[s.row, s.col]))

    def best_action(self, state: Tuple[int, int]) -> int:
        """
        Greedy action argmax_a Q(s, a).

        np.argmax returns the first maximum, so ties go to the earliest
        action in (up, down, left, right).
        """
        s = self._writable(state)
        return int(np.argmax(self.data[s.row, s.col]))


class PolicyTable(_GridTable):
    """Greedy action per state. Starts as UP everywhere; obstacles hold -1."""

    def _fresh(self) -> np.ndarray:
        pi = np.full((self.world.size, self.world.size), UP, dtype=int)
        pi[self._obstacle_mask()] = NO_ACTION
        return pi

    def get(self, state: Tuple[int, int]) -> Optional[int]:
        s = self._index(state)
        if self.world.is_obstacle(s):
            return None
        return int(self.data[s.row, s.col])

    def set(self, state: Tuple[int, int], action: int) -> None:
        if action not in ACTIONS:
            raise ValueError(f"Invalid action: {action}")
        s = self._writable(state)
        self.data[s.row, s.col] = action

    __getitem__ = get
    __setitem__ = set
