"""
GridWorld: a small, deterministic 2D MDP for dynamic-programming and TD demos.

- Square grid with obstacles, a start cell and a goal cell
- Deterministic moves: bumping into the border or an obstacle keeps the agent in place
- Reward depends only on the resulting transition (goal / wall bump / step)
- Coordinates are (row, col) with (0, 0) at the top-left cell.

This file exposes:
    - State: (row, col) coordinate used directly as a table key
    - UP, DOWN, LEFT, RIGHT, ACTIONS, MOVES, ACTION_NAMES
    - WorldSettings: dataclass with the world configuration
    - GridWorld: the (stateless) transition and reward model
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Dict, Iterator, NamedTuple, Tuple

from .errors import ConfigurationError


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class State(NamedTuple):
    """A grid cell. Two states with equal coordinates are the same state."""
    row: int
    col: int


# Possible actions the agent can take in the grid world (↑↓←→)
# Encoded as: 0=Up, 1=Down, 2=Left, 3=Right. The order is also the tie-break order.
UP, DOWN, LEFT, RIGHT = 0, 1, 2, 3
ACTIONS: Tuple[int, ...] = (UP, DOWN, LEFT, RIGHT)
ACTION_NAMES: Tuple[str, ...] = ("up", "down", "left", "right")

MOVES: Dict[int, Tuple[int, int]] = {
    UP: (-1, 0),
    DOWN: (1, 0),
    LEFT: (0, -1),
    RIGHT: (0, 1),
}


@dataclass(frozen=True)
class WorldSettings:
    """
    WorldSettings
    -------------
    Immutable configuration for the GridWorld.

    Parameters
    ----------
    size : int
        Number of rows and columns of the (square) grid.
    start : tuple[int, int]
        Start cell (row, col) used by Q-learning episodes.
    goal : tuple[int, int]
        Goal cell (row, col).
    obstacles : tuple[tuple[int, int]], optional
        Impassable cells. Never updated by any algorithm.
    goal_reward : float
        Reward for a transition that lands on the goal.
    step_reward : float
        Reward for an ordinary move.
    wall_reward : float
        Reward when the move is blocked and the agent stays in place.
    """
    size: int = 5
    start: Tuple[int, int] = (0, 0)
    goal: Tuple[int, int] = (4, 4)
    obstacles: Tuple[Tuple[int, int], ...] = ((2, 2), (2, 3), (3, 2))

    goal_reward: float = 10.0
    step_reward: float = -1.0
    wall_reward: float = -1.0


class GridWorld:
    """
    Deterministic grid-world MDP used by both value iteration and Q-learning.

    Unlike an environment with an agent position, a GridWorld holds no mutable
    state: every query depends only on the settings, so it can be shared by
    any number of readers.

    Notes
    -----
    - A move that would leave the grid or enter an obstacle returns the
      original state (a wall bump).
    - The goal is not absorbing: the model keeps answering queries for it.
    """

    def __init__(self, settings: WorldSettings | None = None) -> None:
        """
        Validate the settings and cache lookups.

        Parameters
        ----------
        settings : WorldSettings or None
            World configuration. Defaults to the 5x5 layout.

        Raises
        ------
        ConfigurationError
            If the grid is too small, a coordinate is not an integer,
            start/goal/obstacles are out of bounds, or start/goal sit on an
            obstacle.
        """
        settings = settings if settings is not None else WorldSettings()

        if not _is_int(settings.size) or settings.size < 2:
            raise ConfigurationError(f"Grid size must be an integer >= 2, got {settings.size!r}")

        cells = [("Start", settings.start), ("Goal", settings.goal)]
        cells += [("Obstacle", cell) for cell in settings.obstacles]
        for name, cell in cells:
            if len(cell) != 2 or not all(_is_int(v) for v in cell):
                raise ConfigurationError(f"{name} must be a pair of integers, got {cell!r}")

        self.settings: WorldSettings = settings
        self.size: int = int(settings.size)
        self.start: State = State(*map(int, settings.start))
        self.goal: State = State(*map(int, settings.goal))
        self.obstacles: frozenset = frozenset(State(*map(int, cell)) for cell in settings.obstacles)

        # Validate critical cells
        for name, cell in (("Start", self.start), ("Goal", self.goal)):
            if not self.is_valid(cell):
                raise ConfigurationError(f"{name} is out of bounds: {tuple(cell)}")
            if cell in self.obstacles:
                raise ConfigurationError(f"{name} cannot be an obstacle: {tuple(cell)}")
        for cell in self.obstacles:
            if not self.is_valid(cell):
                raise ConfigurationError(f"Obstacle is out of bounds: {tuple(cell)}")

    def __repr__(self) -> str:
        return (f"GridWorld(size={self.size}, start={tuple(self.start)}, "
                f"goal={tuple(self.goal)}, obstacles={len(self.obstacles)})")

    # ---------------------------------------------------------------------
    # Cell predicates
    # ---------------------------------------------------------------------

    def is_valid(self, state: Tuple[int, int]) -> bool:
        """True iff 0 <= row < size and 0 <= col < size."""
        r, c = state
        return 0 <= r < self.size and 0 <= c < self.size

    def is_obstacle(self, state: Tuple[int, int]) -> bool:
        return State(*state) in self.obstacles

    def is_goal(self, state: Tuple[int, int]) -> bool:
        return State(*state) == self.goal

    # ---------------------------------------------------------------------
    # Transition & reward model
    # ---------------------------------------------------------------------

    def next_state(self, state: Tuple[int, int], action: int) -> State:
        """
        Apply an action's coordinate delta.

        Parameters
        ----------
        state : tuple[int, int]
            Current cell (row, col).
        action : int
            One of UP, DOWN, LEFT, RIGHT.

        Returns
        -------
        State
            The moved-to cell, or `state` itself if the move is blocked by
            the border or an obstacle.
        """
        dr, dc = MOVES[action]
        r, c = state
        candidate = State(r + dr, c + dc)

        # Block movement if out of bounds or into an obstacle
        if (not self.is_valid(candidate)) or candidate in self.obstacles:
            return State(r, c)
        return candidate

    def reward(self, state: Tuple[int, int], action: int, next_state: Tuple[int, int]) -> float:
        """
        Reward for the transition `state --action--> next_state`.

        The action identity is not used; the reward is fully determined by
        the pair (state, next_state):

        - goal_reward if `next_state` is the goal
        - wall_reward if the agent did not move (and `state` is not the goal)
        - step_reward otherwise
        """
        if self.is_goal(next_state):
            return self.settings.goal_reward
        if tuple(next_state) == tuple(state) and not self.is_goal(state):
            return self.settings.wall_reward
        return self.settings.step_reward

    # ---------------------------------------------------------------------
    # Enumeration helpers
    # ---------------------------------------------------------------------

    def all_cells(self) -> Iterator[State]:
        """Every cell in row-major order, obstacles included."""
        for r in range(self.size):
            for c in range(self.size):
                yield State(r, c)

    def states(self) -> Tuple[State, ...]:
        """Non-obstacle states in row-major order (the sweep order)."""
        return tuple(s for s in self.all_cells() if s not in self.obstacles)

    def neighbors(self, state: Tuple[int, int]) -> Tuple[State, ...]:
        """
        Cells reachable from `state` by one primitive move.

        Blocked moves are excluded; staying in place is *not* returned.
        """
        nbs = []
        for a in ACTIONS:
            q = self.next_state(state, a)
            if q != tuple(state):
                nbs.append(q)
        return tuple(nbs)
