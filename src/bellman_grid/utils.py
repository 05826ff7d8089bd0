"""
utils.py - Small, reusable helpers around the GridWorld model.

Includes:
- Seeding and RNG utilities
- Breadth-first shortest path (ground truth for learned policies)
- Greedy policy rollout from the start state
"""

from __future__ import annotations

from collections import deque
from typing import Dict, List, Optional, Tuple

import numpy as np

from .gridworld import GridWorld, State


# -----------------------------
# Reproducibility / RNG
# -----------------------------

def set_seed(seed: Optional[int] = None) -> np.random.Generator:
    """
    Create a NumPy Generator seeded with `seed`.

    Parameters
    ----------
    seed : int or None
        If None, uses unpredictable entropy; else deterministic.

    Returns
    -------
    np.random.Generator
    """
    return np.random.default_rng(seed)


# -----------------------------
# Paths
# -----------------------------

def shortest_path_length(world: GridWorld,
                         start: Optional[Tuple[int, int]] = None,
                         goal: Optional[Tuple[int, int]] = None) -> Optional[int]:
    """
    Number of moves on a shortest obstacle-avoiding path, via BFS.

    Parameters
    ----------
    world : GridWorld
    start, goal : tuple[int, int] or None
        Defaults to the world's start and goal cells.

    Returns
    -------
    int or None
        Path length, or None if the goal is unreachable.
    """
    start = State(*(start if start is not None else world.start))
    goal = State(*(goal if goal is not None else world.goal))

    dist: Dict[State, int] = {start: 0}
    frontier = deque([start])
    while frontier:
        s = frontier.popleft()
        if s == goal:
            return dist[s]
        for nb in world.neighbors(s):
            if nb not in dist:
                dist[nb] = dist[s] + 1
                frontier.append(nb)
    return None


def greedy_rollout(world: GridWorld, policy: np.ndarray,
                   max_steps: int = 1000) -> List[State]:
    """
    Follow a deterministic policy array from the start state.

    Parameters
    ----------
    world : GridWorld
    policy : np.ndarray of shape (size, size)
        Action per cell, as held by PolicyTable / Snapshot.policy.
    max_steps : int
        Safety cap; the rollout is truncated if the goal is not reached.

    Returns
    -------
    list[State]
        Visited cells, starting with the start cell. The goal is the last
        element iff it was reached.
    """
    s = world.start
    path = [s]
    for _ in range(max_steps):
        if world.is_goal(s):
            break
        s = world.next_state(s, int(policy[s.row, s.col]))
        path.append(s)
    return path
