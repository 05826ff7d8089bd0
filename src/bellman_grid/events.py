"""
events.py - Notification payloads emitted while the engines update tables.

These are plain read-only records: an observer may keep them, but they never
alias the live tables.
"""

from __future__ import annotations

from typing import Callable, NamedTuple, Optional

from .gridworld import State


class Visit(NamedTuple):
    """
    One completed unit of update.

    Attributes
    ----------
    state : State
        The state that was backed up (value iteration) or acted from (Q-learning).
    action : int
        Greedy action after a value backup, or the action taken by Q-learning.
    next_state : State
        Resulting cell of `action`.
    reward : float
        Transition reward.
    value : float
        New V(state) for value iteration, new Q(state, action) for Q-learning.
    change : float
        Absolute change of the updated entry.
    """
    state: State
    action: int
    next_state: State
    reward: float
    value: float
    change: float


VisitHook = Callable[[Visit], None]
KeepGoing = Callable[[], bool]


def _always() -> bool:
    return True


def keep_going_or_default(keep_going: Optional[KeepGoing]) -> KeepGoing:
    return keep_going if keep_going is not None else _always
