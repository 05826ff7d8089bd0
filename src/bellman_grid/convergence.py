"""Convergence check shared by value iteration and Q-learning."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np


@dataclass(frozen=True)
class ConvergenceTracker:
    """
    Stateless max-change test.

    Parameters
    ----------
    threshold : float
        A sweep / iteration whose largest absolute change is strictly below
        this value counts as converged.
    """
    threshold: float = 0.001

    @staticmethod
    def max_change(deltas: Iterable[float]) -> float:
        """Largest absolute delta; 0.0 when nothing was updated."""
        arr = np.abs(np.fromiter(deltas, dtype=float))
        return float(arr.max()) if arr.size else 0.0

    def converged(self, max_change: float) -> bool:
        return max_change < self.threshold
