"""
Package init - expose a clean, minimal API for end users.

Usage
-----
from bellman_grid import GridWorld, WorldSettings
from bellman_grid import SimulationController, SimulationConfig
from bellman_grid import value_iteration
from bellman_grid import utils    # Optional: seeding, BFS, rollouts
"""

import logging

from .controller import (
    Algorithm,
    RunState,
    SimulationConfig,
    SimulationController,
    SimulationHooks,
    Snapshot,
    Status,
)
from .convergence import ConvergenceTracker
from .errors import BellmanGridError, ConfigurationError, InvalidCommandError
from .events import Visit
from .gridworld import ACTION_NAMES, ACTIONS, DOWN, LEFT, RIGHT, UP, GridWorld, State, WorldSettings
from .q_learning import QLearningEngine
from .tables import PolicyTable, QTable, ValueTable
from .value_iteration import ValueIterationEngine, value_iteration

# Expose utils as a module so users can do: from bellman_grid import utils
from . import utils

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "GridWorld",
    "WorldSettings",
    "State",
    "ACTIONS",
    "ACTION_NAMES",
    "UP",
    "DOWN",
    "LEFT",
    "RIGHT",
    "ValueTable",
    "QTable",
    "PolicyTable",
    "ValueIterationEngine",
    "value_iteration",
    "QLearningEngine",
    "ConvergenceTracker",
    "SimulationController",
    "SimulationConfig",
    "SimulationHooks",
    "RunState",
    "Snapshot",
    "Status",
    "Algorithm",
    "Visit",
    "BellmanGridError",
    "ConfigurationError",
    "InvalidCommandError",
    "utils",
]

__version__ = "0.1.0"
