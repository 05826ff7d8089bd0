"""Exceptions raised by bellman_grid."""


class BellmanGridError(Exception):
    """Base class for all package errors."""


class ConfigurationError(BellmanGridError, ValueError):
    """Invalid world layout or run parameters. Values are never clamped."""


class InvalidCommandError(BellmanGridError, RuntimeError):
    """A command that is not allowed in the controller's current status."""
