"""Typed exception hierarchy for CLI-related errors.

All exceptions inherit from CLIError, which itself is a SyncError, so the
command runners can map every failure family to an exit code.
"""

from src.dynamics_client.errors import SyncError


class CLIError(SyncError):
    """Base exception for all CLI-related errors."""
    pass


class InitError(CLIError):
    """Raised when the configuration wizard cannot complete."""

    def __init__(self, message: str):
        super().__init__(message)
