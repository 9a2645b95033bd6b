"""Typed exception hierarchy for repository errors.

All exceptions inherit from RepositoryError, which itself is a SyncError, so
callers that only care about "sync failed" can catch the common base.
"""

from typing import Optional

from src.dynamics_client.errors import SyncError


class RepositoryError(SyncError):
    """Base exception for all repository errors."""
    pass


class ConfigurationError(RepositoryError):
    """Raised when a required setting or identifier is missing."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(message)
        self.setting = setting


class DocumentNotFoundError(RepositoryError):
    """Raised when a local path has no counterpart in the portal snapshot."""

    def __init__(self, file_path: str):
        super().__init__(f"Could not find file in portal data with path {file_path}")
        self.file_path = file_path


class IntegrityError(RepositoryError):
    """Raised when remote data violates an assumption the repository relies on."""

    def __init__(self, message: str, remediation: Optional[str] = None):
        full_message = message
        if remediation:
            full_message = f"{message} {remediation}"
        super().__init__(full_message)
        self.remediation = remediation


class RepositoryBusyError(RepositoryError):
    """Raised when an operation is started while another one is in flight."""

    def __init__(self, running_operation: str, requested_operation: str):
        super().__init__(
            f"Cannot start '{requested_operation}' while '{running_operation}' is running"
        )
        self.running_operation = running_operation
        self.requested_operation = requested_operation
