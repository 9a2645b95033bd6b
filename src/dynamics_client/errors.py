"""Typed exception hierarchy for Dynamics Web API errors.

This module defines all custom exceptions raised by the Dynamics client library.
All remote failures inherit from DynamicsError so callers can tell a transport
or validation failure from a local configuration problem.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all portal-bidir-sync errors.

    Use this to catch any application-level error from the sync tool.
    """
    pass


class DynamicsError(SyncError):
    """Base exception for all Dynamics-related (remote) errors."""
    pass


class InvalidCredentialsError(DynamicsError):
    """Raised when credentials are missing or authentication fails."""

    def __init__(self, client_id: str, endpoint: str):
        super().__init__(
            f"Credentials are invalid (client id: {client_id}, endpoint: {endpoint})"
        )
        self.client_id = client_id
        self.endpoint = endpoint


class RecordNotFoundError(DynamicsError):
    """Raised when a requested record does not exist."""

    def __init__(self, entity_set: str, record_id: Optional[str] = None):
        if record_id:
            message = f"Record {record_id} not found in {entity_set}"
        else:
            message = f"Record not found in {entity_set}"
        super().__init__(message)
        self.entity_set = entity_set
        self.record_id = record_id


class APIUnreachableError(DynamicsError):
    """Raised when the Dynamics Web API is not available or unreachable."""

    def __init__(self, endpoint: str):
        super().__init__(f"API is not available at {endpoint}")
        self.endpoint = endpoint


class APIAccessError(DynamicsError):
    """Raised when API access fails after retries or due to validation errors."""

    def __init__(self, message: str = "Dynamics API failure (after 3 retries)"):
        super().__init__(message)
