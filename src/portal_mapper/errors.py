"""Typed exception hierarchy for portal mapper errors.

This module defines all custom exceptions used by the portal mapper library.
All exceptions inherit from PortalMapperError and include descriptive
messages with context to help with debugging.
"""

from typing import Optional

from src.dynamics_client.errors import SyncError


class PortalMapperError(SyncError):
    """Base exception for all portal mapper errors."""
    pass


class FilesystemError(PortalMapperError):
    """Raised when filesystem operations fail (mkdir, read, write, permissions)."""

    def __init__(self, file_path: str, operation: str, reason: Optional[str] = None):
        message = f"Filesystem operation '{operation}' failed for {file_path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason


class ConfigError(PortalMapperError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, config_field: Optional[str] = None):
        if config_field:
            full_message = f"Configuration error in field '{config_field}': {message}"
        else:
            full_message = f"Configuration error: {message}"
        super().__init__(full_message)
        self.config_field = config_field
        self.original_message = message


class PathMappingError(PortalMapperError):
    """Raised when a local path cannot be mapped to a portal document."""

    def __init__(self, file_path: str, reason: str):
        super().__init__(f"Cannot map {file_path} to a portal document: {reason}")
        self.file_path = file_path
        self.reason = reason
