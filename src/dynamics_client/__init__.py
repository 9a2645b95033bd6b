"""Dynamics 365 client library for portal sync.

This package provides Python abstractions over the Dynamics 365 Web API for the
portal entities (websites, web templates, content snippets, web pages, web
files and their notes).
"""

from .errors import (
    SyncError,
    DynamicsError,
    InvalidCredentialsError,
    RecordNotFoundError,
    APIUnreachableError,
    APIAccessError,
)

__all__ = [
    "SyncError",
    "DynamicsError",
    "InvalidCredentialsError",
    "RecordNotFoundError",
    "APIUnreachableError",
    "APIAccessError",
]
