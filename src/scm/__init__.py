"""Source-control style synchronization between a portal and the workspace.

This package provides the PortalRepository, which downloads portal snapshots
and pushes local additions, edits and deletions back to Dynamics, together
with the web page resolver, cancellation token and chooser it relies on.
"""

from .portal_repository import PortalRepository, POWERAPPSPORTAL_SCHEME
from .web_page_resolver import WebPageResolver
from .cancellation import CancellationToken
from .chooser import Chooser, ConsoleChooser, PickItem
from .errors import (
    RepositoryError,
    ConfigurationError,
    DocumentNotFoundError,
    IntegrityError,
    RepositoryBusyError,
)

__all__ = [
    'PortalRepository',
    'POWERAPPSPORTAL_SCHEME',
    'WebPageResolver',
    'CancellationToken',
    'Chooser',
    'ConsoleChooser',
    'PickItem',
    'RepositoryError',
    'ConfigurationError',
    'DocumentNotFoundError',
    'IntegrityError',
    'RepositoryBusyError',
]
