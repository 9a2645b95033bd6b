"""Portal mapper library for the portal workspace.

This package maps portal documents (web templates, content snippets and web
files) to files in the local workspace and back, and holds the workspace
configuration and file-system helpers.
"""

from .path_mapper import (
    PathMapper,
    FOLDER_TEMPLATES,
    FOLDER_CONTENT_SNIPPETS,
    FOLDER_WEB_FILES,
)
from .models import PortalConfig
from .errors import (
    PortalMapperError,
    FilesystemError,
    ConfigError,
    PathMappingError,
)
from .config_loader import ConfigLoader
from .filesystem import create_folder, list_workspace_files

__all__ = [
    'PathMapper',
    'FOLDER_TEMPLATES',
    'FOLDER_CONTENT_SNIPPETS',
    'FOLDER_WEB_FILES',
    'PortalConfig',
    'PortalMapperError',
    'FilesystemError',
    'ConfigError',
    'PathMappingError',
    'ConfigLoader',
    'create_folder',
    'list_workspace_files',
]
