"""File-system primitives used by the path mapper and the CLI.

Each call is assumed atomic. Failures are reported as FilesystemError naming
the offending path.
"""

import base64
import logging
import os
from typing import List

from .errors import FilesystemError

logger = logging.getLogger(__name__)

# Workspace folders that never contain portal documents
IGNORED_DIRECTORIES = {'.portal-sync', '.git', '.vscode'}


def create_folder(folder_path: str) -> None:
    """Create a directory (and parents) if it does not exist yet.

    Raises:
        FilesystemError: If the directory cannot be created
    """
    try:
        os.makedirs(folder_path, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create folder {folder_path}")
        raise FilesystemError(folder_path, 'create_directory', str(e))


def list_workspace_files(workspace_root: str) -> List[str]:
    """List every file currently present under the workspace root.

    Tool directories (.portal-sync, .git, .vscode) are skipped.

    Returns:
        Absolute file paths, sorted
    """
    files = []
    for dirpath, dirnames, filenames in os.walk(workspace_root):
        dirnames[:] = [name for name in dirnames if name not in IGNORED_DIRECTORIES]
        for filename in filenames:
            files.append(os.path.abspath(os.path.join(dirpath, filename)))
    return sorted(files)


def read_text(file_path: str) -> str:
    try:
        with open(file_path, 'r', encoding='utf-8', newline='') as f:
            return f.read()
    except OSError as e:
        raise FilesystemError(file_path, 'read', str(e))
    except UnicodeDecodeError as e:
        raise FilesystemError(file_path, 'decode', str(e))


def write_text(file_path: str, content: str) -> None:
    try:
        with open(file_path, 'w', encoding='utf-8', newline='') as f:
            f.write(content)
    except OSError as e:
        raise FilesystemError(file_path, 'write', str(e))


def read_base64(file_path: str) -> str:
    """Read a binary file and return its content base64-encoded."""
    try:
        with open(file_path, 'rb') as f:
            return base64.b64encode(f.read()).decode('ascii')
    except OSError as e:
        raise FilesystemError(file_path, 'read', str(e))


def write_base64(file_path: str, b64_content: str) -> None:
    """Decode base64 content and write it as a binary file."""
    try:
        data = base64.b64decode(b64_content or "")
    except (ValueError, TypeError) as e:
        raise FilesystemError(file_path, 'decode', str(e))

    try:
        with open(file_path, 'wb') as f:
            f.write(data)
    except OSError as e:
        raise FilesystemError(file_path, 'write', str(e))
