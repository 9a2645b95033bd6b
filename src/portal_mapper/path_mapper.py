"""Bidirectional mapping between portal documents and workspace files.

The workspace has one top-level folder per document type:

    <workspace>/Web Templates/<name>.html
    <workspace>/Content Snippets/<sub/folders>/<lang>/<base>.html
    <workspace>/Web Files/[<page/full/path>/]<file name>

``local_path`` goes from a logical name to a path (creating folders on the
way) and ``logical_name`` goes back. The round trip is stable: the logical
name of a mapped path is the lower-cased name it was mapped from.
"""

import logging
import os
from typing import List, Optional

from src.models.portal_data import PortalData
from src.models.portal_entities import (
    PortalFileType,
    split_snippet_key as split_key,
)
from .errors import PathMappingError
from .filesystem import create_folder

logger = logging.getLogger(__name__)

FOLDER_TEMPLATES = 'Web Templates'
FOLDER_CONTENT_SNIPPETS = 'Content Snippets'
FOLDER_WEB_FILES = 'Web Files'

TEMPLATE_EXTENSION = '.html'

FOLDERS_BY_TYPE = {
    PortalFileType.WEB_TEMPLATE: FOLDER_TEMPLATES,
    PortalFileType.CONTENT_SNIPPET: FOLDER_CONTENT_SNIPPETS,
    PortalFileType.WEB_FILE: FOLDER_WEB_FILES,
}


class PathMapper:
    """Maps logical portal names to local paths and back.

    Args:
        workspace_root: Root folder of the mirrored workspace
        use_folders_for_web_files: Place web files under their parent page's
            full path instead of flat under Web Files
    """

    def __init__(self, workspace_root: str, use_folders_for_web_files: bool = False):
        self.workspace_root = os.path.abspath(workspace_root)
        self.use_folders_for_web_files = use_folders_for_web_files

    def type_folder(self, file_type: PortalFileType) -> str:
        return os.path.join(self.workspace_root, FOLDERS_BY_TYPE[file_type])

    def local_path(
        self,
        name: str,
        file_type: PortalFileType,
        store: Optional[PortalData] = None,
    ) -> str:
        """Return the local path for a document, creating its folder first.

        Args:
            name: Logical name (snippets: slash-delimited, usually already
                language-injected; web files: the note's file name)
            file_type: Document type
            store: Snapshot used to find a web file's tracked folder path

        Returns:
            Absolute path of the local file

        Raises:
            FilesystemError: If a required folder cannot be created
        """
        file_path = self.expected_path(name, file_type, store)
        create_folder(os.path.dirname(file_path))
        return file_path

    def expected_path(
        self,
        name: str,
        file_type: PortalFileType,
        store: Optional[PortalData] = None,
    ) -> str:
        """Same mapping as local_path without touching the file system."""
        if file_type == PortalFileType.CONTENT_SNIPPET:
            segments = [segment for segment in name.split('/') if segment]
            base_name = segments.pop() if segments else name
            folder = os.path.join(self.type_folder(file_type), *segments)
            return os.path.join(folder, base_name.lower() + TEMPLATE_EXTENSION)

        if file_type == PortalFileType.WEB_FILE:
            folder = self.type_folder(file_type)
            if self.use_folders_for_web_files and store is not None:
                web_file = store.get_web_file(name)
                if web_file is not None and web_file.file_path:
                    folder = os.path.join(folder, *web_file.file_path.split('/'))
            return os.path.join(folder, name.lower())

        return os.path.join(self.type_folder(file_type), name.lower() + TEMPLATE_EXTENSION)

    def logical_name(self, file_path: str, file_type: PortalFileType) -> str:
        """Inverse of local_path: the lower-cased store key for a local file.

        Raises:
            PathMappingError: If the path is outside the type's folder
        """
        return self.document_name(file_path, file_type).lower()

    def document_name(self, file_path: str, file_type: PortalFileType) -> str:
        """Like logical_name, but keeps the case the user gave the file.

        Used as the remote name when a new document is created.
        """
        relative = self._relative_to_type_folder(file_path, file_type)

        if file_type == PortalFileType.WEB_FILE:
            return os.path.basename(relative)

        if relative.lower().endswith(TEMPLATE_EXTENSION):
            relative = relative[:-len(TEMPLATE_EXTENSION)]

        if file_type == PortalFileType.WEB_TEMPLATE:
            return os.path.basename(relative)
        return '/'.join(relative.split(os.sep))

    @staticmethod
    def split_snippet_key(key: str) -> tuple:
        return split_key(key)

    def language_code_from_path(self, file_path: str) -> Optional[str]:
        """Language code of a snippet file (its parent folder's name).

        Returns None when the snippet sits directly under the Content
        Snippets folder, where no language can be derived.
        """
        key = self.logical_name(file_path, PortalFileType.CONTENT_SNIPPET)
        if '/' not in key:
            return None
        return split_key(key)[1]

    def file_type_for_path(self, file_path: str) -> Optional[PortalFileType]:
        """Document type for a workspace path, or None if it is not a portal document."""
        parts = self.relative_path(file_path).split('/')
        if len(parts) < 2:
            return None
        for file_type, folder in FOLDERS_BY_TYPE.items():
            if parts[0] == folder:
                return file_type
        return None

    def relative_path(self, file_path: str) -> str:
        """Workspace-relative path with forward slashes."""
        relative = os.path.relpath(os.path.abspath(file_path), self.workspace_root)
        return relative.replace(os.sep, '/')

    def web_file_folder_parts(self, file_path: str) -> List[str]:
        """Folder segments of a web file relative to the workspace.

        Example:
            <workspace>/Web Files/Docs/Policies/file.pdf -> ['Web Files', 'Docs', 'Policies']
        """
        folder = os.path.dirname(os.path.abspath(file_path))
        relative = os.path.relpath(folder, self.workspace_root)
        return [part for part in relative.split(os.sep) if part and part != '.']

    def _relative_to_type_folder(self, file_path: str, file_type: PortalFileType) -> str:
        type_folder = self.type_folder(file_type)
        absolute = os.path.abspath(file_path)
        relative = os.path.relpath(absolute, type_folder)
        if relative == '.' or relative.startswith('..') or os.path.isabs(relative):
            raise PathMappingError(file_path, f"not inside '{FOLDERS_BY_TYPE[file_type]}'")
        return relative
