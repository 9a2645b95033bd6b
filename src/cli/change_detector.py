"""Change detection between the workspace and the portal snapshot.

A workspace file is compared with the last-synced payload the repository
serves for it (see PortalRepository.get_original_content):

- added: the file maps to a document the snapshot does not contain
- modified: the document is tracked but the local content differs
- deleted: the snapshot tracks a document whose local file is missing

Files outside the three document folders are ignored.
"""

import logging
import os
from typing import Dict, Tuple

from src.cli.models import ChangeSet, DocumentChange
from src.models.portal_entities import PortalFileType
from src.portal_mapper.errors import FilesystemError
from src.portal_mapper.filesystem import list_workspace_files, read_base64, read_text
from src.scm.portal_repository import PortalRepository

logger = logging.getLogger(__name__)


def read_document(file_path: str, file_type: PortalFileType) -> str:
    """Read a workspace file as the payload the portal stores for its type."""
    if file_type == PortalFileType.WEB_FILE:
        return read_base64(file_path)
    return read_text(file_path)


class ChangeDetector:
    """Computes the ChangeSet of a workspace against a downloaded snapshot.

    Example:
        >>> detector = ChangeDetector(repository)
        >>> changes = detector.detect_changes()
        >>> print(f"Modified: {len(changes.modified)}")
    """

    def __init__(self, repository: PortalRepository):
        self.repository = repository
        self.path_mapper = repository.path_mapper

    def detect_changes(self) -> ChangeSet:
        store = self.repository.get_portal_data()
        changes = ChangeSet()
        seen: Dict[Tuple[PortalFileType, str], str] = {}

        for file_path in list_workspace_files(self.path_mapper.workspace_root):
            file_type = self.path_mapper.file_type_for_path(file_path)
            if file_type is None:
                logger.debug(f"Ignoring {file_path}, not a portal document")
                continue

            key = self.path_mapper.logical_name(file_path, file_type)
            seen[(file_type, key)] = file_path
            change = self._change(file_type, file_path)

            original = self.repository.get_original_content(
                self.repository.provide_original_resource(file_path)
            )
            if original is None:
                changes.added.append(change)
            elif self._differs(file_path, file_type, original):
                changes.modified.append(change)

        tracked = (
            (PortalFileType.WEB_TEMPLATE, store.web_templates),
            (PortalFileType.CONTENT_SNIPPET, store.content_snippets),
            (PortalFileType.WEB_FILE, store.web_files),
        )
        for file_type, collection in tracked:
            for key in collection:
                if (file_type, key) in seen:
                    continue
                expected = self.path_mapper.expected_path(key, file_type, store)
                changes.deleted.append(self._change(file_type, expected))

        logger.info(
            f"Detected {len(changes.added)} added, {len(changes.modified)} modified, "
            f"{len(changes.deleted)} deleted document(s)"
        )
        return changes

    def _differs(self, file_path: str, file_type: PortalFileType, original: str) -> bool:
        # Unreadable files count as modified so the push reports them per file
        try:
            return read_document(file_path, file_type) != original
        except FilesystemError as e:
            logger.warning(f"Could not read {file_path}: {e}")
            return True

    def _change(self, file_type: PortalFileType, file_path: str) -> DocumentChange:
        return DocumentChange(
            file_type=file_type,
            file_path=os.path.abspath(file_path),
            relative_path=self.path_mapper.relative_path(file_path),
        )
