"""Data models for CLI operations.

This module defines the exit codes and the change/summary records passed
between the change detector, the sync command and the output handler.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

from src.models.portal_entities import PortalFileType


class ExitCode(IntEnum):
    """Exit codes for CLI operations.

    - SUCCESS (0): Operation completed successfully
    - GENERAL_ERROR (1): General error (config issues, validation failures)
    - AUTH_ERROR (3): Authentication or authorization failure
    - NETWORK_ERROR (4): Network connectivity or API availability issues
    - CANCELLED (5): The user cancelled the operation

    Example:
        >>> exit_code = ExitCode.SUCCESS
        >>> sys.exit(exit_code)
    """
    SUCCESS = 0
    GENERAL_ERROR = 1
    AUTH_ERROR = 3
    NETWORK_ERROR = 4
    CANCELLED = 5


@dataclass
class DocumentChange:
    """A workspace file that differs from the last downloaded snapshot.

    Attributes:
        file_type: Portal document type of the file
        file_path: Absolute local path
        relative_path: Workspace-relative path for display
    """
    file_type: PortalFileType
    file_path: str
    relative_path: str


@dataclass
class ChangeSet:
    """Result of comparing the workspace with the portal snapshot.

    Attributes:
        added: Files in the workspace that the portal does not know
        modified: Tracked files whose content differs from the portal
        deleted: Tracked documents whose local file is gone
    """
    added: List[DocumentChange] = field(default_factory=list)
    modified: List[DocumentChange] = field(default_factory=list)
    deleted: List[DocumentChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)


@dataclass
class SyncSummary:
    """Counts of documents processed by pull or push.

    Example:
        >>> summary = SyncSummary(added_count=2, updated_count=1)
        >>> print(f"Added {summary.added_count} documents")
    """
    pulled_count: int = 0
    added_count: int = 0
    updated_count: int = 0
    deleted_count: int = 0
    failed_count: int = 0
