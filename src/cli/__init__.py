"""Command-line interface for the portal workspace.

This package provides the `portal-sync` CLI tool that connects a workspace
to a Dynamics instance, pulls a portal's templates, snippets and web files,
and pushes local changes back, with progress indication and error handling.
"""

from .sync_command import SyncCommand
from .init_command import InitCommand
from .change_detector import ChangeDetector
from .wizard import MultiStepInput, FlowAction, WizardState
from .models import ExitCode, ChangeSet, DocumentChange, SyncSummary
from .errors import CLIError, InitError

__all__ = [
    'SyncCommand',
    'InitCommand',
    'ChangeDetector',
    'MultiStepInput',
    'FlowAction',
    'WizardState',
    'ExitCode',
    'ChangeSet',
    'DocumentChange',
    'SyncSummary',
    'CLIError',
    'InitError',
]
