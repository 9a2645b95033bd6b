"""Pull, status and push orchestration for the CLI.

This module provides the SyncCommand class that wires the configuration,
the Dynamics client and the PortalRepository together and runs the
workspace-level workflows:

- pull: download the portal and write every document into the workspace
- status: download silently and list local changes
- push: download silently, then add, update and delete documents remotely
"""

import logging
import os
import signal
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from src.cli.change_detector import ChangeDetector, read_document
from src.cli.errors import CLIError
from src.cli.models import ChangeSet, DocumentChange, ExitCode, SyncSummary
from src.cli.output import OutputHandler
from src.dynamics_client.api_wrapper import DynamicsApi
from src.dynamics_client.auth import Authenticator
from src.dynamics_client.errors import (
    APIAccessError,
    APIUnreachableError,
    InvalidCredentialsError,
    SyncError,
)
from src.models.portal_data import PortalData
from src.models.portal_entities import PortalFileType
from src.portal_mapper.config_loader import ConfigLoader
from src.portal_mapper.errors import ConfigError, FilesystemError
from src.portal_mapper.filesystem import write_base64, write_text
from src.portal_mapper.models import PortalConfig
from src.scm.cancellation import CancellationToken
from src.scm.chooser import Chooser, ConsoleChooser
from src.scm.errors import RepositoryError
from src.scm.portal_repository import PortalRepository

logger = logging.getLogger(__name__)


class SyncCommand:
    """Runs the workspace workflows and maps failures to exit codes.

    Example:
        >>> output = OutputHandler(verbosity=1)
        >>> sync_cmd = SyncCommand(output_handler=output)
        >>> exit_code = sync_cmd.pull()
        >>> sys.exit(exit_code)
    """

    def __init__(
        self,
        config_path: str = ConfigLoader.DEFAULT_CONFIG_PATH,
        workspace_root: str = ".",
        output_handler: Optional[OutputHandler] = None,
        chooser: Optional[Chooser] = None,
        authenticator: Optional[Authenticator] = None,
        repository: Optional[PortalRepository] = None,
    ):
        """Initialize sync command with dependencies.

        Args:
            config_path: Path to configuration YAML file
            workspace_root: Root folder of the mirrored workspace
            output_handler: OutputHandler for terminal output (optional)
            chooser: Chooser for interactive selections (optional)
            authenticator: Authenticator for the Dynamics API (optional)
            repository: Pre-built repository (optional, mainly for testing)
        """
        self.config_path = config_path
        self.workspace_root = workspace_root
        self.output_handler = output_handler or OutputHandler()
        self.chooser = chooser or ConsoleChooser(self.output_handler.console)
        self.authenticator = authenticator
        self.repository = repository
        self.config: Optional[PortalConfig] = None
        self._cancelled = False

    # Commands

    def pull(self) -> ExitCode:
        return self._run(self._pull)

    def status(self) -> ExitCode:
        return self._run(self._status)

    def push(self) -> ExitCode:
        return self._run(self._push)

    def switch_portal(self) -> ExitCode:
        """Forget the configured portal so the next pull asks for one."""
        def _switch() -> ExitCode:
            config = ConfigLoader.load(self.config_path)
            previous = config.portal_name
            if self.repository is not None:
                self.repository.switch_portal()
            ConfigLoader.save(
                self.config_path,
                PortalConfig(use_folders_for_web_files=config.use_folders_for_web_files),
            )
            if previous:
                self.output_handler.success(f"Disconnected from portal '{previous}'")
            else:
                self.output_handler.info("No portal was configured")
            self.output_handler.info("The next pull will ask for a portal")
            return ExitCode.SUCCESS

        return self._run(_switch)

    # Workflows

    def _pull(self) -> ExitCode:
        repository = self._get_repository()
        data = self._download(repository, silent=False)
        if data is None:
            return ExitCode.CANCELLED
        if repository.get_portal_data() is not data:
            self.output_handler.error("Download did not complete, workspace left unchanged")
            return ExitCode.GENERAL_ERROR

        self._save_portal_selection(repository)
        if data.is_empty:
            self.output_handler.warning(f"Portal '{data.portal_name}' has no templates, snippets or files")
        summary = self._write_snapshot(repository, data)
        self.output_handler.print_pull_summary(summary, data.portal_name)
        return ExitCode.GENERAL_ERROR if summary.failed_count else ExitCode.SUCCESS

    def _status(self) -> ExitCode:
        repository = self._get_repository()
        changes = self._detect(repository)
        if changes is None:
            return ExitCode.CANCELLED if self._cancelled else ExitCode.GENERAL_ERROR
        self.output_handler.print_status(changes)
        return ExitCode.SUCCESS

    def _push(self) -> ExitCode:
        repository = self._get_repository()
        changes = self._detect(repository)
        if changes is None:
            return ExitCode.CANCELLED if self._cancelled else ExitCode.GENERAL_ERROR

        summary = SyncSummary()
        for change in changes.added:
            if self._apply(repository, 'add', change, summary):
                summary.added_count += 1
        for change in changes.modified:
            if self._apply(repository, 'update', change, summary):
                summary.updated_count += 1
        for change in changes.deleted:
            if self._apply(repository, 'delete', change, summary):
                summary.deleted_count += 1

        self.output_handler.print_push_summary(summary)
        return ExitCode.GENERAL_ERROR if summary.failed_count else ExitCode.SUCCESS

    # Helpers

    def _run(self, workflow: Callable[[], ExitCode]) -> ExitCode:
        try:
            return workflow()

        except InvalidCredentialsError as e:
            logger.error(f"Authentication failed: {e}")
            self.output_handler.error(f"Authentication failed: {e}")
            self.output_handler.info(
                "Check D365_INSTANCE_NAME, D365_CRM_REGION, AAD_TENANT_ID, AAD_CLIENT_ID "
                "and AAD_CLIENT_SECRET, or run 'portal-sync init'"
            )
            return ExitCode.AUTH_ERROR

        except (APIUnreachableError, APIAccessError) as e:
            logger.error(f"API error: {e}")
            self.output_handler.error(f"API error: {e}")
            self.output_handler.info("Check your internet connection and try again")
            return ExitCode.NETWORK_ERROR

        except (ConfigError, FilesystemError) as e:
            logger.error(f"Configuration error: {e}")
            self.output_handler.error(f"Configuration error: {e}")
            return ExitCode.GENERAL_ERROR

        except (CLIError, RepositoryError) as e:
            logger.error(f"Sync error: {e}")
            self.output_handler.error(f"Error: {e}")
            return ExitCode.GENERAL_ERROR

        except Exception as e:
            logger.exception("Unexpected error during sync")
            self.output_handler.error(f"Unexpected error: {e}")
            return ExitCode.GENERAL_ERROR

    def _get_repository(self) -> PortalRepository:
        if self.config is None:
            logger.info(f"Loading configuration from {self.config_path}")
            self.config = ConfigLoader.load(self.config_path)

        if self.repository is None:
            if self.authenticator is None:
                self.authenticator = Authenticator()
            credentials = self.authenticator.get_credentials()
            self.repository = PortalRepository(
                self.workspace_root,
                self.config,
                DynamicsApi(self.authenticator),
                self.chooser,
                output_handler=self.output_handler,
                instance_name=credentials.instance_name,
            )
        return self.repository

    @contextmanager
    def _cancel_on_interrupt(self, token: CancellationToken) -> Iterator[None]:
        def _handler(signum, frame):
            self.output_handler.warning("Cancelling after the current request...")
            token.cancel()

        previous = signal.signal(signal.SIGINT, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)

    def _download(self, repository: PortalRepository, silent: bool) -> Optional[PortalData]:
        """Download with a progress bar; returns None when the user cancelled."""
        token = CancellationToken()
        self._cancelled = False

        with self._cancel_on_interrupt(token):
            with self.output_handler.progress_bar(100, "Downloading") as progress:
                task = progress.add_task("Downloading", total=100)

                def report(increment: int, message: Optional[str]) -> None:
                    if message:
                        progress.update(task, advance=increment, description=message)
                    else:
                        progress.update(task, advance=increment)

                data = repository.download(silent, token, report)

        if token.is_cancelled:
            self._cancelled = True
            self.output_handler.warning("Download cancelled, nothing was changed")
            return None
        return data

    def _detect(self, repository: PortalRepository) -> Optional[ChangeSet]:
        data = self._download(repository, silent=True)
        if data is None:
            return None
        if repository.get_portal_data() is not data:
            self.output_handler.error("Download did not complete, cannot compare the workspace")
            return None
        self._save_portal_selection(repository)
        return ChangeDetector(repository).detect_changes()

    def _apply(
        self,
        repository: PortalRepository,
        action: str,
        change: DocumentChange,
        summary: SyncSummary,
    ) -> bool:
        try:
            if action == 'add':
                repository.add_document_to_repository(
                    change.file_type, change.file_path, read_document(change.file_path, change.file_type)
                )
            elif action == 'update':
                repository.update_document_in_repository(
                    change.file_type, change.file_path, read_document(change.file_path, change.file_type)
                )
            else:
                repository.delete_document_in_repository(change.file_type, change.file_path)
        except SyncError as e:
            logger.error(f"Failed to {action} {change.relative_path}: {e}")
            self.output_handler.error(f"{change.relative_path}: {e}")
            summary.failed_count += 1
            return False
        self.output_handler.info(f"Pushed {change.relative_path} ({action})")
        return True

    def _write_snapshot(self, repository: PortalRepository, data: PortalData) -> SyncSummary:
        summary = SyncSummary()
        mapper = repository.path_mapper

        documents = (
            [(PortalFileType.WEB_TEMPLATE, key, template.source) for key, template in data.web_templates.items()]
            + [(PortalFileType.CONTENT_SNIPPET, key, snippet.source) for key, snippet in data.content_snippets.items()]
            + [(PortalFileType.WEB_FILE, key, web_file.b64_content) for key, web_file in data.web_files.items()]
        )

        for file_type, key, content in documents:
            try:
                file_path = mapper.local_path(key, file_type, data)
                if file_type == PortalFileType.WEB_FILE:
                    write_base64(file_path, content)
                else:
                    write_text(file_path, content)
            except FilesystemError as e:
                logger.error(f"Could not write {key}: {e}")
                self.output_handler.error(str(e))
                summary.failed_count += 1
                continue
            summary.pulled_count += 1
            self.output_handler.debug(f"Wrote {mapper.relative_path(file_path)}")

        return summary

    def _save_portal_selection(self, repository: PortalRepository) -> None:
        """Persist the portal and page template chosen during download."""
        config = self.config or PortalConfig()
        updated = PortalConfig(
            portal_id=repository.portal_id,
            portal_name=repository.portal_name,
            default_page_template=repository.default_page_template,
            use_folders_for_web_files=config.use_folders_for_web_files,
        )
        if updated == config and os.path.exists(self.config_path):
            return
        ConfigLoader.save(self.config_path, updated)
        self.config = updated
        logger.info(f"Saved portal selection '{repository.portal_name}' to {self.config_path}")
