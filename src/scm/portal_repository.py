"""Synchronization repository between a portal and the local workspace.

PortalRepository owns the portal snapshot (PortalData). A download replaces
the snapshot wholesale; add, update and delete change single entries, and
only after Dynamics confirmed the change. The one exception is deleting a web
file: the local entry is removed even when the remote delete failed.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, Optional, Set, Tuple

from src.dynamics_client.api_wrapper import DynamicsApi
from src.dynamics_client.errors import DynamicsError, SyncError
from src.models.portal_data import PortalData
from src.models.portal_entities import (
    DEFAULT_LANGUAGE_CODE,
    ContentSnippet,
    Note,
    PortalFileType,
    PortalLanguage,
    WebTemplate,
    get_mime_type,
)
from src.portal_mapper.filesystem import list_workspace_files
from src.portal_mapper.models import PortalConfig
from src.portal_mapper.path_mapper import FOLDER_CONTENT_SNIPPETS, PathMapper
from .cancellation import CancellationToken
from .chooser import Chooser, PickItem
from .errors import (
    ConfigurationError,
    DocumentNotFoundError,
    IntegrityError,
    RepositoryBusyError,
)
from .web_page_resolver import WebPageResolver

logger = logging.getLogger(__name__)

POWERAPPSPORTAL_SCHEME = 'powerappsPortal'

# Called with (increment in percent, running message or None)
ProgressCallback = Callable[[int, Optional[str]], None]


class PortalRepository:
    """Mirrors one portal's templates, snippets and web files.

    Args:
        workspace_root: Root folder of the local workspace
        config: Workspace configuration (portal identity, folder mode)
        api: Dynamics Web API wrapper
        chooser: Asks the user for portals, page templates and parent pages
        path_mapper: Optional custom path mapper
        output_handler: Optional object with success/info/warning/error
            methods for user-visible messages
        instance_name: Dynamics organisation name recorded on snapshots

    Example:
        >>> repo = PortalRepository('.', config, DynamicsApi(Authenticator()), ConsoleChooser())
        >>> data = repo.download(silent=False)
        >>> repo.update_document_in_repository(
        ...     PortalFileType.WEB_TEMPLATE, 'Web Templates/header.html', '<header/>'
        ... )
    """

    def __init__(
        self,
        workspace_root: str,
        config: PortalConfig,
        api: DynamicsApi,
        chooser: Chooser,
        path_mapper: Optional[PathMapper] = None,
        output_handler=None,
        instance_name: str = "",
    ):
        self.workspace_root = os.path.abspath(workspace_root)
        self.config = config
        self.api = api
        self.chooser = chooser
        self.path_mapper = path_mapper or PathMapper(
            self.workspace_root, config.use_folders_for_web_files
        )
        self.output_handler = output_handler
        self.instance_name = instance_name
        self.resolver = WebPageResolver(api, chooser, self.path_mapper)

        self.portal_id: Optional[str] = config.portal_id
        self.portal_name: Optional[str] = config.portal_name
        self.default_page_template: Optional[str] = config.default_page_template
        self.languages: Dict[str, PortalLanguage] = {}

        self._portal_data: Optional[PortalData] = None
        self._running_operation: Optional[str] = None

    # Diff provider

    def provide_original_resource(self, file_path: str) -> str:
        """Identifier under which the last-synced version of a file is served."""
        return f"{POWERAPPSPORTAL_SCHEME}:{self.path_mapper.relative_path(file_path)}"

    def get_original_content(self, identifier: str) -> Optional[str]:
        """Last-synced payload for an identifier from provide_original_resource.

        Returns:
            Template/snippet source, base64 content for web files, or None
            when the document is not part of the snapshot
        """
        prefix = f"{POWERAPPSPORTAL_SCHEME}:"
        relative = identifier[len(prefix):] if identifier.startswith(prefix) else identifier
        file_path = os.path.join(self.workspace_root, *relative.split('/'))

        file_type = self.path_mapper.file_type_for_path(file_path)
        if file_type is None or self._portal_data is None:
            return None

        key = self.path_mapper.logical_name(file_path, file_type)
        if file_type == PortalFileType.WEB_TEMPLATE:
            template = self._portal_data.get_web_template(key)
            return template.source if template else None
        if file_type == PortalFileType.CONTENT_SNIPPET:
            snippet = self._portal_data.get_content_snippet(key)
            return snippet.source if snippet else None
        web_file = self._portal_data.get_web_file(key)
        return web_file.b64_content if web_file else None

    def provide_source_controlled_resources(self) -> Set[str]:
        """Local paths of every tracked document plus every file in the workspace.

        Untracked workspace files are included so they can be added later.
        """
        paths: Set[str] = set()
        if self._portal_data is None:
            return paths

        store = self._portal_data
        for key in store.web_templates:
            paths.add(self.path_mapper.local_path(key, PortalFileType.WEB_TEMPLATE))
        for key in store.content_snippets:
            paths.add(self.path_mapper.local_path(key, PortalFileType.CONTENT_SNIPPET))
        for key in store.web_files:
            paths.add(self.path_mapper.local_path(key, PortalFileType.WEB_FILE, store))

        paths.update(list_workspace_files(self.workspace_root))
        return paths

    # Snapshot access

    def get_portal_data(self) -> PortalData:
        """The installed snapshot, or a fresh empty one if none is installed."""
        if self._portal_data is not None:
            return self._portal_data
        return self._empty_snapshot()

    def switch_portal(self) -> None:
        """Forget the current portal; the next download asks for a new one."""
        logger.info(f"Switching away from portal '{self.portal_name}'")
        self.portal_id = None
        self.portal_name = None
        self.default_page_template = None
        self.languages = {}
        self._portal_data = None
        self.config = replace(
            self.config, portal_id=None, portal_name=None, default_page_template=None
        )

    # Download

    def download(
        self,
        silent: bool = False,
        cancellation_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> PortalData:
        """Fetch a full snapshot of the portal and install it.

        The snapshot is only installed when the download completed without
        cancellation or error. Errors are reported to the user, never raised.

        Args:
            silent: Do not show the summary message when done
            cancellation_token: Polled before every remote call
            progress: Receives progress increments and the running message

        Returns:
            The new snapshot, a partial one when cancelled or failed, or an
            empty one when no portal was selected
        """
        token = cancellation_token or CancellationToken()
        report = progress or (lambda increment, message: None)

        with self._operation('download'):
            result = self._empty_snapshot()
            try:
                snapshot, complete = self._fetch(result, silent, token, report)
            except SyncError as e:
                self._notify('error', f"Could not download data: {e}")
                return result

            if complete:
                self._portal_data = snapshot
            return snapshot

    def _fetch(
        self,
        result: PortalData,
        silent: bool,
        token: CancellationToken,
        report: ProgressCallback,
    ) -> Tuple[PortalData, bool]:
        message = "Download: "
        report(0, message)

        portal_id = self._resolve_portal()
        if not portal_id:
            logger.error("Could not get portal id either from existing configuration or from user")
            return self._empty_snapshot(), False

        result.portal_id = portal_id
        result.portal_name = self.portal_name or ""
        report(5, None)

        if self._is_cancelled(token):
            return result, False

        if not self.languages:
            logger.info("Getting languages")
            languages = self.api.get_languages(portal_id)
            if not languages:
                self._notify(
                    'warning',
                    f"Could not get any languages from portal. {DEFAULT_LANGUAGE_CODE} will be set as the default."
                )
            self.languages = languages
            logger.info(f"Received {len(languages)} languages")
        result.languages = self.languages
        report(10, None)

        if self._is_cancelled(token):
            return result, False

        if self._portal_data is not None and self._portal_data.published_state_id:
            result.published_state_id = self._portal_data.published_state_id
        else:
            logger.info("Downloading id of published state for portal")
            result.published_state_id = self.api.get_published_publish_state_id(portal_id)

        if self._is_cancelled(token):
            return result, False

        message += f"{self.portal_name}: "
        report(10, message + "… Templates")
        web_templates = self.api.get_web_templates(portal_id)
        for template in web_templates:
            result.put_web_template(template)
        message += f"✓ Templates: {len(web_templates)} "
        report(20, message + "… Snippets")

        if self._is_cancelled(token):
            return result, False

        content_snippets = self.api.get_content_snippets(portal_id, self.languages)
        for snippet in content_snippets:
            result.put_content_snippet(snippet)
        message += f"✓ Snippets: {len(content_snippets)} "
        report(25, message + "… Files")

        if self._is_cancelled(token):
            return result, False

        logger.info("Getting web pages")
        result.web_pages = self.api.get_web_page_hierarchy(portal_id)
        report(5, message + "… Files")

        if self.path_mapper.use_folders_for_web_files and not self.default_page_template:
            logger.info("Default page template not set, asking user")
            if self._is_cancelled(token):
                return result, False
            self.default_page_template = self._choose_default_page_template(portal_id)
            if not self.default_page_template:
                logger.warning("No default page template chosen, discarding download")
                return self._empty_snapshot(), False
            logger.info(f"Default page template id set: {self.default_page_template}")
        result.default_page_template = self.default_page_template

        if self._is_cancelled(token):
            return result, False

        web_files = self.api.get_web_files(portal_id, result.web_pages)
        for web_file in web_files:
            result.put_web_file(web_file)
        message += f"✓ Files: {len(web_files)}"
        report(25, message)

        if self._is_cancelled(token):
            return result, False

        logger.info(f"Download complete: {result.summary()}")
        if not silent:
            self._notify('info', message)
        return result, True

    def _resolve_portal(self) -> Optional[str]:
        if self.config.is_portal_data_configured:
            self.portal_id = self.config.portal_id
            self.portal_name = self.config.portal_name
            self.default_page_template = self.config.default_page_template or self.default_page_template
            return self.portal_id

        if self.portal_id and self.portal_name:
            return self.portal_id
        return self._choose_portal()

    def _choose_portal(self) -> Optional[str]:
        portals = self.api.get_portals()
        items = [PickItem(label=name, value=portal_id) for name, portal_id in sorted(portals.items())]

        choice = self.chooser.pick(items, "Select Portal")
        if choice is None:
            return None

        self.portal_name = choice.label
        self.portal_id = choice.value
        self.default_page_template = None
        self.languages = {}
        return self.portal_id

    def _choose_default_page_template(self, portal_id: str) -> Optional[str]:
        page_templates = self.api.get_page_templates(portal_id)
        items = [PickItem(label=template.name, value=template.id) for template in page_templates]

        while True:
            choice = self.chooser.pick(
                items,
                "Select a default page template which is used for new web file paths. "
                "Recommendation: 'Page'."
            )
            if choice is None:
                return None

            picked = next((t for t in page_templates if t.name == choice.label), None)
            if picked is not None:
                return picked.id
            self._notify('error', "Could not find id for page template. Please choose a different template.")

    # Create / update / delete

    def add_document_to_repository(self, file_type: PortalFileType, file_path: str, content: str) -> None:
        """Create a new document in the portal from a local file.

        Args:
            file_type: Document type of the file
            file_path: Local path of the new file
            content: Text for templates and snippets, base64 for web files

        Raises:
            ConfigurationError: No snapshot loaded, portal id or language unknown
            IntegrityError: Parent page could not be resolved
            DynamicsError: The remote call failed
        """
        with self._operation('add'):
            store = self._require_store()
            if not self.portal_id:
                raise ConfigurationError("Portal Id is not specified.", 'portal_id')

            if file_type == PortalFileType.WEB_TEMPLATE:
                self._add_web_template(store, file_path, content)
            elif file_type == PortalFileType.CONTENT_SNIPPET:
                self._add_content_snippet(store, file_path, content)
            elif file_type == PortalFileType.WEB_FILE:
                self._add_web_file(store, file_path, content)

    def _add_web_template(self, store: PortalData, file_path: str, content: str) -> None:
        name = self.path_mapper.document_name(file_path, PortalFileType.WEB_TEMPLATE)
        template = WebTemplate(id=None, name=name, source=content, website_id=self.portal_id)
        created = self.api.add_web_template(template, self.portal_id)
        store.put_web_template(created)
        logger.info(f"Template {created.name} was added")

    def _add_content_snippet(self, store: PortalData, file_path: str, content: str) -> None:
        language_code = self.path_mapper.language_code_from_path(file_path)
        if language_code is None:
            raise ConfigurationError(
                f"Could not add {self.path_mapper.relative_path(file_path)}: content snippets must be "
                f"placed in a language folder, e.g. '{FOLDER_CONTENT_SNIPPETS}/{DEFAULT_LANGUAGE_CODE}/'.",
                'language'
            )
        document_name = self.path_mapper.document_name(file_path, PortalFileType.CONTENT_SNIPPET)
        name, _ = self.path_mapper.split_snippet_key(document_name)

        language_id = None
        if store.languages:
            language = store.get_language(language_code)
            if language is None:
                raise ConfigurationError(
                    f"Language '{language_code}' is not enabled on portal '{self.portal_name}'",
                    'language'
                )
            language_id = language.website_language_id

        snippet = ContentSnippet(
            id=None,
            name=name,
            source=content,
            language=language_code,
            language_id=language_id,
            website_id=self.portal_id,
        )
        created = self.api.add_content_snippet(snippet, self.portal_id)
        store.put_content_snippet(created)
        logger.info(f"Snippet {created.name} ({created.language}) was added")

    def _add_web_file(self, store: PortalData, file_path: str, content: str) -> None:
        if not store.published_state_id:
            logger.warning("Published state id is not defined, downloading it")
            store.published_state_id = self.api.get_published_publish_state_id(self.portal_id)
        if not store.default_page_template:
            store.default_page_template = self.default_page_template

        file_name = self.path_mapper.document_name(file_path, PortalFileType.WEB_FILE)
        parent_page = self.resolver.resolve_parent_page(store, file_path, file_name)

        note = Note(
            annotation_id=None,
            filename=file_name,
            document_body=content,
            mime_type=get_mime_type(file_name),
        )
        uploaded = self.api.upload_file(note, self.portal_id, parent_page, store.published_state_id)
        store.put_web_file(uploaded)
        logger.info(f"File {uploaded.note.filename} was added under '{parent_page.full_path}'")

    def update_document_in_repository(self, file_type: PortalFileType, file_path: str, content: str) -> None:
        """Send new content of a tracked document to the portal.

        The snapshot entry is replaced with the server's version only after
        the update succeeded.

        Raises:
            ConfigurationError: No snapshot loaded
            DocumentNotFoundError: The file is not tracked
            IntegrityError: Dynamics confirmed no updated note
            DynamicsError: The remote call failed
        """
        with self._operation('update'):
            store = self._require_store()
            key = self.path_mapper.logical_name(file_path, file_type)

            if file_type == PortalFileType.WEB_TEMPLATE:
                existing = store.get_web_template(key)
                if existing is None:
                    raise DocumentNotFoundError(file_path)
                updated = self.api.update_web_template(replace(existing, source=content))
                del store.web_templates[key]
                store.put_web_template(updated)
                logger.info(f"Template {updated.name} was updated")

            elif file_type == PortalFileType.CONTENT_SNIPPET:
                existing = store.get_content_snippet(key)
                if existing is None:
                    raise DocumentNotFoundError(file_path)
                updated = self.api.update_content_snippet(replace(existing, source=content))
                del store.content_snippets[key]
                store.put_content_snippet(updated)
                logger.info(f"Snippet {updated.name} was updated")

            elif file_type == PortalFileType.WEB_FILE:
                existing = store.get_web_file(key)
                if existing is None:
                    raise DocumentNotFoundError(file_path)
                candidate = replace(existing, note=replace(existing.note, document_body=content))
                notes = self.api.update_files([candidate.note])
                if not notes:
                    raise IntegrityError(
                        f"Could not update file {existing.name}. Result set from dynamics was empty."
                    )
                candidate.note = notes[0]
                del store.web_files[key]
                store.put_web_file(candidate)
                logger.info(f"File {candidate.note.filename} was updated")

    def delete_document_in_repository(self, file_type: PortalFileType, file_path: str) -> None:
        """Delete a tracked document from the portal and the snapshot.

        Web files are removed from the snapshot even if the remote delete
        failed; the failure is only logged.

        Raises:
            ConfigurationError: No snapshot loaded, or a required id is missing
            DocumentNotFoundError: The file is not tracked
            DynamicsError: Deleting a template or snippet failed
        """
        with self._operation('delete'):
            store = self._require_store()
            key = self.path_mapper.logical_name(file_path, file_type)

            if file_type == PortalFileType.WEB_TEMPLATE:
                template = store.get_web_template(key)
                if template is None:
                    raise DocumentNotFoundError(file_path)
                if not template.id:
                    raise ConfigurationError("Could not delete template because its id was not defined.")
                self.api.delete_web_template(template.id)
                del store.web_templates[key]
                logger.info(f"Template {template.name} was deleted")

            elif file_type == PortalFileType.CONTENT_SNIPPET:
                snippet = store.get_content_snippet(key)
                if snippet is None:
                    raise DocumentNotFoundError(file_path)
                if not snippet.id:
                    raise ConfigurationError("Could not delete snippet because its id was not defined.")
                self.api.delete_content_snippet(snippet.id)
                del store.content_snippets[key]
                logger.info(f"Snippet {snippet.name} was deleted")

            elif file_type == PortalFileType.WEB_FILE:
                web_file = store.get_web_file(key)
                if web_file is None:
                    raise DocumentNotFoundError(file_path)
                if not web_file.id:
                    raise ConfigurationError("Could not delete file because adx_webfileid was not defined.")
                if not web_file.note.annotation_id:
                    raise ConfigurationError("Could not delete file because annotationid was not defined.")

                try:
                    self.api.delete_web_file(web_file.id, web_file.note.annotation_id)
                except DynamicsError as e:
                    logger.error(f"Could not delete file {web_file.note.filename}: {e}")
                del store.web_files[key]
                logger.info(f"File {web_file.note.filename} was removed")

    add_document = add_document_to_repository
    update_document = update_document_in_repository
    delete_document = delete_document_in_repository

    # Helpers

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        if self._running_operation is not None:
            raise RepositoryBusyError(self._running_operation, name)
        self._running_operation = name
        try:
            yield
        finally:
            self._running_operation = None

    def _require_store(self) -> PortalData:
        if self._portal_data is None:
            raise ConfigurationError(
                "Portal data is not loaded. Download the portal before changing documents."
            )
        return self._portal_data

    def _empty_snapshot(self) -> PortalData:
        return PortalData(self.instance_name, self.portal_name or "", self.portal_id)

    def _is_cancelled(self, token: CancellationToken) -> bool:
        if token.is_cancelled:
            logger.info("Download cancelled by user, keeping the previous snapshot")
            return True
        return False

    def _notify(self, level: str, message: str) -> None:
        getattr(logger, level)(message)
        if self.output_handler is not None:
            getattr(self.output_handler, level)(message)
