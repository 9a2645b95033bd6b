"""Resolution of the web page a new web file is uploaded under.

Without folder grouping the user picks the parent page. With folder grouping
the page is derived from the file's folder; missing pages along that folder
chain are created in two passes:

1. Discovery walks the folder chain from the deepest segment upwards until
   it reaches a page that already exists (or the Web Files root, which maps
   to the portal's root page), recording a draft for every missing segment.
2. Creation walks back down from that anchor, creating each draft under the
   page created just before it.

Pages created in pass 2 are inserted into the snapshot right away, so a
second file in the same folder finds its page and nothing is created twice.
"""

import logging
from typing import List, Optional

from src.dynamics_client.api_wrapper import DynamicsApi
from src.models.portal_data import PortalData
from src.models.web_page import WebPage, WebPageDraft
from src.portal_mapper.errors import PathMappingError
from src.portal_mapper.path_mapper import FOLDER_WEB_FILES, PathMapper
from .chooser import Chooser, PickItem
from .errors import ConfigurationError, IntegrityError

logger = logging.getLogger(__name__)

CREATE_HIERARCHY_REMEDIATION = "Please try to create a file path hierarchy in Dynamics first."


class WebPageResolver:
    """Finds or creates the parent web page for a web file upload.

    Args:
        api: Dynamics Web API wrapper
        chooser: Used to ask for a parent page when folders are not grouped
        path_mapper: Provides the folder layout of the workspace
    """

    def __init__(self, api: DynamicsApi, chooser: Chooser, path_mapper: PathMapper):
        self.api = api
        self.chooser = chooser
        self.path_mapper = path_mapper

    def resolve_parent_page(self, store: PortalData, file_path: str, file_name: str) -> WebPage:
        """Return the web page a file at file_path should be uploaded under.

        Args:
            store: Current portal snapshot (mutated when pages are created)
            file_path: Local path of the web file
            file_name: File name shown to the user when picking a page

        Raises:
            IntegrityError: No pages exist remotely, or no anchor page was found
            ConfigurationError: Portal id or default page template is missing
            DynamicsError: A remote call failed
        """
        if not self.path_mapper.use_folders_for_web_files:
            return self.choose_web_page(store, file_name)

        parts = self.path_mapper.web_file_folder_parts(file_path)
        if not parts or parts[0] != FOLDER_WEB_FILES:
            raise PathMappingError(file_path, f"not inside '{FOLDER_WEB_FILES}'")

        existing = store.get_web_page('/'.join(parts[1:]))
        if existing is not None:
            return existing

        logger.info(f"No web page found for {file_path}, creating the missing folder pages")
        anchor, drafts = self._discover(store, parts)
        return self._create(store, anchor, drafts)

    def choose_web_page(self, store: PortalData, file_name: str) -> WebPage:
        """Ask the user for the parent page until one is picked."""
        if not store.web_pages:
            if not store.portal_id:
                raise ConfigurationError(
                    "Could not choose web page because the portal id is not specified.",
                    'portal_id'
                )
            logger.info("No web pages cached, downloading the web page hierarchy")
            store.web_pages = self.api.get_web_page_hierarchy(store.portal_id)
            if not store.web_pages:
                raise IntegrityError(
                    "Could not get web pages from portal. Result set is empty.",
                    "Please make sure the portal has web pages."
                )

        items = [
            PickItem(
                label=page.full_path or '/',
                description=f"{page.full_path}/{file_name}",
                value=page,
            )
            for page in store.web_pages.values()
        ]

        while True:
            choice = self.chooser.pick(items, f"Choose parent page for file {file_name}")
            if choice is None:
                continue
            return choice.value

    def _discover(self, store: PortalData, parts: List[str]) -> tuple:
        """Find the deepest existing page on the folder chain.

        Returns:
            (anchor page, drafts ordered deepest first)
        """
        drafts: List[WebPageDraft] = []
        anchor: Optional[WebPage] = None
        remaining = list(parts)

        while remaining:
            if len(remaining) == 1:
                anchor = store.get_root_web_page()
                if anchor is None:
                    logger.error("Web Files root reached but the portal has no root web page")
                break

            page = store.get_web_page('/'.join(remaining[1:]))
            if page is not None:
                anchor = page
                break

            drafts.append(self._draft(store, remaining[-1]))
            remaining.pop()

        if anchor is None:
            raise IntegrityError(
                "Could not create web pages to upload web files.",
                CREATE_HIERARCHY_REMEDIATION
            )
        return anchor, drafts

    def _draft(self, store: PortalData, segment: str) -> WebPageDraft:
        if not store.default_page_template:
            raise ConfigurationError(
                "A default page template is required to create web pages for new folders.",
                'default_page_template'
            )
        return WebPageDraft(
            name=segment,
            partial_url=segment,
            page_template_id=store.default_page_template,
            publishing_state_id=store.published_state_id,
            website_id=store.portal_id,
        )

    def _create(self, store: PortalData, anchor: WebPage, drafts: List[WebPageDraft]) -> WebPage:
        current = anchor
        while drafts:
            draft = drafts.pop()
            draft.parent_id = current.id
            try:
                created = self.api.create_web_page(draft)
            except Exception as e:
                logger.error(f"Could not create partial web page path element {draft.partial_url}: {e}")
                raise
            if created.parent_id is None:
                created.parent_id = current.id
            logger.info(f"Created web page: {created.name}")
            current = store.add_web_page(created)
        return current
