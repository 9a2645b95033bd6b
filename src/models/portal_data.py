"""In-memory snapshot of one portal (the entity store).

PortalData holds everything one download cycle fetched: the four keyed
collections, the language table and the identity/state fields needed for
later uploads. It is owned and mutated exclusively by PortalRepository.
"""

from typing import Dict, Optional

from src.models.portal_entities import (
    ContentSnippet,
    PortalLanguage,
    WebFile,
    WebTemplate,
)
from src.models.web_page import WebPage, add_to_hierarchy


class PortalData:
    """Snapshot of a portal's templates, snippets, files and page tree.

    All collections are keyed by lower-cased logical names: templates by
    name, snippets by language-injected name, files by file name and web
    pages by full path.

    Attributes:
        instance_name: Dynamics organisation name
        portal_name: Display name of the portal
        portal_id: adx_websiteid of the portal
        web_templates: key -> WebTemplate
        content_snippets: key -> ContentSnippet
        web_files: key -> WebFile
        web_pages: lower-cased full path -> WebPage
        languages: language code -> PortalLanguage
        published_state_id: Publishing state required for uploads
        default_page_template: Page template used for pages created on upload

    Example:
        >>> data = PortalData('org7c98f08c', 'Customer Self-Service')
        >>> data.put_web_template(WebTemplate(id='1', name='Header'))
        'header'
    """

    def __init__(
        self,
        instance_name: str = "",
        portal_name: str = "",
        portal_id: Optional[str] = None,
    ):
        self.instance_name = instance_name
        self.portal_name = portal_name
        self.portal_id = portal_id
        self.web_templates: Dict[str, WebTemplate] = {}
        self.content_snippets: Dict[str, ContentSnippet] = {}
        self.web_files: Dict[str, WebFile] = {}
        self.web_pages: Dict[str, WebPage] = {}
        self.languages: Dict[str, PortalLanguage] = {}
        self.published_state_id: Optional[str] = None
        self.default_page_template: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.web_templates or self.content_snippets or self.web_files)

    def get_web_template(self, key: str) -> Optional[WebTemplate]:
        return self.web_templates.get(key.lower())

    def get_content_snippet(self, key: str) -> Optional[ContentSnippet]:
        return self.content_snippets.get(key.lower())

    def get_web_file(self, key: str) -> Optional[WebFile]:
        return self.web_files.get(key.lower())

    def put_web_template(self, template: WebTemplate) -> str:
        self.web_templates[template.key] = template
        return template.key

    def put_content_snippet(self, snippet: ContentSnippet) -> str:
        self.content_snippets[snippet.key] = snippet
        return snippet.key

    def put_web_file(self, web_file: WebFile) -> str:
        self.web_files[web_file.key] = web_file
        return web_file.key

    def get_web_page(self, full_path: str) -> Optional[WebPage]:
        """Find a web page by its full path (case-insensitive)."""
        return self.web_pages.get(full_path.strip('/').lower())

    def get_root_web_page(self) -> Optional[WebPage]:
        """Return the root of the page tree, or None if no root page is known."""
        root = self.web_pages.get('')
        if root is not None and root.is_root:
            return root
        return next((page for page in self.web_pages.values() if page.is_root), None)

    def add_web_page(self, page: WebPage) -> WebPage:
        """Insert a page into the hierarchy; it is lookupable right away."""
        return add_to_hierarchy(self.web_pages, page)

    def get_language(self, code: str) -> Optional[PortalLanguage]:
        return self.languages.get(code.lower())

    def summary(self) -> str:
        return (
            f"Templates: {len(self.web_templates)}, "
            f"Snippets: {len(self.content_snippets)}, "
            f"Files: {len(self.web_files)}"
        )
