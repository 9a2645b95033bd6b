"""Web page data model and page hierarchy helpers.

Web pages form the portal's navigable tree. Each page is addressable by its
full path, the concatenation of the partial URLs of its ancestors and itself.
The root page (partial URL '/') contributes nothing, so its full path is ''.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class WebPage:
    """A node in the portal's page tree (adx_webpage).

    Attributes:
        id: Remote adx_webpageid
        name: Display name
        partial_url: URL segment of this page
        parent_id: Parent page id (None marks a root page)
        page_template_id: Page template the page renders with
        publishing_state_id: Publishing state of the page
        website_id: Owning portal
        parent: Resolved parent node (set when linked into a hierarchy)
    """
    id: str
    name: str
    partial_url: str
    parent_id: Optional[str] = None
    page_template_id: Optional[str] = None
    publishing_state_id: Optional[str] = None
    website_id: Optional[str] = None
    parent: Optional['WebPage'] = field(default=None, repr=False, compare=False)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def full_path(self) -> str:
        """Slash-joined partial URLs from the top of the tree down to this page."""
        segments = []
        visited = set()
        node: Optional[WebPage] = self
        while node is not None and node.id not in visited:
            visited.add(node.id)
            segment = node.partial_url.strip('/')
            if segment:
                segments.append(segment)
            node = node.parent
        return '/'.join(reversed(segments))

    @property
    def key(self) -> str:
        return self.full_path.lower()

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'WebPage':
        return cls(
            id=record['adx_webpageid'],
            name=record.get('adx_name') or "",
            partial_url=record.get('adx_partialurl') or "",
            parent_id=record.get('_adx_parentpageid_value'),
            page_template_id=record.get('_adx_pagetemplateid_value'),
            publishing_state_id=record.get('_adx_publishingstateid_value'),
            website_id=record.get('_adx_websiteid_value'),
        )


@dataclass
class WebPageDraft:
    """A web page that does not exist remotely yet.

    Drafts are recorded while discovering a missing folder chain; the parent
    is filled in right before the page is created.
    """
    name: str
    partial_url: str
    page_template_id: Optional[str]
    publishing_state_id: Optional[str]
    website_id: Optional[str]
    parent_id: Optional[str] = None
    hidden_from_sitemap: bool = True

    def to_record(self) -> Dict[str, Any]:
        return {
            'adx_name': self.name,
            'adx_partialurl': self.partial_url,
            'adx_hiddenfromsitemap': self.hidden_from_sitemap,
        }


def build_hierarchy(pages: Iterable[WebPage]) -> Dict[str, WebPage]:
    """Link pages to their parents and key them by lower-cased full path.

    Pages whose parent is not part of the given set keep their parent_id but
    stay unlinked; they are logged and keyed by their own partial URL chain.

    Args:
        pages: Unlinked web pages as returned by the Web API

    Returns:
        Dict mapping lower-cased full path to page
    """
    by_id = {page.id: page for page in pages}

    for page in by_id.values():
        if page.parent_id is None:
            continue
        parent = by_id.get(page.parent_id)
        if parent is None:
            logger.warning(
                f"Parent {page.parent_id} of web page '{page.name}' is not part of the hierarchy"
            )
            continue
        page.parent = parent

    hierarchy: Dict[str, WebPage] = {}
    for page in by_id.values():
        if page.key in hierarchy:
            logger.debug(f"Duplicate web page path '{page.full_path}', keeping first")
            continue
        hierarchy[page.key] = page
    return hierarchy


def add_to_hierarchy(hierarchy: Dict[str, WebPage], page: WebPage) -> WebPage:
    """Insert a single page into an existing hierarchy and return it.

    The page is linked to its parent (looked up by id) before it is keyed,
    so it is immediately reachable by its full path.
    """
    if page.parent_id is not None:
        page.parent = next(
            (candidate for candidate in hierarchy.values() if candidate.id == page.parent_id),
            None,
        )
        if page.parent is None:
            logger.warning(f"Parent {page.parent_id} of new web page '{page.name}' is unknown")

    hierarchy[page.key] = page
    return page
