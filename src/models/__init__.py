"""Data models for portal entities and the portal snapshot."""

from src.models.portal_data import PortalData
from src.models.portal_entities import (
    ContentSnippet,
    Note,
    PageTemplate,
    PortalFileType,
    PortalLanguage,
    WebFile,
    WebTemplate,
)
from src.models.web_page import WebPage, WebPageDraft

__all__ = [
    'PortalData',
    'ContentSnippet',
    'Note',
    'PageTemplate',
    'PortalFileType',
    'PortalLanguage',
    'WebFile',
    'WebTemplate',
    'WebPage',
    'WebPageDraft',
]
