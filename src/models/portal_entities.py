"""Portal content entities as mirrored from Dynamics.

Each entity knows how to build itself from a Web API record (``from_record``)
and how to express its writable fields as a record (``to_record``). Lookup
bindings (``...@odata.bind``) are added by the API wrapper, not here.

The ``key`` of an entity is the lower-cased logical name under which it is
stored in PortalData. It is always derivable from the entity's local path.
"""

import mimetypes
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

# Language assumed when the portal does not expose any language
DEFAULT_LANGUAGE_CODE = 'en-us'


class PortalFileType(Enum):
    """The three kinds of portal documents mirrored into the workspace."""
    WEB_TEMPLATE = 'webTemplate'
    CONTENT_SNIPPET = 'contentSnippet'
    WEB_FILE = 'webFile'


def snippet_key(name: str, language: str) -> str:
    """Build the store key of a content snippet.

    The language code is injected as the second-to-last path segment so the
    same snippet in different languages never collides:
    'Account/SignIn/PageCopy' + 'en-us' -> 'account/signin/en-us/pagecopy'.
    """
    segments = [segment for segment in name.split('/') if segment]
    if not segments:
        segments = [name]
    return '/'.join(segments[:-1] + [language, segments[-1]]).lower()


def split_snippet_key(key: str) -> tuple:
    """Inverse of snippet_key: returns (name, language) from a store key.

    Example:
        >>> split_snippet_key('account/signin/en-us/pagecopy')
        ('account/signin/pagecopy', 'en-us')
    """
    segments = key.split('/')
    if len(segments) < 2:
        raise ValueError(f"Snippet key '{key}' has no language segment")
    return '/'.join(segments[:-2] + [segments[-1]]), segments[-2]


def get_mime_type(file_name: str) -> str:
    """Infer the MIME type of a web file from its name."""
    mime_type, _ = mimetypes.guess_type(file_name)
    return mime_type or 'application/octet-stream'


@dataclass
class PortalLanguage:
    """A language enabled on a portal (adx_websitelanguage)."""
    website_language_id: str
    code: str
    name: str = ""
    portal_language_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'PortalLanguage':
        portal_language = record.get('adx_PortalLanguageId') or {}
        return cls(
            website_language_id=record['adx_websitelanguageid'],
            code=(portal_language.get('adx_languagecode') or DEFAULT_LANGUAGE_CODE).lower(),
            name=portal_language.get('adx_name') or record.get('adx_name') or "",
            portal_language_id=record.get('_adx_portallanguageid_value'),
        )


@dataclass
class PageTemplate:
    """A page template (adx_pagetemplate) usable for new web pages."""
    id: str
    name: str

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'PageTemplate':
        return cls(id=record['adx_pagetemplateid'], name=record.get('adx_name') or "")


@dataclass
class WebTemplate:
    """A reusable markup fragment (adx_webtemplate).

    Attributes:
        id: Remote identifier (None until the server assigned one)
        name: Logical name, also the local file's base name
        source: Template markup
        website_id: Owning portal
    """
    id: Optional[str]
    name: str
    source: str = ""
    website_id: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name.lower()

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'WebTemplate':
        return cls(
            id=record.get('adx_webtemplateid'),
            name=record.get('adx_name') or "",
            source=record.get('adx_source') or "",
            website_id=record.get('_adx_websiteid_value'),
        )

    def to_record(self) -> Dict[str, Any]:
        return {'adx_name': self.name, 'adx_source': self.source}


@dataclass
class ContentSnippet:
    """A named, language-variant text fragment (adx_contentsnippet).

    Attributes:
        id: Remote identifier (None until the server assigned one)
        name: Slash-delimited hierarchical name without language segment
        source: Snippet value
        language: Language code (e.g. 'en-us')
        language_id: Website language record the snippet belongs to
        website_id: Owning portal
    """
    id: Optional[str]
    name: str
    source: str = ""
    language: str = DEFAULT_LANGUAGE_CODE
    language_id: Optional[str] = None
    website_id: Optional[str] = None

    @property
    def key(self) -> str:
        return snippet_key(self.name, self.language)

    @classmethod
    def from_record(cls, record: Dict[str, Any], language: str = DEFAULT_LANGUAGE_CODE) -> 'ContentSnippet':
        return cls(
            id=record.get('adx_contentsnippetid'),
            name=record.get('adx_name') or "",
            source=record.get('adx_value') or "",
            language=language,
            language_id=record.get('_adx_contentsnippetlanguageid_value'),
            website_id=record.get('_adx_websiteid_value'),
        )

    def to_record(self) -> Dict[str, Any]:
        return {'adx_name': self.name, 'adx_value': self.source}


@dataclass
class Note:
    """The annotation holding a web file's content (base64 document body)."""
    annotation_id: Optional[str]
    filename: str
    document_body: str = ""
    mime_type: str = 'application/octet-stream'
    is_document: bool = True
    object_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Note':
        return cls(
            annotation_id=record.get('annotationid'),
            filename=record.get('filename') or "",
            document_body=record.get('documentbody') or "",
            mime_type=record.get('mimetype') or get_mime_type(record.get('filename') or ""),
            is_document=bool(record.get('isdocument', True)),
            object_id=record.get('_objectid_value'),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            'filename': self.filename,
            'documentbody': self.document_body,
            'mimetype': self.mime_type,
            'isdocument': self.is_document,
        }


@dataclass
class WebFile:
    """A web file (adx_webfile) together with the note carrying its content.

    Attributes:
        id: Remote adx_webfileid
        name: Web file record name
        note: Annotation with the base64 payload and file name
        parent_page_id: Web page the file hangs under
        partial_url: URL segment of the file
        file_path: Full path of the parent page, used as local folder path
        website_id: Owning portal
    """
    id: Optional[str]
    name: str
    note: Note
    parent_page_id: Optional[str] = None
    partial_url: str = ""
    file_path: str = ""
    website_id: Optional[str] = None

    @property
    def key(self) -> str:
        return self.note.filename.lower()

    @property
    def b64_content(self) -> str:
        return self.note.document_body

    @b64_content.setter
    def b64_content(self, value: str) -> None:
        self.note.document_body = value

    @classmethod
    def from_record(cls, record: Dict[str, Any], note: Note, file_path: str = "") -> 'WebFile':
        return cls(
            id=record.get('adx_webfileid'),
            name=record.get('adx_name') or note.filename,
            note=note,
            parent_page_id=record.get('_adx_parentpageid_value'),
            partial_url=record.get('adx_partialurl') or "",
            file_path=file_path,
            website_id=record.get('_adx_websiteid_value'),
        )
