"""API wrapper for the Dynamics 365 Web API (portal entities).

This module talks to the organisation's OData endpoint with a requests
session and provides error translation from HTTP exceptions to our typed
exception hierarchy. It integrates with the retry logic for handling
service protection (429) limits.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import ConnectionError, ConnectTimeout, ReadTimeout, Timeout

from src.models.portal_entities import (
    DEFAULT_LANGUAGE_CODE,
    ContentSnippet,
    Note,
    PageTemplate,
    PortalLanguage,
    WebFile,
    WebTemplate,
)
from src.models.web_page import WebPage, WebPageDraft, build_hierarchy

from .auth import Authenticator
from .errors import (
    APIAccessError,
    APIUnreachableError,
    InvalidCredentialsError,
    RecordNotFoundError,
)
from .retry_logic import retry_on_rate_limit

logger = logging.getLogger(__name__)

API_PATH = "api/data/v9.1"

GUID_PATTERN = re.compile(
    r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$'
)

PUBLISHED_STATE_NAME = 'Published'

WEB_PAGE_FIELDS = (
    'adx_webpageid,adx_name,adx_partialurl,_adx_parentpageid_value,'
    '_adx_pagetemplateid_value,_adx_publishingstateid_value,_adx_websiteid_value'
)

NOTE_FIELDS = 'annotationid,filename,documentbody,mimetype,isdocument,_objectid_value,createdon'


def is_guid(value: str) -> bool:
    """Return True if value looks like a Dynamics record id."""
    return bool(value) and bool(GUID_PATTERN.match(str(value).strip()))


class DynamicsApi:
    """Wrapper around the Dynamics Web API with error translation.

    This class provides a thin layer over the OData endpoint that:
    1. Authenticates with an Azure AD bearer token from the Authenticator
    2. Translates HTTP errors to typed exceptions
    3. Retries 429 responses with backoff
    4. Maps portal records to the entity models in src.models

    Example:
        >>> auth = Authenticator()
        >>> api = DynamicsApi(auth)
        >>> portals = api.get_portals()
    """

    def __init__(self, authenticator: Authenticator, timeout: int = 30):
        """Initialize the API wrapper.

        Args:
            authenticator: Authenticator instance for credentials and tokens
            timeout: Per-request timeout in seconds
        """
        self._authenticator = authenticator
        self._session: Optional[requests.Session] = None
        self._base_url: Optional[str] = None
        self.timeout = timeout

    def _get_session(self) -> requests.Session:
        """Get or create the HTTP session.

        The session is created lazily on first use so that constructing the
        wrapper never touches credentials.
        """
        if self._session is None:
            creds = self._authenticator.get_credentials()
            self._base_url = f"{creds.org_url}/{API_PATH}"
            session = requests.Session()
            session.headers.update({
                'Accept': 'application/json',
                'Content-Type': 'application/json; charset=utf-8',
                'OData-MaxVersion': '4.0',
                'OData-Version': '4.0',
            })
            self._session = session
        return self._session

    def _url(self, path: str) -> str:
        if path.startswith('http'):
            return path
        return f"{self._base_url}/{path}"

    def _validate_record_id(self, record_id: Optional[str], field_name: str = 'record id') -> None:
        """Validate that an id is a GUID before it is put into a URL or filter.

        Raises:
            APIAccessError: If record_id is empty or not a GUID
        """
        if not record_id or not str(record_id).strip():
            raise APIAccessError(f"{field_name} cannot be empty")

        if not is_guid(record_id):
            raise APIAccessError(
                f"Invalid {field_name} format: '{record_id}'. "
                f"Dynamics record ids must be GUIDs."
            )

    def _sanitize_credentials(self, text: str) -> str:
        """Mask bearer tokens and client secrets in error text before logging."""
        if not text:
            return text

        sanitized = re.sub(
            r'Bearer\s+[^\s\n\r]+',
            'Bearer ***REDACTED***',
            text,
            flags=re.IGNORECASE
        )
        sanitized = re.sub(
            r'Authorization:\s*[^\n\r]+',
            'Authorization: ***REDACTED***',
            sanitized,
            flags=re.IGNORECASE
        )
        sanitized = re.sub(
            r'(client_secret|access_token)["\']?\s*[:=]\s*["\']?([^"\'\s&]+)',
            r'\1=***REDACTED***',
            sanitized,
            flags=re.IGNORECASE
        )
        return sanitized

    def _translate_error(self, exception: Exception, operation: str) -> Exception:
        """Translate HTTP exceptions to typed Dynamics exceptions.

        Args:
            exception: The original exception from requests
            operation: Description of the operation that failed

        Returns:
            Exception: One of our typed DynamicsError subclasses
        """
        if isinstance(exception, (Timeout, ConnectTimeout, ReadTimeout, ConnectionError)):
            return APIUnreachableError(endpoint=self._base_url or "unknown")

        response = getattr(exception, 'response', None)
        status_code = getattr(response, 'status_code', None)

        if status_code in (401, 403):
            creds = self._authenticator.get_credentials()
            return InvalidCredentialsError(client_id=creds.client_id, endpoint=creds.org_url)

        if status_code == 404:
            record_id = None
            match = re.search(r'\(([^)]+)\)', operation)
            if match:
                record_id = match.group(1)
            return RecordNotFoundError(entity_set=operation.split('(')[0], record_id=record_id)

        detail = str(exception)
        if response is not None:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = (body.get('error') or {}).get('message')
                if isinstance(message, str) and message:
                    detail = message

        safe_error_msg = self._sanitize_credentials(detail)
        logger.error(f"API operation failed: {operation} - {safe_error_msg}")
        return APIAccessError(f"Dynamics API failure during {operation}: {safe_error_msg}")

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        return_representation: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Send one request and return the decoded JSON body (None for 204)."""
        def _call():
            session = self._get_session()
            headers = {'Authorization': f"Bearer {self._authenticator.get_access_token()}"}
            if return_representation:
                headers['Prefer'] = 'return=representation'
            try:
                response = session.request(
                    method,
                    self._url(path),
                    params=params,
                    json=payload,
                    headers=headers,
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                if getattr(e.response, 'status_code', None) == 429:
                    raise
                raise self._translate_error(e, operation) from e
            except requests.exceptions.RequestException as e:
                raise self._translate_error(e, operation) from e

            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        return retry_on_rate_limit(_call)

    def _get_all(self, path: str, params: Dict[str, str], operation: str) -> List[Dict[str, Any]]:
        """GET a collection, following @odata.nextLink pages."""
        records: List[Dict[str, Any]] = []
        next_path: Optional[str] = path
        next_params: Optional[Dict[str, str]] = params

        while next_path:
            body = self._request('GET', next_path, operation, params=next_params) or {}
            records.extend(body.get('value', []))
            next_path = body.get('@odata.nextLink')
            next_params = None

        logger.debug(f"{operation}: {len(records)} record(s)")
        return records

    def _website_filter(self, portal_id: str) -> str:
        self._validate_record_id(portal_id, 'portal id')
        return f"_adx_websiteid_value eq {portal_id}"

    @staticmethod
    def _bind(entity_set: str, record_id: str) -> str:
        return f"/{entity_set}({record_id})"

    # Reading

    def get_portals(self) -> Dict[str, str]:
        """Enumerate portals (websites) of the organisation.

        Returns:
            Dict mapping portal name to adx_websiteid
        """
        records = self._get_all(
            'adx_websites',
            {'$select': 'adx_websiteid,adx_name'},
            'get_portals',
        )
        return {record['adx_name']: record['adx_websiteid'] for record in records}

    def get_languages(self, portal_id: str) -> Dict[str, PortalLanguage]:
        """Fetch the languages enabled on a portal.

        Returns:
            Dict mapping lower-cased language code to PortalLanguage
        """
        records = self._get_all(
            'adx_websitelanguages',
            {
                '$filter': self._website_filter(portal_id),
                '$select': 'adx_websitelanguageid,adx_name,_adx_portallanguageid_value',
                '$expand': 'adx_PortalLanguageId($select=adx_languagecode,adx_name)',
            },
            f"get_languages({portal_id})",
        )
        languages = (PortalLanguage.from_record(record) for record in records)
        return {language.code: language for language in languages}

    def get_published_publish_state_id(self, portal_id: str) -> str:
        """Fetch the id of the 'Published' publishing state of a portal.

        Raises:
            RecordNotFoundError: If the portal has no published state
        """
        records = self._get_all(
            'adx_publishingstates',
            {
                '$filter': f"{self._website_filter(portal_id)} and adx_name eq '{PUBLISHED_STATE_NAME}'",
                '$select': 'adx_publishingstateid,adx_name',
            },
            f"get_published_publish_state_id({portal_id})",
        )
        if not records:
            raise RecordNotFoundError(entity_set='adx_publishingstates', record_id=PUBLISHED_STATE_NAME)
        return records[0]['adx_publishingstateid']

    def get_web_templates(self, portal_id: str) -> List[WebTemplate]:
        records = self._get_all(
            'adx_webtemplates',
            {
                '$filter': self._website_filter(portal_id),
                '$select': 'adx_webtemplateid,adx_name,adx_source,_adx_websiteid_value',
            },
            f"get_web_templates({portal_id})",
        )
        return [WebTemplate.from_record(record) for record in records]

    def get_content_snippets(
        self,
        portal_id: str,
        languages: Dict[str, PortalLanguage],
    ) -> List[ContentSnippet]:
        """Fetch content snippets and tag each with its language code.

        Snippets whose language is unknown (or when the portal has no
        languages at all) are tagged with the default 'en-us'.
        """
        codes_by_id = {language.website_language_id: code for code, language in languages.items()}
        records = self._get_all(
            'adx_contentsnippets',
            {
                '$filter': self._website_filter(portal_id),
                '$select': (
                    'adx_contentsnippetid,adx_name,adx_value,'
                    '_adx_contentsnippetlanguageid_value,_adx_websiteid_value'
                ),
            },
            f"get_content_snippets({portal_id})",
        )
        return [
            ContentSnippet.from_record(
                record,
                language=codes_by_id.get(
                    record.get('_adx_contentsnippetlanguageid_value'),
                    DEFAULT_LANGUAGE_CODE,
                ),
            )
            for record in records
        ]

    def get_web_page_hierarchy(self, portal_id: str) -> Dict[str, WebPage]:
        """Fetch all root (language-neutral) web pages and link them into a tree.

        Returns:
            Dict mapping lower-cased full path to WebPage
        """
        records = self._get_all(
            'adx_webpages',
            {
                '$filter': f"{self._website_filter(portal_id)} and adx_isroot eq true",
                '$select': WEB_PAGE_FIELDS,
            },
            f"get_web_page_hierarchy({portal_id})",
        )
        return build_hierarchy(WebPage.from_record(record) for record in records)

    def get_web_files(self, portal_id: str, web_pages: Dict[str, WebPage]) -> List[WebFile]:
        """Fetch web files with their latest note, anchored to the page tree.

        Files without any note carry no content and are skipped.
        """
        pages_by_id = {page.id: page for page in web_pages.values()}
        records = self._get_all(
            'adx_webfiles',
            {
                '$filter': self._website_filter(portal_id),
                '$select': (
                    'adx_webfileid,adx_name,adx_partialurl,'
                    '_adx_parentpageid_value,_adx_websiteid_value'
                ),
                '$expand': (
                    f"adx_webfile_Annotations($select={NOTE_FIELDS};$orderby=createdon desc)"
                ),
            },
            f"get_web_files({portal_id})",
        )

        web_files = []
        for record in records:
            notes = record.get('adx_webfile_Annotations') or []
            if not notes:
                logger.warning(f"Web file '{record.get('adx_name')}' has no note, skipping")
                continue
            parent = pages_by_id.get(record.get('_adx_parentpageid_value'))
            web_files.append(WebFile.from_record(
                record,
                Note.from_record(notes[0]),
                file_path=parent.full_path if parent else "",
            ))
        return web_files

    def get_page_templates(self, portal_id: str) -> List[PageTemplate]:
        records = self._get_all(
            'adx_pagetemplates',
            {
                '$filter': self._website_filter(portal_id),
                '$select': 'adx_pagetemplateid,adx_name',
            },
            f"get_page_templates({portal_id})",
        )
        return [PageTemplate.from_record(record) for record in records]

    # Web templates

    def add_web_template(self, template: WebTemplate, portal_id: str) -> WebTemplate:
        payload = template.to_record()
        payload['adx_websiteid@odata.bind'] = self._bind('adx_websites', portal_id)
        record = self._request(
            'POST', 'adx_webtemplates', f"add_web_template({template.name})",
            payload=payload, return_representation=True,
        )
        return WebTemplate.from_record(record or {})

    def update_web_template(self, template: WebTemplate) -> WebTemplate:
        self._validate_record_id(template.id, 'web template id')
        record = self._request(
            'PATCH', f"adx_webtemplates({template.id})", f"update_web_template({template.id})",
            payload=template.to_record(), return_representation=True,
        )
        return WebTemplate.from_record(record or {})

    def delete_web_template(self, template_id: str) -> None:
        self._validate_record_id(template_id, 'web template id')
        self._request('DELETE', f"adx_webtemplates({template_id})", f"delete_web_template({template_id})")

    # Content snippets

    def add_content_snippet(self, snippet: ContentSnippet, portal_id: str) -> ContentSnippet:
        payload = snippet.to_record()
        payload['adx_websiteid@odata.bind'] = self._bind('adx_websites', portal_id)
        if snippet.language_id:
            payload['adx_contentsnippetlanguageid@odata.bind'] = self._bind(
                'adx_websitelanguages', snippet.language_id
            )
        record = self._request(
            'POST', 'adx_contentsnippets', f"add_content_snippet({snippet.name})",
            payload=payload, return_representation=True,
        )
        return ContentSnippet.from_record(record or {}, language=snippet.language)

    def update_content_snippet(self, snippet: ContentSnippet) -> ContentSnippet:
        self._validate_record_id(snippet.id, 'content snippet id')
        record = self._request(
            'PATCH', f"adx_contentsnippets({snippet.id})", f"update_content_snippet({snippet.id})",
            payload=snippet.to_record(), return_representation=True,
        )
        return ContentSnippet.from_record(record or {}, language=snippet.language)

    def delete_content_snippet(self, snippet_id: str) -> None:
        self._validate_record_id(snippet_id, 'content snippet id')
        self._request(
            'DELETE', f"adx_contentsnippets({snippet_id})", f"delete_content_snippet({snippet_id})"
        )

    # Web pages and files

    def create_web_page(self, draft: WebPageDraft) -> WebPage:
        """Create a web page from a draft whose parent has been resolved."""
        payload = draft.to_record()
        binds = (
            ('adx_websiteid', 'adx_websites', draft.website_id),
            ('adx_parentpageid', 'adx_webpages', draft.parent_id),
            ('adx_pagetemplateid', 'adx_pagetemplates', draft.page_template_id),
            ('adx_publishingstateid', 'adx_publishingstates', draft.publishing_state_id),
        )
        for navigation, entity_set, record_id in binds:
            if record_id:
                payload[f"{navigation}@odata.bind"] = self._bind(entity_set, record_id)

        record = self._request(
            'POST', 'adx_webpages', f"create_web_page({draft.partial_url})",
            payload=payload, return_representation=True,
        )
        return WebPage.from_record(record or {})

    def upload_file(
        self,
        note: Note,
        portal_id: str,
        parent_page: WebPage,
        published_state_id: str,
    ) -> WebFile:
        """Create a web file under a page and attach the note with its content."""
        file_payload = {
            'adx_name': note.filename,
            'adx_partialurl': note.filename,
            'adx_websiteid@odata.bind': self._bind('adx_websites', portal_id),
            'adx_parentpageid@odata.bind': self._bind('adx_webpages', parent_page.id),
            'adx_publishingstateid@odata.bind': self._bind('adx_publishingstates', published_state_id),
        }
        file_record = self._request(
            'POST', 'adx_webfiles', f"upload_file({note.filename})",
            payload=file_payload, return_representation=True,
        ) or {}

        note_payload = note.to_record()
        note_payload['objectid_adx_webfile@odata.bind'] = self._bind(
            'adx_webfiles', file_record.get('adx_webfileid', '')
        )
        note_record = self._request(
            'POST', 'annotations', f"upload_file_note({note.filename})",
            payload=note_payload, return_representation=True,
        ) or {}

        return WebFile.from_record(
            file_record,
            Note.from_record(note_record),
            file_path=parent_page.full_path,
        )

    def update_files(self, notes: List[Note]) -> List[Note]:
        """Patch the content of existing notes and return the server versions."""
        updated = []
        for note in notes:
            self._validate_record_id(note.annotation_id, 'annotation id')
            record = self._request(
                'PATCH', f"annotations({note.annotation_id})", f"update_files({note.annotation_id})",
                payload=note.to_record(), return_representation=True,
            )
            if record:
                updated.append(Note.from_record(record))
        return updated

    def delete_web_file(self, web_file_id: str, annotation_id: str) -> None:
        """Delete a web file's note and then the web file itself."""
        self._validate_record_id(web_file_id, 'web file id')
        self._validate_record_id(annotation_id, 'annotation id')
        self._request('DELETE', f"annotations({annotation_id})", f"delete_web_file_note({annotation_id})")
        self._request('DELETE', f"adx_webfiles({web_file_id})", f"delete_web_file({web_file_id})")
