"""Unit tests for dynamics_client.api_wrapper module."""

import pytest
from unittest.mock import Mock, patch
from requests.exceptions import ConnectionError, HTTPError

from src.dynamics_client.api_wrapper import DynamicsApi, is_guid
from src.dynamics_client.auth import Credentials
from src.dynamics_client.errors import (
    APIAccessError,
    APIUnreachableError,
    InvalidCredentialsError,
    RecordNotFoundError,
)
from src.models.portal_entities import ContentSnippet, Note, PortalLanguage
from src.models.web_page import WebPage, WebPageDraft

PORTAL_ID = '6a1b0f1e-4c1a-4a3b-8d8e-0f3b2c1d4e5f'
LANGUAGE_ID = '11111111-2222-3333-4444-555555555555'
PAGE_ID = 'aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee'
FILE_ID = '12345678-1234-1234-1234-123456789abc'
NOTE_ID = '87654321-4321-4321-4321-cba987654321'
BASE_URL = 'https://org7c98f08c.crm4.dynamics.com/api/data/v9.1'


def create_mock_auth():
    """Create a mock authenticator with standard credentials."""
    mock_auth = Mock()
    mock_auth.get_credentials.return_value = Credentials(
        instance_name='org7c98f08c',
        crm_region='crm4',
        tenant_id='10ea4d3e-1511-4461-9c6d-e21e73840528',
        client_id='65f4ee4c-bbec-4059-b2ce-05e8e8acc679',
        client_secret='secret',
    )
    mock_auth.get_access_token.return_value = 'token123'
    return mock_auth


def create_response(body=None, status_code=200):
    """Create a mock requests response returning body as JSON."""
    response = Mock()
    response.status_code = status_code
    response.content = b'{}' if body is not None else b''
    response.json.return_value = body
    response.headers = {}
    if status_code >= 400:
        response.raise_for_status.side_effect = HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def session():
    with patch('src.dynamics_client.api_wrapper.requests.Session') as mock_session_cls:
        mock_session = Mock()
        mock_session.headers = {}
        mock_session_cls.return_value = mock_session
        yield mock_session


@pytest.fixture
def api(session):
    return DynamicsApi(create_mock_auth())


class TestDynamicsApiSession:
    """Test cases for session handling and request building."""

    @patch('src.dynamics_client.api_wrapper.requests.Session')
    def test_init_lazy_loads_session(self, mock_session_cls):
        """__init__ should not touch credentials or create a session."""
        mock_auth = Mock()
        DynamicsApi(mock_auth)

        mock_auth.get_credentials.assert_not_called()
        mock_session_cls.assert_not_called()

    def test_request_sends_bearer_token_to_org_url(self, api, session):
        """Requests go to the organisation's Web API with a bearer token."""
        session.request.return_value = create_response({'value': []})

        api.get_portals()

        args, kwargs = session.request.call_args
        assert args[0] == 'GET'
        assert args[1] == f"{BASE_URL}/adx_websites"
        assert kwargs['headers']['Authorization'] == 'Bearer token123'
        assert kwargs['timeout'] == 30
        assert session.headers['OData-Version'] == '4.0'

    def test_get_all_follows_next_link(self, api, session):
        """Collections spanning several pages are concatenated."""
        next_link = f"{BASE_URL}/adx_websites?$skiptoken=2"
        session.request.side_effect = [
            create_response({
                'value': [{'adx_name': 'Portal A', 'adx_websiteid': 'id-a'}],
                '@odata.nextLink': next_link,
            }),
            create_response({'value': [{'adx_name': 'Portal B', 'adx_websiteid': 'id-b'}]}),
        ]

        result = api.get_portals()

        assert result == {'Portal A': 'id-a', 'Portal B': 'id-b'}
        second_call = session.request.call_args_list[1]
        assert second_call[0][1] == next_link
        assert second_call[1]['params'] is None

    def test_writes_ask_for_representation(self, api, session):
        """Create calls send the Prefer header to get the record back."""
        session.request.return_value = create_response({'adx_webtemplateid': 'x', 'adx_name': 'Header'})
        template = Mock()
        template.name = 'Header'
        template.to_record.return_value = {'adx_name': 'Header', 'adx_source': ''}

        api.add_web_template(template, PORTAL_ID)

        kwargs = session.request.call_args[1]
        assert kwargs['headers']['Prefer'] == 'return=representation'
        assert kwargs['json']['adx_websiteid@odata.bind'] == f"/adx_websites({PORTAL_ID})"


class TestDynamicsApiReading:
    """Test cases for read operations."""

    def test_get_languages_keyed_by_lowercase_code(self, api, session):
        """Languages are keyed by their lower-cased language code."""
        session.request.return_value = create_response({'value': [{
            'adx_websitelanguageid': LANGUAGE_ID,
            'adx_name': 'English',
            'adx_PortalLanguageId': {'adx_languagecode': 'EN-US', 'adx_name': 'English'},
        }]})

        result = api.get_languages(PORTAL_ID)

        assert list(result) == ['en-us']
        assert result['en-us'].website_language_id == LANGUAGE_ID

    def test_get_published_state_raises_when_missing(self, api, session):
        """A portal without a Published state is reported as not found."""
        session.request.return_value = create_response({'value': []})

        with pytest.raises(RecordNotFoundError) as exc_info:
            api.get_published_publish_state_id(PORTAL_ID)

        assert exc_info.value.record_id == 'Published'

    def test_get_content_snippets_tags_language(self, api, session):
        """Snippets get the code of their website language, en-us otherwise."""
        session.request.return_value = create_response({'value': [
            {
                'adx_contentsnippetid': 's1',
                'adx_name': 'Account/SignIn/PageCopy',
                'adx_value': 'Hallo',
                '_adx_contentsnippetlanguageid_value': LANGUAGE_ID,
            },
            {'adx_contentsnippetid': 's2', 'adx_name': 'Footer', 'adx_value': 'x'},
        ]})
        languages = {'de-de': PortalLanguage(website_language_id=LANGUAGE_ID, code='de-de')}

        result = api.get_content_snippets(PORTAL_ID, languages)

        assert [snippet.language for snippet in result] == ['de-de', 'en-us']
        assert result[0].key == 'account/signin/de-de/pagecopy'

    def test_get_web_page_hierarchy_links_pages(self, api, session):
        """Web pages are returned keyed by their lower-cased full path."""
        session.request.return_value = create_response({'value': [
            {'adx_webpageid': 'root', 'adx_name': 'Home', 'adx_partialurl': '/'},
            {'adx_webpageid': 'docs', 'adx_name': 'Docs', 'adx_partialurl': 'Docs',
             '_adx_parentpageid_value': 'root'},
        ]})

        result = api.get_web_page_hierarchy(PORTAL_ID)

        assert set(result) == {'', 'docs'}
        assert result['docs'].parent.id == 'root'

    def test_get_web_files_skips_files_without_note(self, api, session):
        """Files without an annotation are skipped; others use the parent's path."""
        docs = WebPage(id=PAGE_ID, name='Docs', partial_url='Docs', parent_id=None)
        session.request.return_value = create_response({'value': [
            {
                'adx_webfileid': FILE_ID,
                'adx_name': 'logo.png',
                '_adx_parentpageid_value': PAGE_ID,
                'adx_webfile_Annotations': [
                    {'annotationid': NOTE_ID, 'filename': 'Logo.png', 'documentbody': 'AAAA'},
                ],
            },
            {'adx_webfileid': 'other', 'adx_name': 'empty.css', 'adx_webfile_Annotations': []},
        ]})

        result = api.get_web_files(PORTAL_ID, {'docs': docs})

        assert len(result) == 1
        assert result[0].key == 'logo.png'
        assert result[0].file_path == 'Docs'
        assert result[0].b64_content == 'AAAA'

    def test_invalid_portal_id_rejected_before_request(self, api, session):
        """A non-GUID portal id never reaches the filter."""
        with pytest.raises(APIAccessError, match="portal id"):
            api.get_web_templates("1 or 1 eq 1")

        session.request.assert_not_called()


class TestDynamicsApiWriting:
    """Test cases for create/update/delete operations."""

    def test_add_content_snippet_binds_language(self, api, session):
        """The snippet's website language is bound on create."""
        session.request.return_value = create_response({
            'adx_contentsnippetid': 'new', 'adx_name': 'Footer', 'adx_value': 'x',
        })
        snippet = ContentSnippet(id=None, name='Footer', source='x', language='de-de', language_id=LANGUAGE_ID)

        result = api.add_content_snippet(snippet, PORTAL_ID)

        payload = session.request.call_args[1]['json']
        assert payload['adx_contentsnippetlanguageid@odata.bind'] == f"/adx_websitelanguages({LANGUAGE_ID})"
        assert result.language == 'de-de'

    def test_create_web_page_binds_lookups(self, api, session):
        """Parent, template, publishing state and website are bound."""
        session.request.return_value = create_response({
            'adx_webpageid': 'new', 'adx_name': 'Policies', 'adx_partialurl': 'Policies',
            '_adx_parentpageid_value': PAGE_ID,
        })
        draft = WebPageDraft(
            name='Policies', partial_url='Policies', page_template_id='tpl',
            publishing_state_id='pub', website_id=PORTAL_ID, parent_id=PAGE_ID,
        )

        result = api.create_web_page(draft)

        payload = session.request.call_args[1]['json']
        assert payload['adx_parentpageid@odata.bind'] == f"/adx_webpages({PAGE_ID})"
        assert payload['adx_pagetemplateid@odata.bind'] == '/adx_pagetemplates(tpl)'
        assert payload['adx_publishingstateid@odata.bind'] == '/adx_publishingstates(pub)'
        assert payload['adx_hiddenfromsitemap'] is True
        assert result.parent_id == PAGE_ID

    def test_update_files_returns_confirmed_notes(self, api, session):
        """Only notes the server returned are part of the result."""
        session.request.return_value = create_response({
            'annotationid': NOTE_ID, 'filename': 'logo.png', 'documentbody': 'BBBB',
        })
        note = Note(annotation_id=NOTE_ID, filename='logo.png', document_body='BBBB')

        result = api.update_files([note])

        assert [n.document_body for n in result] == ['BBBB']
        assert session.request.call_args[0][0] == 'PATCH'

    def test_delete_web_file_deletes_note_then_file(self, api, session):
        """Both the annotation and the web file record are deleted."""
        session.request.return_value = create_response(None, status_code=204)

        api.delete_web_file(FILE_ID, NOTE_ID)

        urls = [c[0][1] for c in session.request.call_args_list]
        assert urls == [f"{BASE_URL}/annotations({NOTE_ID})", f"{BASE_URL}/adx_webfiles({FILE_ID})"]


class TestDynamicsApiErrors:
    """Test cases for HTTP error translation."""

    def test_401_raises_invalid_credentials(self, api, session):
        session.request.return_value = create_response({}, status_code=401)

        with pytest.raises(InvalidCredentialsError) as exc_info:
            api.get_portals()

        assert exc_info.value.client_id == '65f4ee4c-bbec-4059-b2ce-05e8e8acc679'

    def test_404_raises_record_not_found_with_id(self, api, session):
        session.request.return_value = create_response({}, status_code=404)

        with pytest.raises(RecordNotFoundError) as exc_info:
            api.delete_web_template(FILE_ID)

        assert exc_info.value.record_id == FILE_ID

    def test_500_raises_access_error_with_server_message(self, api, session):
        session.request.return_value = create_response(
            {'error': {'message': 'A record with these values already exists.'}},
            status_code=500,
        )

        with pytest.raises(APIAccessError, match="already exists"):
            api.get_portals()

    def test_connection_error_raises_unreachable(self, api, session):
        session.request.side_effect = ConnectionError("refused")

        with pytest.raises(APIUnreachableError):
            api.get_portals()

    @patch('src.dynamics_client.retry_logic.time.sleep')
    def test_429_is_retried(self, mock_sleep, api, session):
        """Service protection responses are retried with backoff."""
        session.request.side_effect = [
            create_response({}, status_code=429),
            create_response({'value': []}),
        ]

        assert api.get_portals() == {}
        mock_sleep.assert_called_once_with(1)

    def test_sanitize_credentials_masks_secrets(self, api):
        text = "Authorization: Bearer abc.def client_secret=hunter2"

        result = api._sanitize_credentials(text)

        assert 'abc.def' not in result
        assert 'hunter2' not in result


class TestIsGuid:
    """Test cases for the is_guid helper."""

    def test_accepts_guid(self):
        assert is_guid(PORTAL_ID)

    def test_rejects_other_text(self):
        assert not is_guid('not-a-guid')
        assert not is_guid('')
