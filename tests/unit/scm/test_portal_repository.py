"""Unit tests for scm.portal_repository module."""

import os
from dataclasses import replace
from unittest.mock import Mock

import pytest

from src.dynamics_client.api_wrapper import DynamicsApi
from src.dynamics_client.errors import APIAccessError
from src.models.portal_entities import (
    ContentSnippet,
    Note,
    PageTemplate,
    PortalFileType,
    PortalLanguage,
    WebFile,
    WebTemplate,
)
from src.models.web_page import WebPage, build_hierarchy
from src.portal_mapper.models import PortalConfig
from src.scm.cancellation import CancellationToken
from src.scm.chooser import PickItem
from src.scm.errors import (
    ConfigurationError,
    DocumentNotFoundError,
    IntegrityError,
    RepositoryBusyError,
)
from src.scm.portal_repository import PortalRepository

PORTAL_ID = '6a1b0f1e-4c1a-4a3b-8d8e-0f3b2c1d4e5f'


def create_mock_api():
    """Create a mock DynamicsApi serving a small portal."""
    api = Mock()
    api.get_portals.return_value = {'Partner Portal': 'id-b', 'Customer Portal': 'id-a'}
    api.get_languages.return_value = {
        'en-us': PortalLanguage('lang-en', 'en-us'),
        'de-de': PortalLanguage('lang-de', 'de-de'),
    }
    api.get_published_publish_state_id.return_value = 'pub'
    api.get_web_templates.return_value = [WebTemplate('t1', 'Header', '<header/>')]
    api.get_content_snippets.return_value = [
        ContentSnippet('s1', 'Account/SignIn/PageCopy', 'Welcome', 'en-us', 'lang-en'),
    ]
    api.get_web_page_hierarchy.side_effect = lambda portal_id: build_hierarchy([
        WebPage(id='root', name='Home', partial_url='/'),
        WebPage(id='docs', name='Docs', partial_url='Docs', parent_id='root'),
    ])
    api.get_web_files.return_value = [
        WebFile('f1', 'logo.png', Note('n1', 'logo.png', 'AAAA'), parent_page_id='docs', file_path='Docs'),
    ]
    api.get_page_templates.return_value = [PageTemplate('tpl-home', 'Home'), PageTemplate('tpl-page', 'Page')]
    return api


@pytest.fixture
def api():
    return create_mock_api()


@pytest.fixture
def chooser():
    return Mock()


@pytest.fixture
def output():
    return Mock()


@pytest.fixture
def repo(tmp_path, api, chooser, output):
    config = PortalConfig(portal_id=PORTAL_ID, portal_name='Customer Portal')
    return PortalRepository(str(tmp_path), config, api, chooser, output_handler=output, instance_name='org')


def workspace_path(tmp_path, *parts):
    return os.path.join(str(tmp_path), *parts)


class TestDownload:
    """Test cases for PortalRepository.download."""

    def test_download_installs_snapshot(self, repo, output):
        data = repo.download()

        assert repo.get_portal_data() is data
        assert data.instance_name == 'org'
        assert data.portal_id == PORTAL_ID
        assert data.portal_name == 'Customer Portal'
        assert data.published_state_id == 'pub'
        assert list(data.web_templates) == ['header']
        assert list(data.content_snippets) == ['account/signin/en-us/pagecopy']
        assert list(data.web_files) == ['logo.png']
        assert set(data.languages) == {'en-us', 'de-de'}
        message = output.info.call_args[0][0]
        assert "✓ Templates: 1" in message
        assert "✓ Files: 1" in message

    def test_silent_download_shows_no_summary(self, repo, output):
        repo.download(silent=True)

        output.info.assert_not_called()

    def test_progress_adds_up_to_100(self, repo):
        increments = []

        repo.download(progress=lambda increment, message: increments.append(increment))

        assert sum(increments) == 100

    def test_languages_and_published_state_are_reused(self, repo, api):
        repo.download()
        repo.download()

        api.get_languages.assert_called_once()
        api.get_published_publish_state_id.assert_called_once()

    def test_cancellation_keeps_previous_snapshot(self, repo, api):
        first = repo.download()
        token = CancellationToken()

        def cancel_during_templates(portal_id):
            token.cancel()
            return []

        api.get_web_templates.return_value = None
        api.get_web_templates.side_effect = cancel_during_templates
        second = repo.download(cancellation_token=token)

        assert repo.get_portal_data() is first
        assert second is not first
        assert second.portal_id == PORTAL_ID
        assert api.get_content_snippets.call_count == 1

    def test_cancelled_before_start(self, repo, api):
        token = CancellationToken()
        token.cancel()

        repo.download(cancellation_token=token)

        api.get_languages.assert_not_called()
        assert repo.get_portal_data().is_empty

    def test_zero_languages_warns_and_continues(self, repo, api, output):
        api.get_languages.return_value = {}

        data = repo.download()

        output.warning.assert_called_once_with(
            "Could not get any languages from portal. en-us will be set as the default."
        )
        assert repo.get_portal_data() is data
        api.get_content_snippets.assert_called_once_with(PORTAL_ID, {})

    def test_failure_returns_partial_result(self, repo, api, output):
        api.get_content_snippets.side_effect = APIAccessError("boom")

        data = repo.download()

        output.error.assert_called_once_with("Could not download data: boom")
        assert data.portal_id == PORTAL_ID
        assert data.published_state_id == 'pub'
        assert repo.get_portal_data() is not data
        assert repo.get_portal_data().is_empty

    def test_malformed_portal_id_is_reported(self, tmp_path, chooser, output):
        config = PortalConfig(portal_id='my-portal', portal_name='Customer Portal')
        repo = PortalRepository(str(tmp_path), config, DynamicsApi(Mock()), chooser, output_handler=output)

        data = repo.download()

        assert "Invalid portal id format" in output.error.call_args[0][0]
        assert data.portal_id == 'my-portal'
        assert repo.get_portal_data() is not data

    def test_portal_is_picked_when_not_configured(self, tmp_path, api, chooser):
        chooser.pick.side_effect = lambda items, placeholder: items[0]
        repo = PortalRepository(str(tmp_path), PortalConfig(), api, chooser)

        data = repo.download()

        items = chooser.pick.call_args[0][0]
        assert [item.label for item in items] == ['Customer Portal', 'Partner Portal']
        assert chooser.pick.call_args[0][1] == "Select Portal"
        assert repo.portal_id == 'id-a'
        assert repo.portal_name == 'Customer Portal'
        assert repo.get_portal_data() is data

    def test_dismissed_portal_pick_aborts(self, tmp_path, api, chooser):
        chooser.pick.return_value = None
        repo = PortalRepository(str(tmp_path), PortalConfig(), api, chooser)

        data = repo.download()

        assert data.is_empty
        assert data.portal_id is None
        api.get_languages.assert_not_called()
        assert repo.get_portal_data() is not data


class TestDefaultPageTemplate:
    """Test cases for choosing the default page template in folder mode."""

    @pytest.fixture
    def folder_repo(self, tmp_path, api, chooser, output):
        config = PortalConfig(
            portal_id=PORTAL_ID, portal_name='Customer Portal', use_folders_for_web_files=True
        )
        return PortalRepository(str(tmp_path), config, api, chooser, output_handler=output)

    def test_template_is_chosen(self, folder_repo, chooser):
        chooser.pick.return_value = PickItem('Page', value='tpl-page')

        data = folder_repo.download()

        assert data.default_page_template == 'tpl-page'
        assert folder_repo.default_page_template == 'tpl-page'
        assert folder_repo.get_portal_data() is data

    def test_unknown_template_is_asked_again(self, folder_repo, chooser, output):
        chooser.pick.side_effect = [PickItem('Missing'), PickItem('Page')]

        data = folder_repo.download()

        assert chooser.pick.call_count == 2
        output.error.assert_called_once_with(
            "Could not find id for page template. Please choose a different template."
        )
        assert data.default_page_template == 'tpl-page'

    def test_dismissed_template_discards_download(self, folder_repo, api, chooser):
        chooser.pick.return_value = None

        data = folder_repo.download()

        assert data.is_empty
        api.get_web_files.assert_not_called()
        assert folder_repo.get_portal_data() is not data

    def test_configured_template_is_not_asked(self, tmp_path, api, chooser):
        config = PortalConfig(
            portal_id=PORTAL_ID, portal_name='Customer Portal',
            default_page_template='tpl-home', use_folders_for_web_files=True,
        )
        repo = PortalRepository(str(tmp_path), config, api, chooser)

        data = repo.download()

        chooser.pick.assert_not_called()
        assert data.default_page_template == 'tpl-home'


class TestAddDocument:
    """Test cases for PortalRepository.add_document_to_repository."""

    def test_requires_downloaded_snapshot(self, repo, tmp_path):
        with pytest.raises(ConfigurationError, match="not loaded"):
            repo.add_document_to_repository(
                PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'x.html'), ''
            )

    def test_add_web_template_keeps_user_case(self, repo, api, tmp_path):
        repo.download()
        api.add_web_template.side_effect = lambda template, portal_id: replace(template, id='t2')

        repo.add_document_to_repository(
            PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'MyFooter.html'), '<f/>'
        )

        template, portal_id = api.add_web_template.call_args[0]
        assert template.name == 'MyFooter'
        assert template.id is None
        assert portal_id == PORTAL_ID
        assert repo.get_portal_data().get_web_template('myfooter').id == 't2'

    def test_add_content_snippet_with_language_folder(self, repo, api, tmp_path):
        repo.download()
        api.add_content_snippet.side_effect = lambda snippet, portal_id: replace(snippet, id='s2')
        path = workspace_path(tmp_path, 'Content Snippets', 'Account', 'SignIn', 'de-DE', 'PageCopy.html')

        repo.add_document_to_repository(PortalFileType.CONTENT_SNIPPET, path, 'Willkommen')

        snippet = api.add_content_snippet.call_args[0][0]
        assert snippet.name == 'Account/SignIn/PageCopy'
        assert snippet.language == 'de-de'
        assert snippet.language_id == 'lang-de'
        assert repo.get_portal_data().get_content_snippet('account/signin/de-de/pagecopy').id == 's2'

    def test_added_snippet_key_matches_path(self, repo, api, tmp_path):
        repo.download()
        api.add_content_snippet.side_effect = lambda snippet, portal_id: replace(snippet, id='s3')
        path = workspace_path(tmp_path, 'Content Snippets', 'Account', 'SignIn', 'en-us', 'Title.html')

        repo.add_document_to_repository(PortalFileType.CONTENT_SNIPPET, path, 'x')

        key = repo.path_mapper.logical_name(path, PortalFileType.CONTENT_SNIPPET)
        assert key == 'account/signin/en-us/title'
        assert repo.get_portal_data().get_content_snippet(key).id == 's3'

    def test_snippet_without_language_folder_is_rejected(self, repo, api, tmp_path):
        repo.download()
        path = workspace_path(tmp_path, 'Content Snippets', 'Footer.html')

        with pytest.raises(ConfigurationError, match="language folder"):
            repo.add_document_to_repository(PortalFileType.CONTENT_SNIPPET, path, 'Bye')

        api.add_content_snippet.assert_not_called()
        assert list(repo.get_portal_data().content_snippets) == ['account/signin/en-us/pagecopy']

    def test_added_snippet_can_be_updated(self, repo, api, tmp_path):
        repo.download()
        api.add_content_snippet.side_effect = lambda snippet, portal_id: replace(snippet, id='s4')
        api.update_content_snippet.side_effect = lambda snippet: snippet
        path = workspace_path(tmp_path, 'Content Snippets', 'en-us', 'Footer.html')

        repo.add_document_to_repository(PortalFileType.CONTENT_SNIPPET, path, 'Bye')
        repo.update_document_in_repository(PortalFileType.CONTENT_SNIPPET, path, 'Goodbye')

        assert api.add_content_snippet.call_args[0][0].name == 'Footer'
        assert api.update_content_snippet.call_args[0][0].id == 's4'
        assert repo.get_portal_data().get_content_snippet('en-us/footer').source == 'Goodbye'

    def test_add_snippet_with_unknown_language_fails(self, repo, api, tmp_path):
        repo.download()
        path = workspace_path(tmp_path, 'Content Snippets', 'fr-fr', 'Title.html')

        with pytest.raises(ConfigurationError, match="fr-fr"):
            repo.add_document_to_repository(PortalFileType.CONTENT_SNIPPET, path, 'Bonjour')

        api.add_content_snippet.assert_not_called()

    def test_add_web_file_asks_for_parent_page(self, repo, api, chooser, tmp_path):
        repo.download()
        chooser.pick.side_effect = lambda items, placeholder: next(
            item for item in items if item.label == 'Docs'
        )
        api.upload_file.side_effect = lambda note, portal_id, parent, state: WebFile(
            'f2', note.filename, replace(note, annotation_id='n2'), parent_page_id=parent.id,
            file_path=parent.full_path,
        )

        repo.add_document_to_repository(
            PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'Banner.png'), 'QUJD'
        )

        note, portal_id, parent, state = api.upload_file.call_args[0]
        assert note.filename == 'Banner.png'
        assert note.mime_type == 'image/png'
        assert note.document_body == 'QUJD'
        assert parent.id == 'docs'
        assert state == 'pub'
        assert repo.get_portal_data().get_web_file('banner.png').id == 'f2'

    def test_add_failure_leaves_snapshot_unchanged(self, repo, api, tmp_path):
        repo.download()
        api.add_web_template.side_effect = APIAccessError("duplicate")

        with pytest.raises(APIAccessError):
            repo.add_document_to_repository(
                PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'New.html'), ''
            )

        assert list(repo.get_portal_data().web_templates) == ['header']


class TestUpdateDocument:
    """Test cases for PortalRepository.update_document_in_repository."""

    def test_update_web_template(self, repo, api, tmp_path):
        repo.download()
        api.update_web_template.side_effect = lambda template: template

        repo.update_document_in_repository(
            PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'header.html'), '<new/>'
        )

        assert api.update_web_template.call_args[0][0].id == 't1'
        assert repo.get_portal_data().get_web_template('header').source == '<new/>'

    def test_update_content_snippet(self, repo, api, tmp_path):
        repo.download()
        api.update_content_snippet.side_effect = lambda snippet: snippet
        path = workspace_path(tmp_path, 'Content Snippets', 'account', 'signin', 'en-us', 'pagecopy.html')

        repo.update_document_in_repository(PortalFileType.CONTENT_SNIPPET, path, 'Hello')

        assert repo.get_portal_data().get_content_snippet('account/signin/en-us/pagecopy').source == 'Hello'

    def test_update_unknown_document(self, repo, tmp_path):
        repo.download()

        with pytest.raises(DocumentNotFoundError):
            repo.update_document_in_repository(
                PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'nope.html'), ''
            )

    def test_failed_update_keeps_old_content(self, repo, api, tmp_path):
        repo.download()
        api.update_web_template.side_effect = APIAccessError("boom")

        with pytest.raises(APIAccessError):
            repo.update_document_in_repository(
                PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'header.html'), '<x/>'
            )

        assert repo.get_portal_data().get_web_template('header').source == '<header/>'

    def test_update_web_file_uses_returned_note(self, repo, api, tmp_path):
        repo.download()
        api.update_files.return_value = [Note('n1', 'logo.png', 'BBBB')]

        repo.update_document_in_repository(
            PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'logo.png'), 'BBBB'
        )

        sent = api.update_files.call_args[0][0]
        assert [note.document_body for note in sent] == ['BBBB']
        assert repo.get_portal_data().get_web_file('logo.png').b64_content == 'BBBB'

    def test_update_web_file_empty_result(self, repo, api, tmp_path):
        repo.download()
        api.update_files.return_value = []

        with pytest.raises(IntegrityError, match="Result set from dynamics was empty"):
            repo.update_document_in_repository(
                PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'logo.png'), 'BBBB'
            )

        assert repo.get_portal_data().get_web_file('logo.png').b64_content == 'AAAA'


class TestDeleteDocument:
    """Test cases for PortalRepository.delete_document_in_repository."""

    def test_delete_web_template(self, repo, api, tmp_path):
        repo.download()

        repo.delete_document_in_repository(
            PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'header.html')
        )

        api.delete_web_template.assert_called_once_with('t1')
        assert repo.get_portal_data().get_web_template('header') is None

    def test_failed_template_delete_keeps_entry(self, repo, api, tmp_path):
        repo.download()
        api.delete_web_template.side_effect = APIAccessError("boom")

        with pytest.raises(APIAccessError):
            repo.delete_document_in_repository(
                PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'header.html')
            )

        assert repo.get_portal_data().get_web_template('header') is not None

    def test_delete_content_snippet(self, repo, api, tmp_path):
        repo.download()
        path = workspace_path(tmp_path, 'Content Snippets', 'account', 'signin', 'en-us', 'pagecopy.html')

        repo.delete_document_in_repository(PortalFileType.CONTENT_SNIPPET, path)

        api.delete_content_snippet.assert_called_once_with('s1')
        assert repo.get_portal_data().content_snippets == {}

    def test_failed_web_file_delete_still_removes_entry(self, repo, api, tmp_path):
        repo.download()
        api.delete_web_file.side_effect = APIAccessError("boom")

        repo.delete_document_in_repository(
            PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'logo.png')
        )

        api.delete_web_file.assert_called_once_with('f1', 'n1')
        assert repo.get_portal_data().get_web_file('logo.png') is None

    def test_rejected_web_file_ids_still_remove_entry(self, repo, tmp_path):
        repo.download()
        repo.api = DynamicsApi(Mock())

        repo.delete_document_in_repository(
            PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'logo.png')
        )

        assert repo.get_portal_data().get_web_file('logo.png') is None

    def test_web_file_without_annotation_id(self, repo, api, tmp_path):
        repo.download()
        repo.get_portal_data().get_web_file('logo.png').note.annotation_id = None

        with pytest.raises(ConfigurationError, match="annotationid"):
            repo.delete_document_in_repository(
                PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'logo.png')
            )

        api.delete_web_file.assert_not_called()

    def test_delete_unknown_document(self, repo, tmp_path):
        repo.download()

        with pytest.raises(DocumentNotFoundError):
            repo.delete_document_in_repository(
                PortalFileType.WEB_FILE, workspace_path(tmp_path, 'Web Files', 'missing.png')
            )


class TestBusyGuard:
    """Only one repository operation runs at a time."""

    def test_add_during_download_is_rejected(self, repo, api, tmp_path):
        rejected = []

        def templates(portal_id):
            with pytest.raises(RepositoryBusyError) as exc_info:
                repo.add_document_to_repository(
                    PortalFileType.WEB_TEMPLATE, workspace_path(tmp_path, 'Web Templates', 'x.html'), ''
                )
            rejected.append(exc_info.value)
            return []

        api.get_web_templates.side_effect = templates
        repo.download()

        assert rejected[0].running_operation == 'download'
        assert rejected[0].requested_operation == 'add'

    def test_guard_is_released_after_failure(self, repo, api, tmp_path):
        repo.download()
        api.update_files.return_value = []
        path = workspace_path(tmp_path, 'Web Files', 'logo.png')

        with pytest.raises(IntegrityError):
            repo.update_document_in_repository(PortalFileType.WEB_FILE, path, 'BBBB')

        repo.delete_document_in_repository(PortalFileType.WEB_FILE, path)


class TestOriginalContent:
    """Test cases for the last-synced content provider."""

    def test_original_resource_identifier(self, repo, tmp_path):
        path = workspace_path(tmp_path, 'Web Templates', 'header.html')

        assert repo.provide_original_resource(path) == 'powerappsPortal:Web Templates/header.html'

    def test_original_content_by_type(self, repo, tmp_path):
        repo.download()

        def original(*parts):
            return repo.get_original_content(
                repo.provide_original_resource(workspace_path(tmp_path, *parts))
            )

        assert original('Web Templates', 'header.html') == '<header/>'
        assert original('Content Snippets', 'account', 'signin', 'en-us', 'pagecopy.html') == 'Welcome'
        assert original('Web Files', 'logo.png') == 'AAAA'
        assert original('Web Templates', 'new.html') is None
        assert original('notes.txt') is None

    def test_no_original_before_download(self, repo, tmp_path):
        path = workspace_path(tmp_path, 'Web Templates', 'header.html')

        assert repo.get_original_content(repo.provide_original_resource(path)) is None

    def test_source_controlled_resources(self, repo, tmp_path):
        assert repo.provide_source_controlled_resources() == set()
        repo.download()
        extra = tmp_path / 'Web Templates' / 'extra.html'
        extra.parent.mkdir(parents=True, exist_ok=True)
        extra.write_text('x')

        resources = repo.provide_source_controlled_resources()

        assert workspace_path(tmp_path, 'Web Templates', 'header.html') in resources
        assert workspace_path(tmp_path, 'Web Files', 'logo.png') in resources
        assert os.path.abspath(str(extra)) in resources


class TestSwitchPortal:
    """Test cases for PortalRepository.switch_portal."""

    def test_switch_forgets_portal(self, repo, api, chooser):
        first = repo.download()

        repo.switch_portal()

        assert repo.portal_id is None
        assert repo.config.portal_id is None
        assert repo.get_portal_data() is not first

        chooser.pick.side_effect = lambda items, placeholder: items[1]
        repo.download()

        assert repo.portal_id == 'id-b'
        assert api.get_languages.call_count == 2
