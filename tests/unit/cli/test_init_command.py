"""Unit tests for cli.init_command module."""

from unittest.mock import Mock, patch

import pytest
from dotenv import dotenv_values

from src.cli.errors import InitError
from src.cli.init_command import InitCommand
from src.cli.wizard import WizardState
from src.dynamics_client.errors import InvalidCredentialsError
from src.portal_mapper.config_loader import ConfigLoader

STATE = WizardState(
    crm_region='crm4',
    instance_name='org7c98f08c',
    tenant_id='10ea4d3e-1511-4461-9c6d-e21e73840528',
    client_id='65f4ee4c-bbec-4059-b2ce-05e8e8acc679',
    client_secret='s3cr=t',
    use_folders_for_web_files=True,
)


@pytest.fixture
def paths(tmp_path):
    return str(tmp_path / '.portal-sync' / 'config.yaml'), str(tmp_path / '.env')


@pytest.fixture
def wizard():
    with patch('src.cli.init_command.MultiStepInput') as mock_wizard_cls:
        mock_wizard_cls.return_value.run.return_value = STATE
        yield mock_wizard_cls


class TestInitCommand:
    """Test cases for InitCommand.run."""

    def test_defaults(self):
        init = InitCommand(chooser=Mock())

        assert init.config_path == ConfigLoader.DEFAULT_CONFIG_PATH
        assert init.env_path == '.env'

    def test_writes_credentials_and_config(self, wizard, paths):
        config_path, env_path = paths
        api = Mock()
        api.get_portals.return_value = {'Customer Portal': 'id-a', 'Partner Portal': 'id-b'}

        portal_count = InitCommand(Mock(), config_path, env_path, api=api).run()

        assert portal_count == 2
        env = dotenv_values(env_path)
        assert env['D365_INSTANCE_NAME'] == 'org7c98f08c'
        assert env['D365_CRM_REGION'] == 'crm4'
        assert env['AAD_CLIENT_SECRET'] == 's3cr=t'
        config = ConfigLoader.load(config_path)
        assert config.use_folders_for_web_files is True
        assert config.portal_id is None

    def test_existing_env_entries_are_kept(self, wizard, paths):
        config_path, env_path = paths
        with open(env_path, 'w', encoding='utf-8') as f:
            f.write("OTHER_SETTING=1\nD365_INSTANCE_NAME=old\n")

        InitCommand(Mock(), config_path, env_path).run(verify=False)

        env = dotenv_values(env_path)
        assert env['OTHER_SETTING'] == '1'
        assert env['D365_INSTANCE_NAME'] == 'org7c98f08c'

    def test_no_verify_skips_api(self, wizard, paths):
        api = Mock()

        assert InitCommand(Mock(), *paths, api=api).run(verify=False) is None
        api.get_portals.assert_not_called()

    def test_cancelled_wizard(self, wizard, paths):
        wizard.return_value.run.return_value = None

        with pytest.raises(InitError, match="cancelled"):
            InitCommand(Mock(), *paths).run()

    def test_rejected_credentials(self, wizard, paths):
        api = Mock()
        api.get_portals.side_effect = InvalidCredentialsError('client', 'org7c98f08c.crm4')

        with pytest.raises(InitError, match="Could not connect"):
            InitCommand(Mock(), *paths, api=api).run()

    @patch('src.cli.init_command.DynamicsApi')
    @patch('src.cli.init_command.Authenticator')
    def test_verify_reloads_written_env(self, mock_auth_cls, mock_api_cls, wizard, paths):
        mock_api_cls.return_value.get_portals.return_value = {}

        InitCommand(Mock(), *paths).run()

        mock_auth_cls.assert_called_once_with(paths[1], override=True)
        mock_api_cls.assert_called_once_with(mock_auth_cls.return_value)
