"""InitCommand for connecting a workspace to a Dynamics organisation.

This module implements `portal-sync init`: it runs the connection wizard,
stores the credentials in .env and the folder mode in
.portal-sync/config.yaml, and verifies that the credentials work.
"""

import logging
from typing import Optional

from dotenv import set_key

from src.dynamics_client.api_wrapper import DynamicsApi
from src.dynamics_client.auth import Authenticator
from src.dynamics_client.errors import DynamicsError
from src.portal_mapper.config_loader import ConfigLoader
from src.portal_mapper.errors import PortalMapperError
from src.portal_mapper.models import PortalConfig
from src.scm.chooser import Chooser
from .errors import InitError
from .wizard import MultiStepInput, WizardState

logger = logging.getLogger(__name__)


class InitCommand:
    """Handles initialization of the workspace connection.

    Example:
        >>> init = InitCommand(chooser=ConsoleChooser())
        >>> portal_count = init.run()
    """

    DEFAULT_CONFIG_PATH = ConfigLoader.DEFAULT_CONFIG_PATH
    DEFAULT_ENV_PATH = ".env"

    def __init__(
        self,
        chooser: Chooser,
        config_path: Optional[str] = None,
        env_path: Optional[str] = None,
        api: Optional[DynamicsApi] = None,
    ):
        """Initialize the init command.

        Args:
            chooser: Chooser the wizard asks through
            config_path: Optional config file path (defaults to .portal-sync/config.yaml)
            env_path: Optional .env path (defaults to ./.env)
            api: Optional DynamicsApi instance for testing
        """
        self.chooser = chooser
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.env_path = env_path or self.DEFAULT_ENV_PATH
        self.api = api

    def run(self, verify: bool = True) -> Optional[int]:
        """Run the wizard and persist its answers.

        Args:
            verify: Fetch the organisation's portals to check the credentials

        Returns:
            Number of portals visible with the new credentials (None when not
            verified)

        Raises:
            InitError: If the wizard was cancelled or a step failed
        """
        state = MultiStepInput(self.chooser).run()
        if state is None:
            raise InitError("Configuration cancelled")

        self._write_env(state)
        self._write_config(state)

        if not verify:
            return None
        return self._verify()

    def _write_env(self, state: WizardState) -> None:
        values = {
            'D365_INSTANCE_NAME': state.instance_name,
            'D365_CRM_REGION': state.crm_region,
            'AAD_TENANT_ID': state.tenant_id,
            'AAD_CLIENT_ID': state.client_id,
            'AAD_CLIENT_SECRET': state.client_secret,
        }
        try:
            with open(self.env_path, 'a', encoding='utf-8'):
                pass
            for key, value in values.items():
                set_key(self.env_path, key, value or "")
        except OSError as e:
            raise InitError(f"Failed to write credentials to {self.env_path}: {e}")
        logger.info(f"Credentials written to {self.env_path}")

    def _write_config(self, state: WizardState) -> None:
        try:
            ConfigLoader.save(
                self.config_path,
                PortalConfig(use_folders_for_web_files=bool(state.use_folders_for_web_files)),
            )
        except PortalMapperError as e:
            raise InitError(f"Failed to write configuration: {e}")
        logger.info(f"Configuration written to {self.config_path}")

    def _verify(self) -> int:
        api = self.api or DynamicsApi(Authenticator(self.env_path, override=True))
        try:
            portals = api.get_portals()
        except DynamicsError as e:
            raise InitError(f"Could not connect to Dynamics with the new credentials: {e}")
        logger.info(f"Found {len(portals)} portal(s)")
        return len(portals)

