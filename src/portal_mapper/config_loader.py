"""YAML configuration loading and validation.

This module handles loading and saving the workspace configuration in
.portal-sync/config.yaml. The file records which portal the workspace
mirrors and how web files are laid out; a missing file means the workspace
has not been bound to a portal yet.
"""

import os
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError, FilesystemError
from .models import PortalConfig


class ConfigLoader:
    """Handles configuration file loading, validation, and saving.

    Configuration file structure:
        portal_id: "6a1b0f1e-4c1a-4a3b-8d8e-0f3b2c1d4e5f"
        portal_name: "Customer Self-Service"
        default_page_template: "1d2e3f40-5a6b-7c8d-9e0f-a1b2c3d4e5f6"
        use_folders_for_web_files: true
    """

    DEFAULT_CONFIG_DIR = '.portal-sync'
    DEFAULT_CONFIG_FILE = 'config.yaml'
    DEFAULT_CONFIG_PATH = os.path.join(DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILE)

    OPTIONAL_STRING_FIELDS = ('portal_id', 'portal_name', 'default_page_template')

    @classmethod
    def load(cls, config_path: str = DEFAULT_CONFIG_PATH) -> PortalConfig:
        """Load and parse configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            PortalConfig (defaults if the file does not exist or is empty)

        Raises:
            FilesystemError: If the file exists but cannot be read
            ConfigError: If the configuration is invalid or malformed
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            return PortalConfig()
        except PermissionError:
            raise FilesystemError(config_path, 'read', 'Permission denied')
        except Exception as e:
            raise FilesystemError(config_path, 'read', str(e))

        if not content.strip():
            return PortalConfig()

        try:
            config_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {str(e)}")

        if config_dict is None:
            return PortalConfig()

        if not isinstance(config_dict, dict):
            raise ConfigError(
                f"Configuration must be a YAML dictionary, got {type(config_dict).__name__}"
            )

        return cls._parse_config(config_dict)

    @classmethod
    def save(cls, config_path: str, config: PortalConfig) -> None:
        """Save configuration to a YAML file.

        Args:
            config_path: Path to the YAML configuration file
            config: PortalConfig to save

        Raises:
            FilesystemError: If the file cannot be written
        """
        config_dict: Dict[str, Any] = {}
        for field_name in cls.OPTIONAL_STRING_FIELDS:
            value = getattr(config, field_name)
            if value:
                config_dict[field_name] = value
        config_dict['use_folders_for_web_files'] = config.use_folders_for_web_files

        yaml_str = yaml.safe_dump(
            config_dict,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False
        )

        config_dir = os.path.dirname(config_path)
        if config_dir:
            try:
                os.makedirs(config_dir, exist_ok=True)
            except Exception as e:
                raise FilesystemError(config_dir, 'create_directory', str(e))

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(yaml_str)
        except PermissionError:
            raise FilesystemError(config_path, 'write', 'Permission denied')
        except Exception as e:
            raise FilesystemError(config_path, 'write', str(e))

    @classmethod
    def _parse_config(cls, config_dict: Dict[str, Any]) -> PortalConfig:
        """Parse and validate a configuration dictionary.

        Raises:
            ConfigError: If a field has the wrong type or is blank
        """
        values: Dict[str, Optional[str]] = {}
        for field_name in cls.OPTIONAL_STRING_FIELDS:
            raw = config_dict.get(field_name)
            if raw is None:
                values[field_name] = None
                continue
            if not isinstance(raw, str):
                raise ConfigError(
                    f"Field '{field_name}' must be a string, got {type(raw).__name__}",
                    field_name
                )
            if not raw.strip():
                raise ConfigError(f"Field '{field_name}' cannot be empty", field_name)
            values[field_name] = raw.strip()

        use_folders = config_dict.get('use_folders_for_web_files', False)
        if not isinstance(use_folders, bool):
            raise ConfigError(
                f"Field 'use_folders_for_web_files' must be a boolean, got {type(use_folders).__name__}",
                'use_folders_for_web_files'
            )

        return PortalConfig(
            portal_id=values['portal_id'],
            portal_name=values['portal_name'],
            default_page_template=values['default_page_template'],
            use_folders_for_web_files=use_folders,
        )
