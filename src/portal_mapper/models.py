"""Data models for the portal mapper."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class PortalConfig:
    """Workspace settings stored in .portal-sync/config.yaml.

    Credentials are not part of this file; they live in the environment
    (see src.dynamics_client.auth).

    Attributes:
        portal_id: adx_websiteid of the mirrored portal
        portal_name: Display name of the mirrored portal
        default_page_template: Page template id used for pages created on upload
        use_folders_for_web_files: Mirror the page tree as folders under Web Files
    """
    portal_id: Optional[str] = None
    portal_name: Optional[str] = None
    default_page_template: Optional[str] = None
    use_folders_for_web_files: bool = False

    @property
    def is_portal_data_configured(self) -> bool:
        return bool(self.portal_id and self.portal_name)
