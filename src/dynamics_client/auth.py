"""Authentication module for loading Dynamics credentials.

This module handles loading the Dynamics 365 organisation and Azure AD app
registration credentials from environment variables using python-dotenv, and
acquiring OAuth access tokens with the client-credentials grant.
"""

import logging
import os
import time
from typing import NamedTuple, Optional

import requests
from dotenv import load_dotenv

from .errors import APIUnreachableError, InvalidCredentialsError

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

# Refresh tokens slightly before they actually expire
TOKEN_EXPIRY_MARGIN = 60


class Credentials(NamedTuple):
    """Dynamics organisation and Azure AD app credentials."""
    instance_name: str
    crm_region: str
    tenant_id: str
    client_id: str
    client_secret: str

    @property
    def org_url(self) -> str:
        """Base URL of the Dynamics organisation, e.g. https://org.crm4.dynamics.com."""
        return f"https://{self.instance_name}.{self.crm_region}.dynamics.com"


class Authenticator:
    """Loads credentials from the environment and acquires access tokens.

    Credentials are loaded from a .env file using python-dotenv. Secrets are
    never logged. Access tokens are cached in memory until shortly before
    they expire.

    Required environment variables:
        D365_INSTANCE_NAME: Organisation name (e.g. org7c98f08c)
        D365_CRM_REGION: Region label (e.g. crm4)
        AAD_TENANT_ID: Azure AD tenant id
        AAD_CLIENT_ID: Azure AD app registration client id
        AAD_CLIENT_SECRET: Azure AD app registration client secret

    Raises:
        InvalidCredentialsError: If any required credential is missing

    Example:
        >>> auth = Authenticator()
        >>> creds = auth.get_credentials()
        >>> print(f"Connecting to {creds.org_url}")
    """

    ENV_VARS = (
        'D365_INSTANCE_NAME',
        'D365_CRM_REGION',
        'AAD_TENANT_ID',
        'AAD_CLIENT_ID',
        'AAD_CLIENT_SECRET',
    )

    def __init__(self, env_file: Optional[str] = None, override: bool = False):
        """Initialize the authenticator by loading environment variables.

        Args:
            env_file: Optional path to a .env file (defaults to dotenv's lookup)
            override: Let values from the .env file replace variables already set
        """
        load_dotenv(env_file, override=override)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def get_credentials(self) -> Credentials:
        """Get Dynamics credentials from environment variables.

        Returns:
            Credentials: A named tuple with organisation and app credentials

        Raises:
            InvalidCredentialsError: If any required credential is missing
        """
        values = {name: os.getenv(name) for name in self.ENV_VARS}
        missing = [name for name, value in values.items() if not value]

        if missing:
            logger.error(f"Missing credential environment variables: {', '.join(missing)}")
            instance = values['D365_INSTANCE_NAME']
            region = values['D365_CRM_REGION']
            endpoint = f"{instance}.{region}" if instance and region else "unknown"
            raise InvalidCredentialsError(
                client_id=values['AAD_CLIENT_ID'] or "unknown",
                endpoint=endpoint
            )

        return Credentials(
            instance_name=values['D365_INSTANCE_NAME'],  # type: ignore[arg-type]
            crm_region=values['D365_CRM_REGION'],  # type: ignore[arg-type]
            tenant_id=values['AAD_TENANT_ID'],  # type: ignore[arg-type]
            client_id=values['AAD_CLIENT_ID'],  # type: ignore[arg-type]
            client_secret=values['AAD_CLIENT_SECRET'],  # type: ignore[arg-type]
        )

    def get_access_token(self) -> str:
        """Return a bearer token for the organisation, acquiring one if needed.

        Returns:
            str: OAuth access token

        Raises:
            InvalidCredentialsError: If Azure AD rejects the credentials
            APIUnreachableError: If the token endpoint cannot be reached
        """
        if self._token and time.time() < self._token_expires_at:
            return self._token

        creds = self.get_credentials()
        url = TOKEN_ENDPOINT.format(tenant_id=creds.tenant_id)
        logger.debug(f"Requesting access token for {creds.org_url}")

        try:
            response = requests.post(
                url,
                data={
                    'grant_type': 'client_credentials',
                    'client_id': creds.client_id,
                    'client_secret': creds.client_secret,
                    'scope': f"{creds.org_url}/.default",
                },
                timeout=30,
            )
        except requests.exceptions.RequestException:
            raise APIUnreachableError(endpoint=url)

        if response.status_code != 200:
            logger.error(f"Token request failed with status {response.status_code}")
            raise InvalidCredentialsError(client_id=creds.client_id, endpoint=creds.org_url)

        payload = response.json()
        self._token = payload['access_token']
        self._token_expires_at = (
            time.time() + int(payload.get('expires_in', 3600)) - TOKEN_EXPIRY_MARGIN
        )
        return self._token
