"""
Access credential construction and lifecycle.

A credential is issued either from a shared access grant or from a
satellite address, API key and encryption secret. Which mode applies is
decided by the configured authentication method alone.
"""

import logging
from pathlib import Path
from typing import Optional

from tardigrade_backend.config.settings import KNOWN_AUTH_METHODS
from tardigrade_backend.storage.adapter import ConfigurationError, InvalidStateError
from tardigrade_backend.storage.client import (
    AUTH_METHOD_ACCESS_GRANT,
    Access,
    AccessRequest,
    StorageClient,
)

logger = logging.getLogger(__name__)


class AccessCredential:
    """
    Owns an access issued by the network client.

    The underlying access is released exactly once by ``close()``; reading
    it afterwards raises InvalidStateError.
    """

    def __init__(self, access: Access, request: AccessRequest):
        self._access: Optional[Access] = access
        self.auth_method = request.auth_method
        self.temp_directory = request.temp_directory

    @property
    def closed(self) -> bool:
        return self._access is None

    @property
    def access(self) -> Access:
        if self._access is None:
            raise InvalidStateError("Access credential has been released")
        return self._access

    def close(self) -> None:
        if self._access is None:
            return
        access, self._access = self._access, None
        access.close()
        logger.debug("Released access credential")


class AccessBuilder:
    """
    Builds access credentials through a network client.

    Args:
        client: Network client issuing the access
        temp_directory: Scratch directory handed to the client; created if
            missing
    """

    def __init__(self, client: StorageClient, temp_directory: str):
        self.client = client
        self.temp_directory = str(Path(temp_directory))

    def build(
        self,
        auth_method: str,
        shared_access: Optional[str] = None,
        satellite: Optional[str] = None,
        api_key: Optional[str] = None,
        secret: Optional[str] = None,
    ) -> AccessCredential:
        """
        Issue a credential for the selected authentication method.

        Args:
            auth_method: 'Access grant' or 'API key'
            shared_access: Serialized grant (grant mode)
            satellite: Satellite address (API key mode)
            api_key: API key (API key mode, may be None)
            secret: Encryption passphrase (API key mode, may be None)

        Returns:
            AccessCredential owning the issued access

        Raises:
            ConfigurationError: If the method is unknown or its required
                field is absent
        """
        if auth_method not in KNOWN_AUTH_METHODS:
            raise ConfigurationError(
                f"Unknown authentication method: {auth_method!r}. "
                f"Expected one of: {', '.join(KNOWN_AUTH_METHODS)}"
            )

        if auth_method == AUTH_METHOD_ACCESS_GRANT:
            if not shared_access:
                raise ConfigurationError(
                    "Authentication method 'Access grant' requires a shared access grant")
            request = AccessRequest(
                auth_method=auth_method,
                temp_directory=self.temp_directory,
                shared_access=shared_access,
            )
        else:
            if not satellite:
                raise ConfigurationError(
                    "Authentication method 'API key' requires a satellite address")
            # Missing key or secret is left for the service to reject
            request = AccessRequest(
                auth_method=auth_method,
                temp_directory=self.temp_directory,
                satellite=satellite,
                api_key=api_key,
                secret=secret,
            )

        Path(self.temp_directory).mkdir(parents=True, exist_ok=True)
        access = self.client.open_access(request)
        logger.debug(f"Issued access credential using '{auth_method}'")
        return AccessCredential(access, request)
