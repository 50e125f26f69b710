"""
Abstract base class for streaming backup backends.

Defines the interface that the backup engine calls, plus the error
family every backend raises.
"""

import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, List, Optional, Union

# Destination or source accepted by get/put: a filesystem path or a binary stream
PathOrStream = Union[str, os.PathLike, BinaryIO]


class StorageError(Exception):
    """Exception raised for storage-related errors."""
    pass


class ConfigurationError(StorageError):
    """Credential inputs are missing or inconsistent."""
    pass


class AuthorizationError(StorageError):
    """The service rejected the credential."""
    pass


class UnavailableError(StorageError):
    """Transient network or service failure. Safe to retry."""
    pass


class FileMissingError(StorageError):
    """The remote file is absent (delete wraps every failure as this)."""
    pass


class TransferError(StorageError):
    """An upload or download reported failure or broke the progress protocol."""
    pass


class ConnectivityError(StorageError):
    """The connection self-test failed or timed out."""
    pass


class InvalidStateError(StorageError):
    """Operation attempted on a backend that has been closed."""
    pass


@dataclass(frozen=True)
class RemoteEntry:
    """A listed remote file."""

    name: str
    size: int
    last_modified: Optional[datetime] = None
    last_access: Optional[datetime] = None
    is_folder: bool = False


class StreamingBackend(ABC):
    """
    Abstract base class for streaming backends.

    Every operation has a coroutine implementation (``*_async``) and a
    blocking counterpart for callers that cannot await.
    """

    @property
    @abstractmethod
    def protocol_key(self) -> str:
        """Short scheme identifying the backend (e.g. 'tardigrade')."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human readable backend name."""
        pass

    @property
    def dns_names(self) -> List[str]:
        """Host names the backend connects to, if known up front."""
        return []

    @abstractmethod
    def create_folder(self) -> None:
        """Create the remote folder (may be a no-op)."""
        pass

    @abstractmethod
    async def list_async(self) -> List[RemoteEntry]:
        """
        List all remote files under the configured folder.

        Returns:
            Entries in the order the service returned them

        Raises:
            StorageError: If listing fails
        """
        pass

    @abstractmethod
    async def get_async(self, remote_name: str, destination: PathOrStream) -> None:
        """
        Download a remote file.

        Args:
            remote_name: Logical file name
            destination: Local path (written once on completion) or
                binary stream (written incrementally)

        Raises:
            TransferError: If the download fails
        """
        pass

    @abstractmethod
    async def put_async(self, remote_name: str, source: Union[PathOrStream, bytes]) -> None:
        """
        Upload a file.

        Args:
            remote_name: Logical file name
            source: Local path, binary stream or bytes

        Raises:
            TransferError: If the upload fails
        """
        pass

    @abstractmethod
    async def delete_async(self, remote_name: str) -> None:
        """
        Delete a remote file.

        Raises:
            FileMissingError: If deletion fails for any reason
        """
        pass

    @abstractmethod
    async def test_async(self) -> None:
        """
        Verify credentials and connectivity.

        Raises:
            ConnectivityError: If the round trip fails
        """
        pass

    @abstractmethod
    def list(self) -> List[RemoteEntry]:
        pass

    @abstractmethod
    def get(self, remote_name: str, destination: PathOrStream) -> None:
        pass

    @abstractmethod
    def put(
        self,
        remote_name: str,
        source: Union[PathOrStream, bytes],
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        pass

    @abstractmethod
    def delete(self, remote_name: str) -> None:
        pass

    @abstractmethod
    def test(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the backend's resources. Further calls are invalid."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
