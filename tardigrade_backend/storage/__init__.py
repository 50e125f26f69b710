"""
Storage backend for the Tardigrade (Storj) object-storage service.

Provides the streaming backend contract and its Storj implementation.
"""

from tardigrade_backend.storage.adapter import (
    AuthorizationError,
    ConfigurationError,
    ConnectivityError,
    FileMissingError,
    InvalidStateError,
    RemoteEntry,
    StorageError,
    StreamingBackend,
    TransferError,
    UnavailableError,
)
from tardigrade_backend.storage.factory import (
    configure_logging,
    create_backend,
    create_backend_from_options,
    get_backend,
    reset_backend,
)
from tardigrade_backend.storage.tardigrade import TardigradeBackend

__all__ = [
    "AuthorizationError",
    "ConfigurationError",
    "ConnectivityError",
    "FileMissingError",
    "InvalidStateError",
    "RemoteEntry",
    "StorageError",
    "StreamingBackend",
    "TardigradeBackend",
    "TransferError",
    "UnavailableError",
    "configure_logging",
    "create_backend",
    "create_backend_from_options",
    "get_backend",
    "reset_backend",
]
