"""
Backend factory.

Builds a TardigradeBackend from settings or from a backend-loader option
dictionary, using the uplink network client unless one is supplied.
"""

from functools import lru_cache
from typing import Mapping, Optional

from tardigrade_backend.common.logging_config import setup_logging
from tardigrade_backend.config.settings import TardigradeSettings, get_settings
from tardigrade_backend.storage.client import StorageClient
from tardigrade_backend.storage.tardigrade import TardigradeBackend


def configure_logging(settings: Optional[TardigradeSettings] = None) -> None:
    """Install the root log handler using the configured level and format."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_format=settings.log_json)


def default_client() -> StorageClient:
    """Create the libuplink-backed client (requires the 'uplink' extra)."""
    from tardigrade_backend.uplink.client import UplinkClient

    return UplinkClient()


def create_backend(
    settings: TardigradeSettings,
    client: Optional[StorageClient] = None,
) -> TardigradeBackend:
    return TardigradeBackend(settings, client or default_client())


def create_backend_from_options(
    options: Mapping[str, str],
    client: Optional[StorageClient] = None,
) -> TardigradeBackend:
    """
    Create a backend the way the backup engine's loader does.

    Args:
        options: Hyphenated options, e.g. {'tardigrade-bucket': 'backups'}
        client: Network client; defaults to UplinkClient

    Returns:
        TardigradeBackend instance
    """
    return create_backend(TardigradeSettings.from_options(options), client)


@lru_cache()
def _cached_backend() -> TardigradeBackend:
    return create_backend(get_settings())


def get_backend() -> TardigradeBackend:
    """
    Get the process-wide backend configured from the environment.

    A cached backend that a caller has closed is replaced by a new one.

    Returns:
        TardigradeBackend instance
    """
    backend = _cached_backend()
    if backend.closed:
        _cached_backend.cache_clear()
        backend = _cached_backend()
    return backend


def reset_backend() -> None:
    """Close and forget the cached backend (useful for testing)."""
    if _cached_backend.cache_info().currsize:
        _cached_backend().close()
    _cached_backend.cache_clear()
