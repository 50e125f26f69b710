"""Idempotent bucket resolution."""

import logging
from typing import Optional

from tardigrade_backend.storage.adapter import UnavailableError
from tardigrade_backend.storage.client import BucketHandle, BucketService

logger = logging.getLogger(__name__)


class BucketResolver:
    """
    Resolves the configured bucket, creating it on first use.

    Args:
        service: Bucket capability of the network client
        name: Bucket name
        cache: Keep the first handle for the resolver's lifetime instead of
            asking the service on every call
    """

    def __init__(self, service: BucketService, name: str, cache: bool = False):
        self.service = service
        self.name = name
        self.cache = cache
        self._handle: Optional[BucketHandle] = None

    async def resolve(self) -> BucketHandle:
        if self._handle is not None:
            return self._handle

        try:
            handle = await self.service.ensure_bucket(self.name)
        except (ConnectionError, TimeoutError) as e:
            raise UnavailableError(
                f"Failed to resolve bucket '{self.name}': {e}") from e
        logger.debug(f"Resolved bucket '{self.name}'")
        if self.cache:
            self._handle = handle
        return handle
