"""
Tardigrade (Storj) streaming backend.

Every verb is implemented once as a coroutine; the blocking methods run
that coroutine on the backend's private ``SyncBridge`` loop. Instances
are not thread-safe: issue one operation at a time.
"""

import concurrent.futures
import logging
import threading
from typing import List, Optional, Union

from tardigrade_backend.common.logging_config import PerformanceTracker, set_operation_id
from tardigrade_backend.common.metrics import backend_open_instances, track_operation
from tardigrade_backend.config.settings import TardigradeSettings
from tardigrade_backend.storage.access import AccessBuilder
from tardigrade_backend.storage.adapter import (
    ConnectivityError,
    InvalidStateError,
    PathOrStream,
    RemoteEntry,
    StreamingBackend,
)
from tardigrade_backend.storage.buckets import BucketResolver
from tardigrade_backend.storage.client import StorageClient
from tardigrade_backend.storage.paths import PathNamer
from tardigrade_backend.storage.selftest import run_self_test
from tardigrade_backend.storage.sync import SyncBridge
from tardigrade_backend.storage.transfer import TransferEngine

logger = logging.getLogger(__name__)

PROTOCOL_KEY = "tardigrade"
DISPLAY_NAME = "Tardigrade Decentralised Cloud Storage"
TEST_CONNECTION_FAILED = "Test connection failed"


class TardigradeBackend(StreamingBackend):
    """
    Stores backup files in a Storj bucket, optionally under a folder prefix.

    Args:
        settings: Access, bucket and folder configuration
        client: Network client implementing the storage capabilities
    """

    def __init__(self, settings: TardigradeSettings, client: StorageClient):
        self.bucket = settings.bucket
        self.folder = settings.folder
        self.test_timeout = settings.test_timeout_seconds

        builder = AccessBuilder(client, settings.temp_dir)
        self._credential = builder.build(
            auth_method=settings.auth_method,
            shared_access=settings.shared_access,
            satellite=settings.satellite,
            api_key=settings.api_key,
            secret=settings.secret,
        )
        access = self._credential.access
        self._engine = TransferEngine(
            BucketResolver(client.bucket_service(access), settings.bucket,
                           cache=settings.cache_bucket),
            client.object_service(access),
            PathNamer(settings.folder),
        )
        self._bridge: Optional[SyncBridge] = None
        self._closed = False
        backend_open_instances.inc()

    @property
    def protocol_key(self) -> str:
        return PROTOCOL_KEY

    @property
    def display_name(self) -> str:
        return DISPLAY_NAME

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvalidStateError("Backend has been closed")

    def _sync(self) -> SyncBridge:
        if self._bridge is None:
            self._bridge = SyncBridge(name=f"{PROTOCOL_KEY}-{self.bucket}")
        return self._bridge

    def _track(self, operation: str, **fields) -> PerformanceTracker:
        set_operation_id()
        return PerformanceTracker(operation, logger, bucket=self.bucket, **fields)

    def create_folder(self) -> None:
        # Buckets have no directory objects
        self._ensure_open()

    # ========== Coroutine implementations ==========

    @track_operation("list")
    async def list_async(self) -> List[RemoteEntry]:
        self._ensure_open()
        with self._track("list", prefix=self._engine.namer.prefix):
            return await self._engine.list()

    @track_operation("get")
    async def get_async(self, remote_name: str, destination: PathOrStream) -> None:
        self._ensure_open()
        with self._track("get", key=self._engine.namer.namespaced_key(remote_name)):
            await self._engine.download(remote_name, destination)

    @track_operation("put")
    async def put_async(self, remote_name: str, source: Union[PathOrStream, bytes]) -> None:
        self._ensure_open()
        with self._track("put", key=self._engine.namer.namespaced_key(remote_name)):
            await self._engine.upload(remote_name, source)

    @track_operation("delete")
    async def delete_async(self, remote_name: str) -> None:
        self._ensure_open()
        with self._track("delete", key=self._engine.namer.namespaced_key(remote_name)):
            await self._engine.delete(remote_name)

    @track_operation("test")
    async def test_async(self) -> None:
        self._ensure_open()
        with self._track("test"):
            await run_self_test(self._engine)

    # ========== Blocking counterparts ==========

    def list(self) -> List[RemoteEntry]:
        self._ensure_open()
        return self._sync().run(self.list_async())

    def get(self, remote_name: str, destination: PathOrStream) -> None:
        self._ensure_open()
        self._sync().run(self.get_async(remote_name, destination))

    def put(
        self,
        remote_name: str,
        source: Union[PathOrStream, bytes],
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Upload and block until done.

        Setting ``cancel_event`` aborts the upload and raises
        ``concurrent.futures.CancelledError``; the remote file must then be
        treated as not written.
        """
        self._ensure_open()
        coro = self.put_async(remote_name, source)
        if cancel_event is None:
            self._sync().run(coro)
        else:
            self._sync().run_cancellable(coro, cancel_event)

    def delete(self, remote_name: str) -> None:
        self._ensure_open()
        self._sync().run(self.delete_async(remote_name))

    def test(self) -> None:
        """Run the self-test, failing if it does not finish within ``test_timeout``."""
        self._ensure_open()
        try:
            self._sync().run(self.test_async(), timeout=self.test_timeout)
        except concurrent.futures.TimeoutError as e:
            raise ConnectivityError(TEST_CONNECTION_FAILED) from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # In-flight work must settle before the credential it uses is released
            if self._bridge is not None:
                self._bridge.close()
                self._bridge = None
        finally:
            backend_open_instances.dec()
            self._credential.close()
        logger.debug(f"Closed backend for bucket '{self.bucket}'")
