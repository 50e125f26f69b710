"""
Storj network client built on the official ``uplink-python`` binding.

uplink-python is synchronous (ctypes over libuplink), so every call is
moved off the event loop with ``asyncio.to_thread``. Transient failures
of idempotent calls are retried here; uploads and downloads are not.
"""

import asyncio
import io
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Dict, List, Optional, Union

from uplink_python.errors import StorjException
from uplink_python.module_classes import CustomMetadata, CustomMetadataEntry
from uplink_python.module_classes import DownloadOptions as UplinkDownloadOptions
from uplink_python.module_classes import ListObjectsOptions as UplinkListObjectsOptions
from uplink_python.module_classes import UploadOptions as UplinkUploadOptions
from uplink_python.uplink import Uplink

from tardigrade_backend.common.resilience import retry_transient_operation
from tardigrade_backend.storage.adapter import (
    AuthorizationError,
    FileMissingError,
    StorageError,
    TransferError,
    UnavailableError,
)
from tardigrade_backend.storage.client import (
    AccessRequest,
    BucketHandle,
    DownloadOptions,
    ListObjectsOptions,
    ObjectInfo,
    UploadOptions,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 256 * 1024

# libuplink error codes
ERROR_INTERNAL = 0x02
ERROR_TOO_MANY_REQUESTS = 0x05
ERROR_BANDWIDTH_LIMIT_EXCEEDED = 0x06
ERROR_PERMISSION_DENIED = 0x09
ERROR_BUCKET_NOT_FOUND = 0x13
ERROR_OBJECT_NOT_FOUND = 0x21

TRANSIENT_CODES = {ERROR_INTERNAL, ERROR_TOO_MANY_REQUESTS, ERROR_BANDWIDTH_LIMIT_EXCEEDED}
NOT_FOUND_CODES = {ERROR_BUCKET_NOT_FOUND, ERROR_OBJECT_NOT_FOUND}


def translate_error(exc: Exception, action: str) -> StorageError:
    """Map a libuplink error onto the backend's error family."""
    code = getattr(exc, "code", None)
    details = getattr(exc, "details", None) or str(exc)
    message = f"{action} failed: {details}"

    if code == ERROR_PERMISSION_DENIED:
        return AuthorizationError(message)
    if code in TRANSIENT_CODES:
        return UnavailableError(message)
    if code in NOT_FOUND_CODES:
        return FileMissingError(message)
    return TransferError(message)


@contextmanager
def translate_errors(action: str):
    try:
        yield
    except StorjException as e:
        raise translate_error(e, action) from e


def _from_unix(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _custom_metadata(metadata: Dict[str, str]) -> CustomMetadata:
    entries = [
        CustomMetadataEntry(
            key=key, key_length=len(key.encode()),
            value=value, value_length=len(value.encode()),
        )
        for key, value in metadata.items()
    ]
    return CustomMetadata(entries=entries, count=len(entries))


def _object_info(obj) -> ObjectInfo:
    system = getattr(obj, "system", None)
    custom = getattr(obj, "custom", None)
    entries = getattr(custom, "entries", None) or []
    return ObjectInfo(
        key=obj.key,
        is_prefix=bool(obj.is_prefix),
        content_length=getattr(system, "content_length", 0) or 0,
        created=_from_unix(getattr(system, "created", None)),
        custom={entry.key: entry.value for entry in entries},
    )


class UplinkAccess:
    """Parsed access plus the project opened from it on first use."""

    def __init__(self, access):
        self.access = access
        self._project = None

    def open_project(self):
        if self._project is None:
            with translate_errors("Open project"):
                self._project = self.access.open_project()
        return self._project

    def close(self) -> None:
        if self._project is None:
            return
        project, self._project = self._project, None
        with translate_errors("Close project"):
            project.close()


class UplinkUpload:
    """Upload session streaming ``source`` to one key."""

    def __init__(
        self,
        access: UplinkAccess,
        bucket: str,
        key: str,
        options: UploadOptions,
        source: Union[BinaryIO, bytes],
        metadata: Optional[Dict[str, str]],
        chunk_size: int,
    ):
        self.access = access
        self.bucket = bucket
        self.key = key
        self.options = options
        self.source = source
        self.metadata = metadata or {}
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self.completed = False
        self.failed = False
        self.error_message = ""
        self._upload = None

    def _open(self):
        project = self.access.open_project()
        options = None
        if self.options.expires is not None:
            options = UplinkUploadOptions(expires=int(self.options.expires.timestamp()))
        upload = project.upload_object(self.bucket, self.key, options)
        if self.metadata:
            upload.set_custom_metadata(_custom_metadata(self.metadata))
        return upload

    def _write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = self._upload.write(bytes(view), len(view))
            view = view[written:]

    async def start(self) -> None:
        stream = io.BytesIO(self.source) if isinstance(self.source, (bytes, bytearray)) else self.source
        try:
            self._upload = await asyncio.to_thread(self._open)
            while True:
                chunk = await asyncio.to_thread(stream.read, self.chunk_size)
                if not chunk:
                    break
                await asyncio.to_thread(self._write, chunk)
                self.bytes_sent += len(chunk)
            await asyncio.to_thread(self._upload.commit)
            self.completed = True
        except StorjException as e:
            self.failed = True
            self.error_message = str(translate_error(e, f"Upload of '{self.key}'"))
            logger.warning(self.error_message)
            if self._upload is not None:
                await self._abort_failed()

    async def _abort_failed(self) -> None:
        # The upload already failed; an abort error is logged, not raised over it
        try:
            await asyncio.to_thread(self._upload.abort)
        except StorjException as e:
            logger.warning(f"Abort of failed upload '{self.key}' failed: {translate_error(e, 'Abort')}")

    async def abort(self) -> None:
        if self._upload is None or self.completed:
            return
        with translate_errors(f"Abort upload of '{self.key}'"):
            await asyncio.to_thread(self._upload.abort)


class UplinkDownload:
    """Download session buffering one object and reporting progress."""

    def __init__(
        self,
        access: UplinkAccess,
        bucket: str,
        key: str,
        options: DownloadOptions,
        chunk_size: int,
    ):
        self.access = access
        self.bucket = bucket
        self.key = key
        self.options = options
        self.chunk_size = chunk_size
        self.downloaded_bytes = bytearray()
        self.bytes_received = 0
        self.completed = False
        self.failed = False
        self.error_message = ""
        self._listeners: List[Callable] = []

    def add_progress_listener(self, listener: Callable) -> None:
        self._listeners.append(listener)

    def _open(self):
        project = self.access.open_project()
        options = None
        if self.options.offset or self.options.length >= 0:
            options = UplinkDownloadOptions(offset=self.options.offset, length=self.options.length)
        return project.download_object(self.bucket, self.key, options)

    async def start(self) -> None:
        download = None
        try:
            download = await asyncio.to_thread(self._open)
            size = await asyncio.to_thread(download.file_size)
            if self.options.length >= 0:
                size = min(size, self.options.length)
            while self.bytes_received < size:
                wanted = min(self.chunk_size, size - self.bytes_received)
                data, count = await asyncio.to_thread(download.read, wanted)
                if count == 0:
                    raise TransferError(
                        f"Download of '{self.key}' ended after {self.bytes_received} of {size} bytes")
                self.downloaded_bytes += data[:count]
                self.bytes_received += count
                for listener in self._listeners:
                    listener(self)
            self.completed = True
        except StorjException as e:
            self.failed = True
            self.error_message = str(translate_error(e, f"Download of '{self.key}'"))
            logger.warning(self.error_message)
        except TransferError as e:
            self.failed = True
            self.error_message = str(e)
            logger.warning(self.error_message)
        finally:
            if download is not None:
                with translate_errors(f"Close download of '{self.key}'"):
                    await asyncio.to_thread(download.close)


class UplinkBucketService:
    def __init__(self, access: UplinkAccess):
        self.access = access

    @retry_transient_operation
    async def ensure_bucket(self, name: str) -> BucketHandle:
        def ensure():
            return self.access.open_project().ensure_bucket(name)

        with translate_errors(f"Ensure bucket '{name}'"):
            bucket = await asyncio.to_thread(ensure)
        return BucketHandle(name=bucket.name, created=_from_unix(getattr(bucket, "created", None)))


class UplinkObjectService:
    def __init__(self, access: UplinkAccess, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.access = access
        self.chunk_size = chunk_size

    @retry_transient_operation
    async def list_objects(self, bucket: BucketHandle, options: ListObjectsOptions) -> List[ObjectInfo]:
        uplink_options = UplinkListObjectsOptions(
            prefix=options.prefix,
            recursive=options.recursive,
            system=options.system,
            custom=options.custom,
        )

        def list_objects():
            return self.access.open_project().list_objects(bucket.name, uplink_options)

        with translate_errors(f"List bucket '{bucket.name}'"):
            objects = await asyncio.to_thread(list_objects)
        return [_object_info(obj) for obj in objects or []]

    async def upload_object(
        self,
        bucket: BucketHandle,
        key: str,
        options: UploadOptions,
        source: Union[BinaryIO, bytes],
        metadata: Optional[Dict[str, str]] = None,
    ) -> UplinkUpload:
        return UplinkUpload(self.access, bucket.name, key, options, source, metadata, self.chunk_size)

    async def download_object(
        self, bucket: BucketHandle, key: str, options: DownloadOptions
    ) -> UplinkDownload:
        return UplinkDownload(self.access, bucket.name, key, options, self.chunk_size)

    @retry_transient_operation
    async def delete_object(self, bucket: BucketHandle, key: str) -> None:
        def delete():
            return self.access.open_project().delete_object(bucket.name, key)

        with translate_errors(f"Delete '{key}'"):
            await asyncio.to_thread(delete)


class UplinkClient:
    """
    StorageClient backed by libuplink.

    Args:
        chunk_size: Bytes per read/write call during transfers
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self._uplink = Uplink()

    def open_access(self, request: AccessRequest) -> UplinkAccess:
        # libuplink is loaded from the installed wheel and needs no scratch space
        logger.debug(f"Opening access (temp directory: {request.temp_directory})")
        with translate_errors("Open access"):
            if request.uses_grant:
                access = self._uplink.parse_access(request.shared_access)
            else:
                access = self._uplink.request_access_with_passphrase(
                    request.satellite, request.api_key or "", request.secret or "")
        return UplinkAccess(access)

    def bucket_service(self, access: UplinkAccess) -> UplinkBucketService:
        return UplinkBucketService(access)

    def object_service(self, access: UplinkAccess) -> UplinkObjectService:
        return UplinkObjectService(access, self.chunk_size)
