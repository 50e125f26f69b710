"""
List, upload, download and delete against one bucket and key prefix.

Streaming downloads are written incrementally from progress
notifications. Each notification reports the cumulative byte count and
the buffer received so far; ``advance`` turns that into the slice that
has not been written yet.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import BinaryIO, List, Optional, Tuple, Union

from tardigrade_backend.common.metrics import record_bytes
from tardigrade_backend.storage.adapter import (
    FileMissingError,
    PathOrStream,
    RemoteEntry,
    TransferError,
    UnavailableError,
)
from tardigrade_backend.storage.buckets import BucketResolver
from tardigrade_backend.storage.client import (
    LAST_ACCESS_KEY,
    LAST_MODIFICATION_KEY,
    DownloadOperation,
    DownloadOptions,
    ListObjectsOptions,
    ObjectInfo,
    ObjectService,
    UploadOptions,
)
from tardigrade_backend.storage.paths import PathNamer

logger = logging.getLogger(__name__)


def advance(prior_offset: int, buffer: Union[bytes, bytearray], cumulative: int) -> Tuple[int, bytes]:
    """
    Compute the bytes received since the previous notification.

    Args:
        prior_offset: Bytes already written
        buffer: Everything received so far
        cumulative: Byte count reported by the notification

    Returns:
        Tuple of (new offset, bytes to write)

    Raises:
        TransferError: If the count went backwards or exceeds the buffer
    """
    if cumulative < prior_offset:
        raise TransferError(
            f"Download progress went backwards: {cumulative} < {prior_offset}")
    if cumulative > len(buffer):
        raise TransferError(
            f"Download progress reports {cumulative} bytes but only "
            f"{len(buffer)} are buffered")
    return cumulative, bytes(buffer[prior_offset:cumulative])


class ProgressWriter:
    """Download progress listener writing each new range to a stream."""

    def __init__(self, destination: BinaryIO):
        self.destination = destination
        self.offset = 0

    def __call__(self, operation: DownloadOperation) -> None:
        self.offset, chunk = advance(
            self.offset, operation.downloaded_bytes, operation.bytes_received)
        if chunk:
            self.destination.write(chunk)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 metadata timestamp, tolerating 'Z' and 7-digit fractions."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Round-trip formats from other writers carry 100ns precision
    if "." in text:
        head, _, tail = text.partition(".")
        digits = len(tail) - len(tail.lstrip("0123456789"))
        fraction = tail[:digits][:6].ljust(6, "0")
        text = f"{head}.{fraction}{tail[digits:]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_path(target) -> bool:
    return isinstance(target, (str, os.PathLike))


class TransferEngine:
    """
    Performs the transfer protocol for one bucket and folder.

    Args:
        buckets: Resolver for the target bucket
        objects: Object capability of the network client
        namer: Folder prefix mapping
    """

    def __init__(self, buckets: BucketResolver, objects: ObjectService, namer: PathNamer):
        self.buckets = buckets
        self.objects = objects
        self.namer = namer

    def _to_entry(self, info: ObjectInfo) -> RemoteEntry:
        last_modified = parse_timestamp(info.custom.get(LAST_MODIFICATION_KEY))
        last_access = parse_timestamp(info.custom.get(LAST_ACCESS_KEY))
        return RemoteEntry(
            name=self.namer.strip_prefix(info.key),
            size=info.content_length,
            last_modified=last_modified or info.created,
            last_access=last_access or last_modified or info.created,
            is_folder=info.is_prefix,
        )

    async def list(self) -> List[RemoteEntry]:
        bucket = await self.buckets.resolve()
        options = ListObjectsOptions(
            prefix=self.namer.prefix, recursive=True, system=True, custom=True)
        try:
            objects = await self.objects.list_objects(bucket, options)
        except (ConnectionError, TimeoutError) as e:
            raise UnavailableError(f"Failed to list objects: {e}") from e
        return [self._to_entry(info) for info in objects]

    async def _open_download(self, name: str) -> DownloadOperation:
        bucket = await self.buckets.resolve()
        return await self.objects.download_object(
            bucket, self.namer.namespaced_key(name), DownloadOptions())

    @staticmethod
    def _check_download(name: str, download: DownloadOperation) -> None:
        if download.failed or not download.completed:
            raise TransferError(
                f"Download of '{name}' failed: {download.error_message or 'incomplete'}")
        record_bytes("download", download.bytes_received)

    async def download_to_file(self, name: str, path: Union[str, os.PathLike]) -> None:
        """Wait for the full object, then write it to ``path`` in one go."""
        download = await self._open_download(name)
        await download.start()
        self._check_download(name, download)

        with open(path, "wb") as f:
            f.write(download.downloaded_bytes[:download.bytes_received])
            f.flush()

    async def download_to_stream(self, name: str, destination: BinaryIO) -> None:
        """Write each received range to ``destination`` as it arrives."""
        download = await self._open_download(name)
        writer = ProgressWriter(destination)
        download.add_progress_listener(writer)
        await download.start()
        self._check_download(name, download)
        destination.flush()

    async def download(self, name: str, destination: PathOrStream) -> None:
        if _is_path(destination):
            await self.download_to_file(name, destination)
        else:
            await self.download_to_stream(name, destination)

    async def upload(self, name: str, source: Union[PathOrStream, bytes]) -> None:
        """
        Upload ``source`` under ``name`` with timestamp metadata.

        Cancelling the awaiting task aborts the in-flight upload; the
        remote object is then undefined.
        """
        if _is_path(source):
            with open(source, "rb") as f:
                await self.upload(name, f)
            return

        bucket = await self.buckets.resolve()
        now = datetime.now(timezone.utc).isoformat()
        metadata = {LAST_ACCESS_KEY: now, LAST_MODIFICATION_KEY: now}
        key = self.namer.namespaced_key(name)

        upload = await self.objects.upload_object(
            bucket, key, UploadOptions(), source, metadata)
        try:
            await upload.start()
        except asyncio.CancelledError:
            logger.warning(f"Upload of '{name}' cancelled, aborting")
            await upload.abort()
            raise

        if upload.failed or not upload.completed:
            raise TransferError(
                f"Upload of '{name}' failed: {upload.error_message or 'incomplete'}")
        record_bytes("upload", upload.bytes_sent)

    async def delete(self, name: str) -> None:
        try:
            bucket = await self.buckets.resolve()
            await self.objects.delete_object(bucket, self.namer.namespaced_key(name))
        except Exception as e:
            raise FileMissingError(f"Failed to delete '{name}': {e}") from e
