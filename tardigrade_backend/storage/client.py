"""
Capability interface of the object-storage network client.

The backend never talks to the service directly. It consumes the
protocols below; ``tardigrade_backend.uplink`` implements them on top of
the official Storj binding and the test-suite implements them in memory.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Callable, Dict, List, Optional, Protocol, Union

# Custom metadata keys attached to every upload
LAST_ACCESS_KEY = "DUPLICATI:LAST-ACCESS"
LAST_MODIFICATION_KEY = "DUPLICATI:LAST-MODIFICATION"

AUTH_METHOD_API_KEY = "API key"
AUTH_METHOD_ACCESS_GRANT = "Access grant"


@dataclass(frozen=True)
class AccessRequest:
    """Inputs for issuing an access credential, in exactly one mode."""

    auth_method: str
    temp_directory: str
    shared_access: Optional[str] = None
    satellite: Optional[str] = None
    api_key: Optional[str] = None
    secret: Optional[str] = None

    @property
    def uses_grant(self) -> bool:
        return self.auth_method == AUTH_METHOD_ACCESS_GRANT


@dataclass(frozen=True)
class BucketHandle:
    name: str
    created: Optional[datetime] = None


@dataclass(frozen=True)
class ListObjectsOptions:
    prefix: str = ""
    recursive: bool = False
    system: bool = False
    custom: bool = False


@dataclass(frozen=True)
class UploadOptions:
    expires: Optional[datetime] = None


@dataclass(frozen=True)
class DownloadOptions:
    offset: int = 0
    length: int = -1


@dataclass(frozen=True)
class ObjectInfo:
    """An object as reported by the listing call."""

    key: str
    is_prefix: bool = False
    content_length: int = 0
    created: Optional[datetime] = None
    custom: Dict[str, str] = field(default_factory=dict)


class Access(Protocol):
    """Opaque credential issued by the client."""

    def close(self) -> None:
        ...


class UploadOperation(Protocol):
    key: str
    bytes_sent: int
    completed: bool
    failed: bool
    error_message: str

    async def start(self) -> None:
        """Run the upload to completion. Failure is reported via ``failed``."""
        ...

    async def abort(self) -> None:
        ...


class DownloadOperation(Protocol):
    key: str
    bytes_received: int
    downloaded_bytes: Union[bytes, bytearray]
    completed: bool
    failed: bool
    error_message: str

    def add_progress_listener(self, listener: Callable[["DownloadOperation"], None]) -> None:
        """Register a callback invoked after each received chunk."""
        ...

    async def start(self) -> None:
        """Run the download to completion. Failure is reported via ``failed``."""
        ...


class BucketService(Protocol):
    async def ensure_bucket(self, name: str) -> BucketHandle:
        ...


class ObjectService(Protocol):
    async def list_objects(self, bucket: BucketHandle, options: ListObjectsOptions) -> List[ObjectInfo]:
        ...

    async def upload_object(
        self,
        bucket: BucketHandle,
        key: str,
        options: UploadOptions,
        source: Union[BinaryIO, bytes],
        metadata: Optional[Dict[str, str]] = None,
    ) -> UploadOperation:
        ...

    async def download_object(
        self, bucket: BucketHandle, key: str, options: DownloadOptions
    ) -> DownloadOperation:
        ...

    async def delete_object(self, bucket: BucketHandle, key: str) -> None:
        ...


class StorageClient(Protocol):
    """Entry point of the network client: issues access and services."""

    def open_access(self, request: AccessRequest) -> Access:
        ...

    def bucket_service(self, access: Access) -> BucketService:
        ...

    def object_service(self, access: Access) -> ObjectService:
        ...
