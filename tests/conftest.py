# Test configuration

import asyncio
import io
import os
import sys
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tardigrade_backend.config.settings import TardigradeSettings  # noqa: E402
from tardigrade_backend.storage.adapter import AuthorizationError  # noqa: E402
from tardigrade_backend.storage.client import BucketHandle, ObjectInfo  # noqa: E402
from tardigrade_backend.storage.tardigrade import TardigradeBackend  # noqa: E402


@dataclass
class StoredObject:
    data: bytes
    metadata: Dict[str, str] = field(default_factory=dict)
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FakeAccess:
    def __init__(self, request):
        self.request = request
        self.close_calls = 0

    def close(self):
        self.close_calls += 1


class FakeUpload:
    def __init__(self, client, bucket, key, source, metadata):
        self.client = client
        self.bucket = bucket
        self.key = key
        self.source = source
        self.metadata = dict(metadata or {})
        self.bytes_sent = 0
        self.completed = False
        self.failed = False
        self.error_message = ""
        self.aborted = False

    async def start(self):
        if self.client.upload_delay:
            await asyncio.sleep(self.client.upload_delay)
        data = bytes(self.source) if isinstance(self.source, (bytes, bytearray)) else self.source.read()
        if self.client.fail_uploads:
            self.failed = True
            self.error_message = "upload rejected"
            return
        self.client.buckets[self.bucket][self.key] = StoredObject(data, self.metadata)
        self.bytes_sent = len(data)
        self.completed = True

    async def abort(self):
        self.aborted = True


class FakeDownload:
    """Replays an object as a series of cumulative progress notifications."""

    def __init__(self, client, key, data: Optional[bytes]):
        self.client = client
        self.key = key
        self.data = data
        self.downloaded_bytes = bytearray()
        self.bytes_received = 0
        self.completed = False
        self.failed = False
        self.error_message = ""
        self.listeners = []

    def add_progress_listener(self, listener):
        self.listeners.append(listener)

    def _offsets(self) -> List[int]:
        if self.client.progress_offsets is not None:
            return list(self.client.progress_offsets)
        size = len(self.data)
        step = self.client.chunk_size
        return list(range(step, size, step)) + [size]

    async def start(self):
        if self.client.hang_downloads:
            try:
                await asyncio.sleep(3600)
            finally:
                self.client.download_cleanups += 1
        if self.data is None or self.client.fail_downloads:
            self.failed = True
            self.error_message = f"object not found: {self.key}"
            return

        data = self.data
        if self.client.download_truncate is not None:
            data = data[:self.client.download_truncate]

        high = 0
        for cumulative in self._offsets():
            cumulative = min(cumulative, len(data))
            high = max(high, cumulative)
            self.downloaded_bytes = bytearray(data[:high])
            self.bytes_received = cumulative
            for listener in self.listeners:
                listener(self)
            await asyncio.sleep(0)
        self.completed = True


class FakeBucketService:
    def __init__(self, client):
        self.client = client

    async def ensure_bucket(self, name):
        self.client.ensure_calls += 1
        if self.client.blocking_ensure_delay:
            await asyncio.to_thread(self.client.blocking_ensure)
        if self.client.ensure_error is not None:
            raise self.client.ensure_error
        self.client.buckets.setdefault(name, OrderedDict())
        return BucketHandle(name=name)


class FakeObjectService:
    def __init__(self, client):
        self.client = client

    async def list_objects(self, bucket, options):
        self.client.list_options.append(options)
        return [
            ObjectInfo(
                key=key,
                content_length=len(obj.data),
                created=obj.created,
                custom=dict(obj.metadata) if options.custom else {},
            )
            for key, obj in self.client.buckets[bucket.name].items()
            if key.startswith(options.prefix)
        ]

    async def upload_object(self, bucket, key, options, source, metadata=None):
        upload = FakeUpload(self.client, bucket.name, key, source, metadata)
        self.client.uploads.append(upload)
        return upload

    async def download_object(self, bucket, key, options):
        stored = self.client.buckets[bucket.name].get(key)
        return FakeDownload(self.client, key, stored.data if stored else None)

    async def delete_object(self, bucket, key):
        self.client.deleted.append(key)
        if self.client.delete_error is not None:
            raise self.client.delete_error
        objects = self.client.buckets[bucket.name]
        if key not in objects:
            raise LookupError(f"object not found: {key}")
        del objects[key]


class InMemoryStorageClient:
    """StorageClient keeping buckets in memory, with failure switches."""

    def __init__(self):
        self.buckets: Dict[str, "OrderedDict[str, StoredObject]"] = {}
        self.access_requests = []
        self.accesses: List[FakeAccess] = []
        self.list_options = []
        self.uploads: List[FakeUpload] = []
        self.deleted: List[str] = []
        self.ensure_calls = 0

        self.chunk_size = 64 * 1024
        self.progress_offsets: Optional[List[int]] = None
        self.download_truncate: Optional[int] = None
        self.upload_delay = 0.0
        self.fail_uploads = False
        self.fail_downloads = False
        self.hang_downloads = False
        self.download_cleanups = 0
        self.blocking_ensure_delay = 0.0
        self.access_state_in_worker: List[int] = []
        self.reject_access = False
        self.ensure_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None

    def open_access(self, request):
        self.access_requests.append(request)
        if self.reject_access:
            raise AuthorizationError("access rejected")
        access = FakeAccess(request)
        self.accesses.append(access)
        return access

    def blocking_ensure(self):
        time.sleep(self.blocking_ensure_delay)
        self.access_state_in_worker.append(self.accesses[-1].close_calls)

    def bucket_service(self, access):
        return FakeBucketService(self)

    def object_service(self, access):
        return FakeObjectService(self)

    def put_raw(self, bucket: str, key: str, data: bytes, metadata=None):
        self.buckets.setdefault(bucket, OrderedDict())[key] = StoredObject(data, dict(metadata or {}))


@pytest.fixture
def client():
    """In-memory network client."""
    return InMemoryStorageClient()


@pytest.fixture
def test_settings(tmp_path):
    """Settings for API key access to the default bucket."""
    return TardigradeSettings(
        auth_method="API key",
        satellite="us-central-1.tardigrade.io:7777",
        api_key="test-api-key",
        secret="test-secret",
        temp_dir=str(tmp_path / "tmp"),
    )


@pytest.fixture
def backend(test_settings, client):
    """Backend without a folder prefix."""
    instance = TardigradeBackend(test_settings, client)
    yield instance
    instance.close()


@pytest.fixture
def folder_backend(test_settings, client):
    """Backend storing under the 'backups' folder."""
    settings = test_settings.model_copy(update={"folder": "backups"})
    instance = TardigradeBackend(settings, client)
    yield instance
    instance.close()


@pytest.fixture
def payload():
    return bytes(range(256)) * 4


@pytest.fixture
def sink():
    return io.BytesIO()
