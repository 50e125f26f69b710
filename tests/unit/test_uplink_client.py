"""
Unit tests for the libuplink binding's error translation and conversions.

Skipped when the 'uplink' extra is not installed.
"""

from types import SimpleNamespace

import pytest

pytest.importorskip("uplink_python")

from uplink_python.errors import StorjException  # noqa: E402

from tardigrade_backend.storage.adapter import (  # noqa: E402
    AuthorizationError,
    FileMissingError,
    TransferError,
    UnavailableError,
)
from tardigrade_backend.storage.client import UploadOptions  # noqa: E402
from tardigrade_backend.uplink.client import (  # noqa: E402
    ERROR_BANDWIDTH_LIMIT_EXCEEDED,
    ERROR_INTERNAL,
    ERROR_OBJECT_NOT_FOUND,
    ERROR_PERMISSION_DENIED,
    ERROR_TOO_MANY_REQUESTS,
    UplinkAccess,
    UplinkUpload,
    _object_info,
    translate_error,
)


def storj_error(code, details="details"):
    return SimpleNamespace(code=code, details=details)


class TestTranslateError:
    @pytest.mark.parametrize("code, expected", [
        (ERROR_PERMISSION_DENIED, AuthorizationError),
        (ERROR_INTERNAL, UnavailableError),
        (ERROR_TOO_MANY_REQUESTS, UnavailableError),
        (ERROR_BANDWIDTH_LIMIT_EXCEEDED, UnavailableError),
        (ERROR_OBJECT_NOT_FOUND, FileMissingError),
        (0x7F, TransferError),
    ])
    def test_codes(self, code, expected):
        error = translate_error(storj_error(code), "Delete 'a'")
        assert isinstance(error, expected)
        assert str(error) == "Delete 'a' failed: details"


class TestObjectInfo:
    def test_converts_listing_entry(self):
        obj = SimpleNamespace(
            key="backups/a.txt",
            is_prefix=False,
            system=SimpleNamespace(created=1_600_000_000, content_length=12),
            custom=SimpleNamespace(entries=[SimpleNamespace(key="k", value="v")]),
        )

        info = _object_info(obj)

        assert info.key == "backups/a.txt"
        assert info.content_length == 12
        assert info.created.timestamp() == 1_600_000_000
        assert info.custom == {"k": "v"}

    def test_missing_metadata(self):
        info = _object_info(SimpleNamespace(key="dir/", is_prefix=True, system=None, custom=None))

        assert info.is_prefix
        assert info.content_length == 0
        assert info.created is None
        assert info.custom == {}


class WriteRejected(StorjException):
    def __init__(self):
        Exception.__init__(self, "write rejected")
        self.code = 0x7F
        self.details = "write rejected"


class RecordingUpload:
    def __init__(self, fail_on):
        self.fail_on = fail_on
        self.aborted = False

    def write(self, data, length):
        if self.fail_on == "write":
            raise WriteRejected()
        return length

    def commit(self):
        if self.fail_on == "commit":
            raise WriteRejected()

    def abort(self):
        self.aborted = True


def make_upload(pending):
    project = SimpleNamespace(upload_object=lambda bucket, key, options: pending)
    access = UplinkAccess(SimpleNamespace(open_project=lambda: project))
    return UplinkUpload(access, "duplicati", "a.txt", UploadOptions(), b"payload", None, 4)


class TestUplinkUpload:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("fail_on", ["write", "commit"])
    async def test_failure_aborts_open_upload(self, fail_on):
        pending = RecordingUpload(fail_on)
        upload = make_upload(pending)

        await upload.start()

        assert upload.failed
        assert not upload.completed
        assert "write rejected" in upload.error_message
        assert pending.aborted

    @pytest.mark.asyncio
    async def test_success_does_not_abort(self):
        pending = RecordingUpload(fail_on=None)
        upload = make_upload(pending)

        await upload.start()

        assert upload.completed
        assert upload.bytes_sent == len(b"payload")
        assert not pending.aborted
