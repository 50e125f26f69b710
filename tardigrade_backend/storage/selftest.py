"""
Connection self-test.

Round-trips a small random payload through the configured bucket:
ensure bucket, upload, download, delete, then compare byte counts.

The test key is fixed, so two self-tests running at the same time against
the same bucket and folder can overwrite or delete each other's file.
"""

import logging
import random

from tardigrade_backend.storage.adapter import ConnectivityError
from tardigrade_backend.storage.client import DownloadOptions, UploadOptions
from tardigrade_backend.storage.transfer import TransferEngine

logger = logging.getLogger(__name__)

TEST_FILE_NAME = "duplicati_test.dat"
TEST_PAYLOAD_SIZE = 256


async def run_self_test(engine: TransferEngine) -> None:
    """
    Verify credentials and connectivity end to end.

    Args:
        engine: Transfer engine bound to the bucket and folder under test

    Raises:
        ConnectivityError: If any step fails or the downloaded size is wrong
    """
    key = engine.namer.namespaced_key(TEST_FILE_NAME)
    payload = random.randbytes(TEST_PAYLOAD_SIZE)

    try:
        bucket = await engine.buckets.resolve()

        upload = await engine.objects.upload_object(bucket, key, UploadOptions(), payload)
        await upload.start()

        download = await engine.objects.download_object(bucket, key, DownloadOptions())
        await download.start()

        await engine.objects.delete_object(bucket, key)
    except Exception as e:
        raise ConnectivityError(str(e)) from e

    if upload.failed:
        raise ConnectivityError(upload.error_message or "Test upload failed")
    if download.failed or download.bytes_received != TEST_PAYLOAD_SIZE:
        raise ConnectivityError(
            download.error_message
            or f"Expected {TEST_PAYLOAD_SIZE} test bytes, received {download.bytes_received}"
        )
    logger.info(f"Connection test succeeded for key '{key}'")
