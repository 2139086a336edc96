import io
import os

import pytest
from fastapi import HTTPException, UploadFile

from uploads import remove_image, save_image


class TrackingFile(io.BytesIO):
    def __init__(self, data):
        super().__init__(data)
        self.bytes_read = 0

    def read(self, size=-1):
        chunk = super().read(size)
        self.bytes_read += len(chunk)
        return chunk


async def test_oversized_upload_stops_reading_past_the_limit(settings):
    body = TrackingFile(b"x" * (5 * 1024 * 1024))

    with pytest.raises(HTTPException) as exc_info:
        await save_image(UploadFile(body, filename="huge.png"), "products", settings)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == f"File too large. Maximum size is {settings.max_file_size} bytes"
    assert body.bytes_read == settings.max_file_size + 1
    assert not os.path.isdir(os.path.join(settings.upload_dir, "products"))


async def test_upload_at_the_limit_is_stored_and_removable(settings):
    content = b"p" * settings.max_file_size

    public_path = await save_image(UploadFile(io.BytesIO(content), filename="exact.png"), "shops", settings)

    assert public_path.startswith("/uploads/shops/")
    stored = os.path.join(settings.upload_dir, public_path[len("/uploads/"):])
    with open(stored, "rb") as fh:
        assert fh.read() == content

    remove_image(public_path, settings)
    assert not os.path.exists(stored)
