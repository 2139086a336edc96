import logging
import os
import uuid
from typing import Optional

from fastapi import HTTPException, UploadFile

from config import Settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
PUBLIC_PREFIX = "/uploads"
CHUNK_SIZE = 64 * 1024


def _extension(filename: str) -> str:
    _, ext = os.path.splitext(filename)
    return ext.lower().lstrip(".")


async def read_limited(upload: UploadFile, max_size: int) -> bytes:
    """Reads the upload in chunks, giving up as soon as it exceeds `max_size` bytes."""
    chunks = []
    received = 0
    while True:
        chunk = await upload.read(min(CHUNK_SIZE, max_size + 1 - received))
        if not chunk:
            break
        received += len(chunk)
        if received > max_size:
            raise HTTPException(
                status_code=400,
                detail=f"File too large. Maximum size is {max_size} bytes",
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def save_image(upload: UploadFile, subdir: str, settings: Settings) -> str:
    """
    Validates and stores an uploaded image under UPLOAD_DIR/<subdir>.
    Returns the public path the file is served from.
    """
    filename = os.path.basename(upload.filename or "")
    if not filename or _extension(filename) not in ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only image files are allowed!")

    content = await read_limited(upload, settings.max_file_size)

    target_dir = os.path.join(settings.upload_dir, subdir)
    os.makedirs(target_dir, exist_ok=True)

    unique_name = f"{uuid.uuid4()}_{filename}"
    with open(os.path.join(target_dir, unique_name), "wb") as fh:
        fh.write(content)

    logger.info(f"Stored upload {unique_name} ({len(content)} bytes) in {target_dir}")
    return f"{PUBLIC_PREFIX}/{subdir}/{unique_name}"


def remove_image(public_path: Optional[str], settings: Settings):
    """Deletes a previously stored upload given its public path. Missing files are ignored."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX + "/"):
        return
    relative = public_path[len(PUBLIC_PREFIX) + 1:]
    file_path = os.path.join(settings.upload_dir, relative)
    if os.path.isfile(file_path):
        os.remove(file_path)
        logger.info(f"Removed old upload {file_path}")
