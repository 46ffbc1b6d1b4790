import logging
import os
import uuid
from typing import List

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from tibeb.shared.utils import ValidationException

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg"}


def _extension(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    return ext if ext in ALLOWED_EXTENSIONS else ""


def _write(path: str, content: bytes):
    with open(path, "wb") as out:
        out.write(content)


async def save_images(
    files: List[UploadFile],
    upload_dir: str,
    url_prefix: str,
    max_files: int,
    max_bytes: int
) -> List[str]:
    """Write uploaded images under random names and return their public URLs in upload order.

    Every file is checked before any is written.
    """
    if not files:
        raise ValidationException("No images uploaded")
    if len(files) > max_files:
        raise ValidationException(f"At most {max_files} images per upload")

    contents = []
    for f in files:
        label = f.filename or "file"
        if not (f.content_type or "").startswith("image/"):
            raise ValidationException(f"{label} is not an image")
        content = await f.read(max_bytes + 1)
        if len(content) > max_bytes:
            raise ValidationException(f"{label} is larger than {max_bytes} bytes")
        contents.append((f, content))

    await run_in_threadpool(os.makedirs, upload_dir, exist_ok=True)
    urls = []
    for f, content in contents:
        name = f"{uuid.uuid4().hex}{_extension(f.filename)}"
        await run_in_threadpool(_write, os.path.join(upload_dir, name), content)
        urls.append(f"{url_prefix.rstrip('/')}/{name}")

    logger.info(f"Stored {len(urls)} uploaded image(s)")
    return urls
