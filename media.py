"""
Media intake for post attachments.

Uploaded files are checked against a MIME allow-list and a size cap, then
written under <root>/posts with a collision-resistant name. The returned
reference (/uploads/posts/<name>) is what gets stored on the post and is
also the public path the app serves the file from.
"""

import logging
import secrets
import time
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from errors import MediaTooLarge, UnsupportedMediaType

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"
SUBDIR = "posts"
CHUNK_SIZE = 1024 * 1024

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
}
ALLOWED_VIDEO_TYPES = {
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-ms-wmv",
    "video/3gpp",
    "video/x-matroska",
    "video/webm",
    # some video containers arrive without a specific type
    "application/octet-stream",
}


def media_type_for(mime_type: str) -> Optional[str]:
    if mime_type in ALLOWED_IMAGE_TYPES or mime_type.startswith("image/"):
        return "image"
    if mime_type in ALLOWED_VIDEO_TYPES or mime_type.startswith("video/"):
        return "video"
    return None


class MediaStore:
    def __init__(self, root: Path, max_bytes: int = 50 * 1024 * 1024):
        self.root = Path(root)
        self.max_bytes = max_bytes

    @property
    def directory(self) -> Path:
        return self.root / SUBDIR

    def validate(self, mime_type: Optional[str], size: Optional[int] = None):
        if mime_type not in ALLOWED_IMAGE_TYPES and mime_type not in ALLOWED_VIDEO_TYPES:
            logger.info("File rejected. MIME type: %s", mime_type)
            raise UnsupportedMediaType(str(mime_type))
        if size is not None and size > self.max_bytes:
            raise MediaTooLarge(self.max_bytes)

    def accept(self, upload: UploadFile) -> str:
        """Validate and persist an upload, returning its stored reference."""
        self.validate(upload.content_type, upload.size)

        self.directory.mkdir(parents=True, exist_ok=True)
        suffix = Path(upload.filename or "").suffix
        name = f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{suffix}"
        target = self.directory / name

        written = 0
        upload.file.seek(0)
        with target.open("wb") as out:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    out.close()
                    target.unlink(missing_ok=True)
                    raise MediaTooLarge(self.max_bytes)
                out.write(chunk)

        logger.info("Stored upload %s (%s, %d bytes)", name, upload.content_type, written)
        return f"{URL_PREFIX}/{SUBDIR}/{name}"

    def path_for(self, reference: str) -> Optional[Path]:
        """Map a stored reference back to its file, or None if it points outside the root."""
        if not reference.startswith(URL_PREFIX + "/"):
            return None
        root = self.root.resolve()
        path = (root / reference[len(URL_PREFIX) + 1:]).resolve()
        if root not in path.parents:
            return None
        return path

    def remove(self, reference: str) -> bool:
        path = self.path_for(reference)
        if path is None or not path.is_file():
            return False
        path.unlink()
        logger.info("Removed media %s", reference)
        return True

