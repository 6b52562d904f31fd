import logging
import os
import time
from typing import Dict, List, Tuple

import magic
from fastapi import UploadFile

from config import MAX_IMAGE_BYTES, UPLOAD_URL_PREFIX

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png"}


class UploadRejected(Exception):
    """Raised when an uploaded file fails the type or size filter."""


class UploadStore:
    """Local directory sink for uploaded images.

    Files are checked with ``accept`` before anything touches the disk, and
    written with ``save`` under a name built from the form field and a
    nanosecond timestamp. Saved files are referenced by ``url_for(name)``,
    the path they are served under, not by their location on disk.
    """

    def __init__(self, directory: str, url_prefix: str = UPLOAD_URL_PREFIX, max_bytes: int = MAX_IMAGE_BYTES):
        self.directory = directory
        self.url_prefix = url_prefix.strip("/")
        self.max_bytes = max_bytes

    async def accept(self, upload: UploadFile) -> bytes:
        filename = upload.filename or "file"
        ext = os.path.splitext(filename)[1].lower()
        if ext not in ALLOWED_EXTENSIONS or upload.content_type not in ALLOWED_MIME_TYPES:
            raise UploadRejected(f"{filename}: only JPEG and PNG images are allowed")
        contents = await upload.read(self.max_bytes + 1)
        if len(contents) > self.max_bytes:
            raise UploadRejected(f"{filename}: file exceeds the {self.max_bytes} byte limit")
        # the declared type is only a hint, check the bytes themselves
        if magic.from_buffer(contents[:2048], mime=True) not in ALLOWED_MIME_TYPES:
            raise UploadRejected(f"{filename}: only JPEG and PNG images are allowed")
        return contents

    def path_for(self, name: str) -> str:
        return os.path.join(self.directory, name)

    def url_for(self, name: str) -> str:
        return f"{self.url_prefix}/{name}" if self.url_prefix else name

    def save(self, field: str, filename: str, contents: bytes) -> str:
        os.makedirs(self.directory, exist_ok=True)
        ext = os.path.splitext(filename)[1].lower()
        while True:
            name = f"{field}-{time.time_ns()}{ext}"
            try:
                with open(self.path_for(name), "xb") as f:
                    f.write(contents)
            except FileExistsError:
                continue
            return name

    def save_all(self, field: str, staged: List[Tuple[str, bytes]]) -> List[str]:
        names: List[str] = []
        try:
            for filename, contents in staged:
                names.append(self.save(field, filename, contents))
        except OSError:
            self.discard(names)
            raise
        return names

    def discard(self, names: List[str]) -> None:
        for name in names:
            try:
                os.remove(self.path_for(name))
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Could not remove uploaded file %s", name, exc_info=True)


def pair_images(paths: List[str]) -> List[Dict[str, str]]:
    # arrival order: before1, after1, before2, after2, ...
    return [{"before": paths[i], "after": paths[i + 1]} for i in range(0, len(paths) - 1, 2)]
