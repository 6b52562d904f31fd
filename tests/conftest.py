from __future__ import annotations

import os
import shutil
import struct
import tempfile
import zlib
from pathlib import Path

import mongomock
import pytest
from pymongo.errors import PyMongoError

# The app mounts UPLOAD_DIR for static serving at import time, so point it
# at a scratch directory before main is imported.
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="fives-uploads-")

from fastapi.testclient import TestClient  # noqa: E402

from config import UPLOAD_DIR  # noqa: E402
from database import get_db  # noqa: E402
from main import app, get_upload_store  # noqa: E402
from uploads import UploadStore  # noqa: E402

JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
GIF_HEADER = b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00,"


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)


PNG_HEADER = b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0))


class FailingCollection:
    """Every collection operation fails as if the server went away."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise PyMongoError("store unavailable")

        return fail


class FailingDatabase:
    def __getitem__(self, name):
        return FailingCollection()


@pytest.fixture
def db():
    return mongomock.MongoClient()["fives_test"]


@pytest.fixture
def upload_dir():
    path = Path(UPLOAD_DIR)
    shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True)
    return path


def _client(database, upload_dir):
    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_upload_store] = lambda: UploadStore(str(upload_dir))
    return TestClient(app)


@pytest.fixture
def client(db, upload_dir):
    with _client(db, upload_dir) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def failing_client(upload_dir):
    with _client(FailingDatabase(), upload_dir) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def activity_form():
    return {
        "date": "2024-03-05",
        "time": "10:30",
        "division": "Assembly",
        "zone": "Zone A",
        "userName": "asha",
        "numOfActivities": "2",
    }


@pytest.fixture
def make_images():
    headers = {"image/jpeg": JPEG_HEADER, "image/png": PNG_HEADER, "image/gif": GIF_HEADER}

    def _make(count: int, ext: str = "jpg", content_type: str = "image/jpeg", name: str | None = None,
              header: bytes | None = None):
        body = header or headers.get(content_type, JPEG_HEADER)
        return [
            ("images", (name or f"photo{i}.{ext}", body + bytes([i]) * 16, content_type))
            for i in range(count)
        ]

    return _make


@pytest.fixture
def image_headers():
    return {"jpeg": JPEG_HEADER, "png": PNG_HEADER, "gif": GIF_HEADER}
