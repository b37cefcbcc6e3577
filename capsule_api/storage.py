"""Storage for uploaded media.

Capsule operations only need one capability from storage: persist raw bytes
and hand back a stable URL plus an identifier that can later be used to
delete the file.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

from fastapi import UploadFile

from .admission import MediaKind
from .errors import BadInput, LimitExceeded, ServerError

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = {
    MediaKind.IMAGE: {"jpg", "jpeg", "png"},
    MediaKind.VIDEO: {"mp4", "mov", "webm"},
    MediaKind.AUDIO: {"mp3", "wav", "m4a"},
}


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lstrip(".").lower()


@dataclass(frozen=True)
class StoredFile:
    url: str
    storage_id: str


def read_uploads(files: Iterable[UploadFile], max_bytes: int) -> List[IncomingFile]:
    """Read uploaded files into memory, enforcing the per-file size cap.

    Reads the spooled file objects directly and must run in a worker thread.
    """
    incoming = []
    for upload in files:
        # One byte past the cap is enough to detect an oversized file.
        data = upload.file.read(max_bytes + 1)
        upload.file.close()
        if len(data) > max_bytes:
            raise LimitExceeded(f"File '{upload.filename}' exceeds the upload limit of {max_bytes} bytes")
        incoming.append(IncomingFile(upload.filename or "", upload.content_type or "", data))
    return incoming


class LocalStorage:
    """Keeps media on the local filesystem under ``root/<kind>/``."""

    def __init__(self, root, base_url: str = "/media"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, storage_id: str) -> Path:
        return self.root / storage_id

    def url_for(self, storage_id: str) -> str:
        return f"{self.base_url}/{storage_id}"

    def save(self, kind: MediaKind, files: Sequence[IncomingFile]) -> List[StoredFile]:
        """Write a batch of files. Nothing is written unless every file has an allowed format."""
        kind = MediaKind(kind)
        allowed = ALLOWED_FORMATS[kind]
        for f in files:
            if f.extension not in allowed:
                raise BadInput(
                    f"Unsupported {kind.value} format '{f.extension or f.filename}', "
                    f"allowed: {', '.join(sorted(allowed))}"
                )

        folder = self.root / kind.value
        stored = []
        try:
            folder.mkdir(parents=True, exist_ok=True)
            for f in files:
                storage_id = f"{kind.value}/{uuid.uuid4().hex}.{f.extension}"
                self._path(storage_id).write_bytes(f.data)
                stored.append(StoredFile(url=self.url_for(storage_id), storage_id=storage_id))
        except OSError as e:
            self.delete_all(s.storage_id for s in stored)
            logger.error(f"Failed to store {kind.value} upload: {e}")
            raise ServerError("Could not store uploaded media") from e

        logger.info(f"Stored {len(stored)} {kind.value} file(s) in {folder}")
        return stored

    def delete(self, storage_id: str) -> None:
        path = self._path(storage_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"Media file {storage_id} already gone")

    def delete_all(self, storage_ids: Iterable[str]) -> None:
        for storage_id in storage_ids:
            self.delete(storage_id)
