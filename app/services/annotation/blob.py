"""
Blob Storage

Opaque key -> bytes storage used for the root JSON document and for
screenshot images. The DocumentStore only depends on the BlobStorage
interface; LocalBlobStorage keeps objects as files under a directory.

Directory structure:
    <base_path>/
        data/modules.json                 - root document
        screenshots/<module>/<file>.png   - uploaded images
        .meta/<key>.json                  - content type of each object
"""
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional

from app import config
from .errors import BlobNotFound

logger = logging.getLogger(__name__)

META_DIR = ".meta"


class BlobStorage(ABC):
    """Interface of the blob store backing documents and images"""

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Store bytes under a key, replacing any existing object in one write"""

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        """Return the bytes stored under a key; raise BlobNotFound if absent"""

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete the object under a key; deleting a missing key is a no-op"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a key holds an object"""

    @abstractmethod
    def content_type(self, key: str) -> Optional[str]:
        """Content type given when the object was stored; None if unknown"""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Public reference stored in screenshot records"""

    @abstractmethod
    def key_for_url(self, url: str) -> Optional[str]:
        """Reverse of url_for; None if the URL does not point into this store"""


class LocalBlobStorage(BlobStorage):
    """
    Blob storage on the local filesystem

    Writes go to a temporary file in the target directory and are moved into
    place with os.replace, so readers never see a half-written object.
    """

    def __init__(self, base_path: Path = None, base_url: str = None):
        """
        Initialize storage

        Args:
            base_path: Directory holding the objects (default: config.BLOB_STORAGE_DIR)
            base_url: Prefix used to build object URLs (default: config.ASSET_BASE_URL)
        """
        if base_path is None:
            base_path = config.BLOB_STORAGE_DIR
        if base_url is None:
            base_url = config.ASSET_BASE_URL
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        """Resolve a key to a file path, rejecting keys that escape base_path"""
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts or parts[0] == META_DIR:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.base_path.joinpath(*parts)

    def _meta_path(self, key: str) -> Path:
        return self.base_path / META_DIR / f"{key}.json"

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        self._atomic_write(path, data)
        self._atomic_write(
            self._meta_path(key),
            json.dumps({"contentType": content_type, "size": len(data)}).encode("utf-8"),
        )
        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)

    def get_object(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise BlobNotFound(key) from None

    def delete_object(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._meta_path(key).unlink(missing_ok=True)
        logger.debug("Deleted %s", key)

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def content_type(self, key: str) -> Optional[str]:
        meta_path = self._meta_path(key)
        if not meta_path.exists():
            return None
        with open(meta_path, "r", encoding="utf-8") as f:
            return json.load(f).get("contentType")

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_for_url(self, url: str) -> Optional[str]:
        prefix = f"{self.base_url}/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):] or None
