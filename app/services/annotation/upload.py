"""
Screenshot upload pipeline

validate -> store image blob -> append screenshot record. If the document
write fails, the uploaded blob is deleted again so no orphan image is left
behind.
"""
import io
import logging
import re
import time
import uuid
from pathlib import PurePath
from typing import Dict, Optional

from PIL import Image, UnidentifiedImageError

from app import config
from .blob import BlobStorage
from .errors import PersistenceError, UploadRejected
from .models import ImageSize, Screenshot
from .store import DocumentStore

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str) -> str:
    """Lowercase the base name and replace whitespace runs with '-'"""
    name = PurePath(filename.replace("\\", "/")).name
    name = re.sub(r"\s+", "-", name.strip()).lower()
    if not name:
        raise UploadRejected("Uploaded file has no name")
    return name


class ScreenshotUploader:
    """
    Stores uploaded screenshot images and registers them in the document

    Args:
        store: Document store the screenshot records go to
        blob: Blob storage for the image bytes (default: the store's)
        max_bytes: Largest accepted upload
        allowed_types: MIME type -> Pillow format name
    """

    def __init__(
        self,
        store: DocumentStore,
        blob: Optional[BlobStorage] = None,
        max_bytes: int = config.MAX_UPLOAD_BYTES,
        allowed_types: Optional[Dict[str, str]] = None,
    ):
        self.store = store
        self.blob = blob or store.blob
        self.max_bytes = max_bytes
        self.allowed_types = allowed_types or config.ALLOWED_IMAGE_TYPES

    def validate(self, data: bytes, content_type: str) -> ImageSize:
        """
        Check size, MIME type and that the bytes decode as the declared format

        Returns:
            Natural size of the image

        Raises:
            UploadRejected: If any check fails
        """
        if not data:
            raise UploadRejected("Uploaded file is empty")
        if len(data) > self.max_bytes:
            raise UploadRejected(
                f"File is {len(data)} bytes, larger than the {self.max_bytes} byte limit"
            )
        expected_format = self.allowed_types.get((content_type or "").lower())
        if expected_format is None:
            allowed = ", ".join(sorted(self.allowed_types))
            raise UploadRejected(f"Unsupported file type {content_type!r}; allowed: {allowed}")

        try:
            with Image.open(io.BytesIO(data)) as img:
                actual_format = img.format
                size = ImageSize(width=img.width, height=img.height)
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            raise UploadRejected(f"File is not a readable image: {e}") from e

        if actual_format != expected_format:
            raise UploadRejected(
                f"File content is {actual_format}, but was uploaded as {content_type}"
            )
        return size

    def _asset_key(self, module_key: str, filename: str) -> str:
        """New key per upload; never reuses an existing object's key"""
        timestamp = int(time.time() * 1000)
        suffix = uuid.uuid4().hex[:8]
        return f"screenshots/{module_key}/{timestamp}-{suffix}-{sanitize_filename(filename)}"

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.blob.put_object(key, data, content_type)
        except Exception as e:
            raise PersistenceError(f"Failed to store image {key}: {e}") from e

    def _discard(self, key: str) -> None:
        """Compensating delete of a blob whose record was never written"""
        try:
            self.blob.delete_object(key)
            logger.info("Removed orphaned upload %s", key)
        except Exception as e:
            logger.warning("Failed to remove orphaned upload %s: %s", key, e)

    def upload(
        self,
        module_key: str,
        data: bytes,
        content_type: str,
        filename: str,
        name: Optional[str] = None,
    ) -> Screenshot:
        """
        Upload a new screenshot into a module

        Args:
            module_key: Module the screenshot is appended to
            data: Raw image bytes
            content_type: Declared MIME type
            filename: Original file name, used for the storage key
            name: Display name (default: the file name)

        Returns:
            The stored Screenshot, with no events

        Raises:
            UploadRejected: If validation fails
            ModuleNotFound: If the module does not exist
            PersistenceError: If the image or the document cannot be written
        """
        self.validate(data, content_type)
        module = self.store.get_module(module_key)

        key = self._asset_key(module.key, filename)
        self._put(key, data, content_type)

        screenshot = Screenshot(name=name or filename, url=self.blob.url_for(key), page_name=module.key)
        try:
            stored = self.store.add_screenshot(module.key, screenshot)
        except Exception:
            self._discard(key)
            raise
        logger.info("Uploaded %s as screenshot %s in module %s", key, stored.id, module.key)
        return stored

    def replace_image(self, screenshot_id: str, data: bytes, content_type: str, filename: str) -> Screenshot:
        """
        Swap a screenshot's image, keeping its events

        The new image gets a new key; the old one is deleted by the store
        once the reference has been switched.
        """
        self.validate(data, content_type)
        screenshot = self.store.get_screenshot(screenshot_id)

        key = self._asset_key(screenshot.page_name, filename)
        self._put(key, data, content_type)
        try:
            updated = self.store.replace_screenshot_asset(screenshot_id, key)
        except Exception:
            self._discard(key)
            raise
        logger.info("Replaced image of screenshot %s with %s", screenshot_id, key)
        return updated
