"""
Document Store

Read-modify-write persistence for the module -> screenshot -> event graph,
kept as one JSON document in blob storage.

Every mutating call fetches the whole document, changes it in memory and
writes the whole document back in a single put. There is no locking and no
version check: two writers racing on the same document can lose an update,
because the second writer's read may be stale by the time it writes. This is
accepted for single-admin use; callers must sequence their own calls.
"""
import logging
import re
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from app import config
from .blob import BlobStorage
from .errors import (
    BlobNotFound,
    DuplicateModule,
    DuplicateRegionId,
    DuplicateScreenshot,
    ModuleNotFound,
    OrderMismatch,
    PersistenceError,
    ScreenshotNotFound,
)
from .models import (
    Document,
    EventType,
    Module,
    Region,
    Screenshot,
    ScreenshotStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_CONTENT_TYPE = "application/json"


def module_key_for(name: str) -> str:
    """Slug used as a module's key: lowercase, non-alphanumeric runs become '_'"""
    key = re.sub(r"[^a-z0-9]+", "_", name.strip().lower())
    if not key.strip("_"):
        raise ValueError(f"Module name {name!r} does not produce a usable key")
    return key


class DocumentStore:
    """
    Persistence layer over a single JSON document

    Args:
        blob: Blob storage holding the document and screenshot assets
        document_key: Key of the root document (default: config.DOCUMENT_KEY)
    """

    def __init__(self, blob: BlobStorage, document_key: str = None):
        self.blob = blob
        self.document_key = document_key or config.DOCUMENT_KEY

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    def get_document(self) -> Document:
        """
        Fetch and parse the root document

        Returns an empty document when nothing has been stored yet.

        Raises:
            PersistenceError: If the blob cannot be read or parsed
        """
        try:
            raw = self.blob.get_object(self.document_key)
        except BlobNotFound:
            logger.info("No document at %s yet, starting empty", self.document_key)
            return Document()
        except Exception as e:
            raise PersistenceError(f"Failed to read {self.document_key}: {e}") from e

        try:
            return Document.from_json(raw.decode("utf-8"))
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"Failed to parse {self.document_key}: {e}") from e

    def _write(self, document: Document) -> None:
        """Serialize and store the complete document in one put"""
        try:
            payload = document.to_json(indent=2).encode("utf-8")
            self.blob.put_object(self.document_key, payload, DOCUMENT_CONTENT_TYPE)
        except Exception as e:
            raise PersistenceError(f"Failed to write {self.document_key}: {e}") from e

    def _update(self, mutate: Callable[[Document], T]) -> T:
        """Run one read-modify-write cycle; nothing is written if mutate raises"""
        document = self.get_document()
        result = mutate(document)
        self._write(document)
        return result

    def _delete_asset(self, url: str) -> None:
        """Delete an image no longer referenced by the document"""
        key = self.blob.key_for_url(url)
        if key is None:
            return
        try:
            self.blob.delete_object(key)
        except Exception as e:
            # The reference switch is already durable; the orphan is harmless
            logger.warning("Failed to delete old asset %s: %s", key, e)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _require_module(document: Document, module_key: str) -> Module:
        module = document.get_module(module_key)
        if module is None:
            logger.warning("Module %s not found", module_key)
            raise ModuleNotFound(module_key)
        return module

    @staticmethod
    def _require_screenshot(document: Document, screenshot_id: str) -> Screenshot:
        _, screenshot = document.find_screenshot(screenshot_id)
        if screenshot is None:
            logger.warning("Screenshot %s not found", screenshot_id)
            raise ScreenshotNotFound(screenshot_id)
        return screenshot

    def list_modules(self) -> List[Module]:
        return self.get_document().modules

    def get_module(self, module_key: str) -> Module:
        return self._require_module(self.get_document(), module_key)

    def get_screenshot(self, screenshot_id: str) -> Screenshot:
        return self._require_screenshot(self.get_document(), screenshot_id)

    def list_regions(self, screenshot_id: str) -> List[Region]:
        return self.get_screenshot(screenshot_id).events

    # ------------------------------------------------------------------
    # Regions
    # ------------------------------------------------------------------

    def upsert_region(self, screenshot_id: str, region: Region) -> Region:
        """
        Insert or replace a region on a screenshot

        A region with the same id is replaced in place, keeping its position
        in the events list; otherwise the region is appended.

        Raises:
            ScreenshotNotFound: If no module contains the screenshot
            DuplicateRegionId: If the id already belongs to another screenshot
            PersistenceError: If the document cannot be read or written
        """
        def mutate(document: Document) -> Region:
            screenshot = self._require_screenshot(document, screenshot_id)
            owner = document.find_region_owner(region.id)
            if owner is not None and owner.id != screenshot_id:
                raise DuplicateRegionId(
                    f"Region {region.id} already belongs to screenshot {owner.id}"
                )
            stored = replace(region, screenshot_id=screenshot_id, updated_at=utc_now())
            replaced = screenshot.upsert_region(stored)
            logger.info(
                "%s region %s on screenshot %s",
                "Updated" if replaced else "Added", region.id, screenshot_id,
            )
            return stored

        return self._update(mutate)

    def delete_region(self, screenshot_id: str, region_id: str) -> bool:
        """
        Remove a region from a screenshot

        Deleting an id that is not there is a no-op (concurrent deletes race
        harmlessly) and does not rewrite the document.

        Returns:
            True if the region was found and removed

        Raises:
            ScreenshotNotFound: If no module contains the screenshot
        """
        document = self.get_document()
        screenshot = self._require_screenshot(document, screenshot_id)
        if not screenshot.remove_region(region_id):
            logger.info("Region %s already absent from screenshot %s", region_id, screenshot_id)
            return False
        self._write(document)
        logger.info("Deleted region %s from screenshot %s", region_id, screenshot_id)
        return True

    # ------------------------------------------------------------------
    # Screenshots
    # ------------------------------------------------------------------

    def add_screenshot(self, module_key: str, screenshot: Screenshot) -> Screenshot:
        """Append a screenshot to the end of a module"""
        def mutate(document: Document) -> Screenshot:
            module = self._require_module(document, module_key)
            if document.find_screenshot(screenshot.id)[1] is not None:
                raise DuplicateScreenshot(f"Screenshot id {screenshot.id} already exists")
            screenshot.page_name = module.key
            module.screenshots.append(screenshot)
            logger.info("Added screenshot %s to module %s", screenshot.id, module_key)
            return screenshot

        return self._update(mutate)

    def reorder_screenshots(self, module_key: str, ordered_ids: Sequence[str]) -> List[str]:
        """
        Reorder a module's screenshots

        Args:
            module_key: Key of the module
            ordered_ids: Every screenshot id of the module, in the new order

        Raises:
            ModuleNotFound: If the key does not exist
            OrderMismatch: If ordered_ids is not a permutation of the current ids
        """
        ordered_ids = list(ordered_ids)

        def mutate(document: Document) -> List[str]:
            module = self._require_module(document, module_key)
            current = module.screenshot_ids
            if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(current):
                missing = sorted(set(current) - set(ordered_ids))
                extra = sorted(set(ordered_ids) - set(current))
                raise OrderMismatch(
                    f"Order for module {module_key} does not match its screenshots "
                    f"(missing={missing}, extra={extra}, given={len(ordered_ids)}, expected={len(current)})"
                )
            by_id = {s.id: s for s in module.screenshots}
            module.screenshots = [by_id[sid] for sid in ordered_ids]
            logger.info("Reordered %d screenshots in module %s", len(ordered_ids), module_key)
            return module.screenshot_ids

        return self._update(mutate)

    def replace_screenshot_asset(self, screenshot_id: str, new_asset_key: str) -> Screenshot:
        """
        Point a screenshot at a new image, keeping its events

        The old image is deleted only after the document write succeeded.
        Existing percentage coordinates stay valid only if the new image has
        the same aspect ratio; that is the caller's responsibility.
        """
        old_urls = []

        def mutate(document: Document) -> Screenshot:
            screenshot = self._require_screenshot(document, screenshot_id)
            old_urls.append(screenshot.url)
            screenshot.url = self.blob.url_for(new_asset_key)
            screenshot.touch()
            return screenshot

        screenshot = self._update(mutate)
        logger.info("Replaced asset of screenshot %s with %s", screenshot_id, new_asset_key)
        old_url = old_urls[0]
        if old_url and old_url != screenshot.url:
            self._delete_asset(old_url)
        return screenshot

    def delete_screenshot(self, screenshot_id: str) -> Screenshot:
        """Remove a screenshot record, then delete its image"""
        def mutate(document: Document) -> Screenshot:
            module, screenshot = document.find_screenshot(screenshot_id)
            if screenshot is None:
                raise ScreenshotNotFound(screenshot_id)
            module.screenshots = [s for s in module.screenshots if s.id != screenshot_id]
            return screenshot

        screenshot = self._update(mutate)
        logger.info("Deleted screenshot %s", screenshot_id)
        self._delete_asset(screenshot.url)
        return screenshot

    def _update_screenshot(self, screenshot_id: str, change: Callable[[Screenshot], None]) -> Screenshot:
        def mutate(document: Document) -> Screenshot:
            screenshot = self._require_screenshot(document, screenshot_id)
            change(screenshot)
            screenshot.touch()
            return screenshot

        return self._update(mutate)

    def update_screenshot_status(self, screenshot_id: str, status: ScreenshotStatus) -> Screenshot:
        status = ScreenshotStatus(status)
        return self._update_screenshot(screenshot_id, lambda s: setattr(s, "status", status))

    def rename_screenshot(self, screenshot_id: str, name: str) -> Screenshot:
        return self._update_screenshot(screenshot_id, lambda s: setattr(s, "name", name))

    def set_screenshot_label(self, screenshot_id: str, label_id: Optional[str]) -> Screenshot:
        return self._update_screenshot(screenshot_id, lambda s: setattr(s, "label_id", label_id))

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def create_module(self, name: str) -> Module:
        """Create an empty module whose key is derived from its name"""
        key = module_key_for(name)

        def mutate(document: Document) -> Module:
            if document.get_module(key) is not None:
                raise DuplicateModule(f"Module with key {key!r} already exists")
            numeric_ids = [int(m.id) for m in document.modules if m.id.isdigit()]
            module = Module(id=str(max(numeric_ids, default=0) + 1), key=key, name=name)
            document.modules.append(module)
            logger.info("Created module %s", key)
            return module

        return self._update(mutate)

    def rename_module(self, module_key: str, name: str) -> Module:
        """Rename a module; its key and its screenshots' page names follow"""
        new_key = module_key_for(name)

        def mutate(document: Document) -> Module:
            module = self._require_module(document, module_key)
            if new_key != module_key and document.get_module(new_key) is not None:
                raise DuplicateModule(f"Module with key {new_key!r} already exists")
            module.name = name
            module.key = new_key
            for screenshot in module.screenshots:
                screenshot.page_name = new_key
            return module

        return self._update(mutate)

    def delete_module(self, module_key: str) -> Module:
        """Remove a module and, after the write, its screenshot images"""
        def mutate(document: Document) -> Module:
            module = self._require_module(document, module_key)
            document.modules = [m for m in document.modules if m.key != module_key]
            return module

        module = self._update(mutate)
        logger.info("Deleted module %s with %d screenshots", module_key, len(module.screenshots))
        for screenshot in module.screenshots:
            self._delete_asset(screenshot.url)
        return module

    def module_event_counts(self, module_key: str) -> Dict[str, int]:
        """
        Count a module's events per legend bucket

        Backend events are counted together with track events.
        """
        module = self.get_module(module_key)
        counts = {
            "pageView": 0,
            "trackEventWithPageView": 0,
            "trackEvent": 0,
            "outlink": 0,
        }
        buckets = {
            EventType.PAGE_VIEW: "pageView",
            EventType.TRACK_EVENT_WITH_PAGE_VIEW: "trackEventWithPageView",
            EventType.TRACK_EVENT: "trackEvent",
            EventType.BACKEND_EVENT: "trackEvent",
            EventType.OUTLINK: "outlink",
        }
        for screenshot in module.screenshots:
            for region in screenshot.events:
                counts[buckets[region.event_type]] += 1
        return counts
