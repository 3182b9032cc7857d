"""
Tests for DocumentStore
"""
import json

import pytest

from app.services.annotation import (
    DocumentStore,
    DuplicateModule,
    DuplicateRegionId,
    DuplicateScreenshot,
    EventType,
    LocalBlobStorage,
    ModuleNotFound,
    OrderMismatch,
    PersistenceError,
    Rectangle,
    Region,
    Screenshot,
    ScreenshotNotFound,
    ScreenshotStatus,
    TrackEventDetails,
)
from app.services.annotation.store import module_key_for


class FailingBlobStorage(LocalBlobStorage):
    """Blob storage whose writes of one key can be made to fail"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_key = None
        self.fail_delete = False

    def put_object(self, key, data, content_type):
        if key == self.fail_key:
            raise OSError("disk full")
        super().put_object(key, data, content_type)

    def delete_object(self, key):
        if self.fail_delete:
            raise OSError("permission denied")
        super().delete_object(key)


@pytest.fixture
def failing_blob(tmp_path):
    return FailingBlobStorage(base_path=tmp_path / "blobs", base_url="/assets")


def new_region(region_id="new-region", rect=None):
    return Region(
        id=region_id,
        coordinates=rect or Rectangle(5, 5, 10, 10),
        event_type=EventType.TRACK_EVENT,
        details=TrackEventDetails(category="Nav", action="Open"),
    )


def add_screenshots(store, module_key, count):
    ids = []
    for i in range(count):
        screenshot = store.add_screenshot(module_key, Screenshot(id=f"s{i}", name=f"Screen {i}"))
        ids.append(screenshot.id)
    return ids


class TestGetDocument:
    """Tests for reading the root document"""

    def test_missing_document_is_empty(self, temp_store):
        """Test a fresh store starts with no modules"""
        assert temp_store.get_document().modules == []

    def test_document_key(self, temp_store, temp_blob):
        """Test the document lives under data/modules.json"""
        temp_store.create_module("Checkout")

        data = json.loads(temp_blob.get_object("data/modules.json"))
        assert data["modules"][0]["key"] == "checkout"
        assert temp_blob.content_type("data/modules.json") == "application/json"

    def test_corrupt_document(self, temp_store, temp_blob):
        """Test unparseable JSON raises PersistenceError"""
        temp_blob.put_object("data/modules.json", b"{not json", "application/json")

        with pytest.raises(PersistenceError):
            temp_store.get_document()

    def test_bad_shape(self, temp_store, temp_blob):
        """Test a document with an invalid event type raises PersistenceError"""
        payload = {"modules": [{"key": "m", "name": "M", "screenshots": [
            {"id": "s", "events": [{"id": "e", "eventType": "click",
                                    "coordinates": {"startX": 0, "startY": 0, "width": 1, "height": 1}}]}
        ]}]}
        temp_blob.put_object("data/modules.json", json.dumps(payload).encode(), "application/json")

        with pytest.raises(PersistenceError):
            temp_store.get_document()


class TestUpsertRegion:
    """Tests for upsert_region()"""

    def test_append_new_region(self, populated_store):
        """Test a new id is appended"""
        populated_store.upsert_region("shot-1", new_region())

        ids = [r.id for r in populated_store.list_regions("shot-1")]
        assert ids == ["region-1", "region-2", "region-3", "new-region"]

    def test_replace_in_place(self, populated_store, sample_region):
        """Test an existing id keeps its position"""
        moved = sample_region.with_coordinates(Rectangle(0, 0, 30, 40))

        populated_store.upsert_region("shot-1", moved)

        regions = populated_store.list_regions("shot-1")
        assert [r.id for r in regions] == ["region-1", "region-2", "region-3"]
        assert regions[0].coordinates == Rectangle(0, 0, 30, 40)

    def test_idempotent(self, populated_store):
        """Test upserting the same region twice stores it once"""
        region = new_region()
        populated_store.upsert_region("shot-1", region)
        first = [r.to_dict() for r in populated_store.list_regions("shot-1")]
        populated_store.upsert_region("shot-1", region)
        second = [r.to_dict() for r in populated_store.list_regions("shot-1")]

        assert len(second) == 4
        assert [r["id"] for r in first] == [r["id"] for r in second]
        assert [r["coordinates"] for r in first] == [r["coordinates"] for r in second]

    def test_sets_screenshot_id_and_timestamp(self, populated_store, sample_region):
        """Test the stored region is tied to its screenshot and refreshed"""
        stored = populated_store.upsert_region("shot-1", sample_region)

        assert stored.screenshot_id == "shot-1"
        assert stored.updated_at > sample_region.updated_at

    def test_unknown_screenshot(self, populated_store):
        """Test upserting into a missing screenshot raises"""
        with pytest.raises(ScreenshotNotFound):
            populated_store.upsert_region("missing", new_region())

    def test_region_id_on_other_screenshot(self, populated_store):
        """Test a region id cannot move between screenshots"""
        populated_store.add_screenshot("checkout", Screenshot(id="shot-2", name="Other"))

        with pytest.raises(DuplicateRegionId):
            populated_store.upsert_region("shot-2", new_region("region-1"))


class TestDeleteRegion:
    """Tests for delete_region()"""

    def test_delete(self, populated_store):
        """Test deleting an existing region"""
        assert populated_store.delete_region("shot-1", "region-2") is True

        assert [r.id for r in populated_store.list_regions("shot-1")] == ["region-1", "region-3"]

    def test_delete_missing_is_noop(self, populated_store, temp_blob):
        """Test deleting an absent id does not rewrite the document"""
        before = temp_blob.get_object("data/modules.json")

        assert populated_store.delete_region("shot-1", "missing") is False
        assert temp_blob.get_object("data/modules.json") == before

    def test_unknown_screenshot(self, populated_store):
        """Test deleting from a missing screenshot raises"""
        with pytest.raises(ScreenshotNotFound):
            populated_store.delete_region("missing", "region-1")


class TestReorderScreenshots:
    """Tests for reorder_screenshots()"""

    def test_reorder(self, temp_store):
        """Test the new order is stored exactly"""
        temp_store.create_module("Flow")
        add_screenshots(temp_store, "flow", 3)

        result = temp_store.reorder_screenshots("flow", ["s2", "s0", "s1"])

        assert result == ["s2", "s0", "s1"]
        assert temp_store.get_module("flow").screenshot_ids == ["s2", "s0", "s1"]

    @pytest.mark.parametrize("order", [
        ["s0", "s1"],
        ["s0", "s1", "s2", "s3"],
        ["s0", "s0", "s1"],
        ["s0", "s1", "x"],
    ])
    def test_rejects_non_permutation(self, temp_store, order):
        """Test missing, extra or duplicate ids leave the document unchanged"""
        temp_store.create_module("Flow")
        add_screenshots(temp_store, "flow", 3)

        with pytest.raises(OrderMismatch):
            temp_store.reorder_screenshots("flow", order)

        assert temp_store.get_module("flow").screenshot_ids == ["s0", "s1", "s2"]

    def test_unknown_module(self, temp_store):
        """Test reordering a missing module raises"""
        with pytest.raises(ModuleNotFound):
            temp_store.reorder_screenshots("missing", [])


class TestReplaceScreenshotAsset:
    """Tests for replace_screenshot_asset()"""

    def test_replace_keeps_events(self, populated_store, temp_blob, sample_screenshot):
        """Test swapping the image keeps all three events and removes the old file"""
        temp_blob.put_object("screenshots/checkout/2-cart.png", b"new", "image/png")

        updated = populated_store.replace_screenshot_asset("shot-1", "screenshots/checkout/2-cart.png")

        assert updated.url == "/assets/screenshots/checkout/2-cart.png"
        assert updated.updated_at > sample_screenshot.updated_at
        stored = populated_store.get_screenshot("shot-1")
        assert [r.id for r in stored.events] == ["region-1", "region-2", "region-3"]
        assert stored.events[0].coordinates == Rectangle(10, 20, 30, 40)
        assert not temp_blob.exists("screenshots/checkout/1-cart.png")

    def test_old_asset_kept_when_write_fails(self, failing_blob):
        """Test the old image survives a failed document write"""
        store = DocumentStore(failing_blob)
        store.create_module("Checkout")
        failing_blob.put_object("old.png", b"old", "image/png")
        store.add_screenshot("checkout", Screenshot(id="s", url=failing_blob.url_for("old.png")))

        failing_blob.fail_key = "data/modules.json"
        with pytest.raises(PersistenceError):
            store.replace_screenshot_asset("s", "new.png")

        assert failing_blob.exists("old.png")
        assert store.get_screenshot("s").url == "/assets/old.png"

    def test_gc_failure_is_not_raised(self, failing_blob):
        """Test failing to delete the old image does not fail the call"""
        store = DocumentStore(failing_blob)
        store.create_module("Checkout")
        failing_blob.put_object("old.png", b"old", "image/png")
        store.add_screenshot("checkout", Screenshot(id="s", url=failing_blob.url_for("old.png")))

        failing_blob.fail_delete = True
        updated = store.replace_screenshot_asset("s", "new.png")

        assert updated.url == "/assets/new.png"
        assert failing_blob.exists("old.png")

    def test_unknown_screenshot(self, populated_store):
        """Test replacing the image of a missing screenshot raises"""
        with pytest.raises(ScreenshotNotFound):
            populated_store.replace_screenshot_asset("missing", "a.png")


class TestModules:
    """Tests for module management"""

    def test_module_key_for(self):
        """Test keys are lowercase with non-alphanumeric runs collapsed"""
        assert module_key_for("Checkout Flow") == "checkout_flow"
        assert module_key_for("My  Account / Settings!") == "my_account_settings_"

    def test_module_key_for_empty(self):
        """Test names without letters or digits are rejected"""
        with pytest.raises(ValueError):
            module_key_for(" -- ")

    def test_create_assigns_ids(self, temp_store):
        """Test module ids count up"""
        first = temp_store.create_module("Checkout")
        second = temp_store.create_module("Account")

        assert (first.id, second.id) == ("1", "2")
        assert [m.key for m in temp_store.list_modules()] == ["checkout", "account"]

    def test_create_duplicate(self, temp_store):
        """Test a second module with the same key is rejected"""
        temp_store.create_module("Checkout")

        with pytest.raises(DuplicateModule):
            temp_store.create_module("checkout")

    def test_rename_rederives_key(self, populated_store):
        """Test renaming changes the key and the screenshots' page names"""
        renamed = populated_store.rename_module("checkout", "Cart Flow")

        assert renamed.key == "cart_flow"
        module = populated_store.get_module("cart_flow")
        assert module.name == "Cart Flow"
        assert module.screenshots[0].page_name == "cart_flow"
        with pytest.raises(ModuleNotFound):
            populated_store.get_module("checkout")

    def test_delete_module_removes_assets(self, populated_store, temp_blob):
        """Test deleting a module garbage-collects its images"""
        populated_store.delete_module("checkout")

        assert populated_store.list_modules() == []
        assert not temp_blob.exists("screenshots/checkout/1-cart.png")

    def test_event_counts(self, populated_store):
        """Test counts per legend bucket, backend events counted as track events"""
        backend = Region(
            id="backend-1",
            coordinates=Rectangle(0, 50, 10, 10),
            event_type=EventType.BACKEND_EVENT,
            details=TrackEventDetails(category="Orders", action="Created"),
        )
        populated_store.upsert_region("shot-1", backend)

        assert populated_store.module_event_counts("checkout") == {
            "pageView": 1,
            "trackEventWithPageView": 0,
            "trackEvent": 2,
            "outlink": 1,
        }


class TestScreenshots:
    """Tests for screenshot record management"""

    def test_add_sets_page_name(self, temp_store):
        """Test new screenshots take the module key as page name"""
        temp_store.create_module("Checkout")

        stored = temp_store.add_screenshot("checkout", Screenshot(id="s", name="Cart"))

        assert stored.page_name == "checkout"
        assert temp_store.get_screenshot("s").events == []

    def test_add_to_missing_module(self, temp_store):
        """Test adding to an unknown module raises"""
        with pytest.raises(ModuleNotFound):
            temp_store.add_screenshot("missing", Screenshot())

    def test_add_duplicate_id(self, populated_store):
        """Test reusing a screenshot id raises an annotation error and writes nothing"""
        before = populated_store.blob.get_object(populated_store.document_key)

        with pytest.raises(DuplicateScreenshot):
            populated_store.add_screenshot("checkout", Screenshot(id="shot-1", name="Again"))

        assert populated_store.blob.get_object(populated_store.document_key) == before

    def test_update_status(self, populated_store, sample_screenshot):
        """Test status changes refresh updated_at"""
        updated = populated_store.update_screenshot_status("shot-1", ScreenshotStatus.DONE)

        assert updated.status == ScreenshotStatus.DONE
        assert updated.updated_at > sample_screenshot.updated_at
        assert populated_store.get_screenshot("shot-1").status == ScreenshotStatus.DONE

    def test_rename_and_label(self, populated_store):
        """Test renaming and labelling a screenshot"""
        populated_store.rename_screenshot("shot-1", "Basket")
        populated_store.set_screenshot_label("shot-1", "label-7")

        stored = populated_store.get_screenshot("shot-1")
        assert stored.name == "Basket"
        assert stored.label_id == "label-7"

        populated_store.set_screenshot_label("shot-1", None)
        assert populated_store.get_screenshot("shot-1").label_id is None

    def test_delete_screenshot(self, populated_store, temp_blob):
        """Test deleting a screenshot removes its record and image"""
        populated_store.delete_screenshot("shot-1")

        with pytest.raises(ScreenshotNotFound):
            populated_store.get_screenshot("shot-1")
        assert not temp_blob.exists("screenshots/checkout/1-cart.png")


class TestPersistenceFailures:
    """Tests for blob failures"""

    def test_write_failure_wrapped(self, failing_blob):
        """Test blob errors surface as PersistenceError with the cause chained"""
        store = DocumentStore(failing_blob)
        failing_blob.fail_key = "data/modules.json"

        with pytest.raises(PersistenceError) as exc_info:
            store.create_module("Checkout")

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_failed_mutation_writes_nothing(self, populated_store, temp_blob):
        """Test a rejected mutation leaves the document unchanged"""
        before = temp_blob.get_object("data/modules.json")

        with pytest.raises(ScreenshotNotFound):
            populated_store.rename_screenshot("missing", "x")

        assert temp_blob.get_object("data/modules.json") == before


class TestConcurrentWriters:
    """Tests documenting the lack of write coordination"""

    def test_lost_update(self, populated_store, temp_blob):
        """Test two interleaved read-modify-write cycles lose the first update"""
        other = DocumentStore(temp_blob)

        # Both writers read the same version
        stale = other.get_document()
        populated_store.upsert_region("shot-1", new_region("from-first-writer"))

        # Second writer saves its stale copy with its own change
        stale.find_screenshot("shot-1")[1].upsert_region(new_region("from-second-writer"))
        other._write(stale)

        ids = [r.id for r in populated_store.list_regions("shot-1")]
        assert "from-second-writer" in ids
        assert "from-first-writer" not in ids
