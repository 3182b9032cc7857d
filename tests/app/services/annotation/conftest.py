"""
Shared pytest fixtures for annotation tests
"""
import io
from datetime import datetime, timezone

import pytest
from PIL import Image

from app.services.annotation import (
    DocumentStore,
    EventType,
    ImageSize,
    LocalBlobStorage,
    Module,
    OutlinkDetails,
    PageViewDetails,
    Rectangle,
    Region,
    Screenshot,
    ScreenshotUploader,
    TrackEventDetails,
)

OLD_TIMESTAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_png_bytes(size=(80, 60), color="white", fmt="PNG"):
    """Encode a blank image in memory"""
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def natural_size():
    """Natural size of the test screenshot"""
    return ImageSize(width=800, height=600)


@pytest.fixture
def sample_region():
    """Create a sample track event Region"""
    return Region(
        id="region-1",
        coordinates=Rectangle(start_x=10, start_y=20, width=30, height=40),
        event_type=EventType.TRACK_EVENT,
        details=TrackEventDetails(category="Cart", action="Click", name="Checkout", value="1"),
        dimensions=("dim-1", "dim-2"),
        description="Checkout button",
        updated_at=OLD_TIMESTAMP,
    )


@pytest.fixture
def sample_page_view_region():
    """Create a sample page view Region"""
    return Region(
        id="region-2",
        coordinates=Rectangle(start_x=0, start_y=0, width=100, height=10),
        event_type=EventType.PAGE_VIEW,
        details=PageViewDetails(custom_title="Cart", custom_url="/cart"),
        updated_at=OLD_TIMESTAMP,
    )


@pytest.fixture
def sample_outlink_region():
    """Create a sample outlink Region"""
    return Region(
        id="region-3",
        coordinates=Rectangle(start_x=60, start_y=60, width=20, height=20),
        event_type=EventType.OUTLINK,
        details=OutlinkDetails(category="Footer", name="Help center"),
        updated_at=OLD_TIMESTAMP,
    )


@pytest.fixture
def sample_screenshot(sample_region, sample_page_view_region, sample_outlink_region):
    """Create a Screenshot with three events"""
    return Screenshot(
        id="shot-1",
        name="Cart page",
        url="/assets/screenshots/checkout/1-cart.png",
        page_name="checkout",
        events=[sample_region, sample_page_view_region, sample_outlink_region],
        created_at=OLD_TIMESTAMP,
        updated_at=OLD_TIMESTAMP,
    )


@pytest.fixture
def sample_module(sample_screenshot):
    """Create a Module holding the sample screenshot"""
    return Module(id="1", key="checkout", name="Checkout", screenshots=[sample_screenshot])


@pytest.fixture
def temp_blob(tmp_path):
    """Create a LocalBlobStorage with temporary directory"""
    return LocalBlobStorage(base_path=tmp_path / "blobs", base_url="/assets")


@pytest.fixture
def temp_store(temp_blob):
    """Create an empty DocumentStore over temporary blob storage"""
    return DocumentStore(temp_blob)


@pytest.fixture
def populated_store(temp_store, temp_blob, sample_module):
    """Store with the sample module saved and its image present"""
    temp_blob.put_object("screenshots/checkout/1-cart.png", make_png_bytes(), "image/png")
    document = temp_store.get_document()
    document.modules.append(sample_module)
    temp_store._write(document)
    return temp_store


@pytest.fixture
def uploader(temp_store):
    """Create a ScreenshotUploader over the temporary store"""
    return ScreenshotUploader(temp_store)


@pytest.fixture
def png_bytes():
    """Encoded PNG image"""
    return make_png_bytes()
