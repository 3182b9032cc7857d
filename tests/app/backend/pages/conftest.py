"""
Shared pytest fixtures for backend page tests
"""
import io

import pytest
from unittest.mock import MagicMock, Mock
from PIL import Image

from app.backend.state import AnnotationState
from app.services.annotation import (
    DocumentStore,
    EventType,
    LocalBlobStorage,
    Rectangle,
    Region,
    Role,
    Screenshot,
    ScreenshotUploader,
    TrackEventDetails,
)

# Constants for test data
TEST_IMAGE_WIDTH = 400
TEST_IMAGE_HEIGHT = 200


def _column_count(spec):
    return spec if isinstance(spec, int) else len(spec)


@pytest.fixture
def mock_streamlit():
    """Mock Streamlit module for UI testing."""
    mock_st = MagicMock()

    # Mock sidebar
    mock_st.sidebar = MagicMock()
    mock_st.sidebar.header = MagicMock()
    mock_st.sidebar.selectbox = MagicMock(return_value="")
    mock_st.sidebar.info = MagicMock()
    mock_st.sidebar.error = MagicMock()
    mock_st.sidebar.divider = MagicMock()
    mock_st.sidebar.markdown = MagicMock()
    mock_st.sidebar.caption = MagicMock()
    mock_st.sidebar.button = MagicMock(return_value=False)
    mock_st.sidebar.subheader = MagicMock()
    mock_st.sidebar.radio = MagicMock(
        side_effect=lambda label, options, index=0, **kwargs: list(options)[index]
    )

    # Mock main UI elements
    mock_st.file_uploader = MagicMock(return_value=None)
    mock_st.info = MagicMock()
    mock_st.success = MagicMock()
    mock_st.error = MagicMock()
    mock_st.warning = MagicMock()
    mock_st.button = MagicMock(return_value=False)
    mock_st.divider = MagicMock()
    mock_st.subheader = MagicMock()
    mock_st.markdown = MagicMock()
    mock_st.caption = MagicMock()
    mock_st.image = MagicMock()
    mock_st.text_input = MagicMock(return_value="")
    mock_st.text_area = MagicMock(return_value="")
    mock_st.rerun = MagicMock()

    # Selectboxes return their preselected option
    mock_st.selectbox = MagicMock(
        side_effect=lambda label, options, index=0, **kwargs: list(options)[index]
    )

    # Columns unpack to exactly the requested count
    mock_st.columns = MagicMock(
        side_effect=lambda spec, **kwargs: [MagicMock() for _ in range(_column_count(spec))]
    )

    # Mock expander context manager
    mock_expander = MagicMock()
    mock_expander.__enter__ = Mock(return_value=mock_st)
    mock_expander.__exit__ = Mock(return_value=None)
    mock_st.expander = MagicMock(return_value=mock_expander)
    mock_st.sidebar.expander = MagicMock(return_value=mock_expander)

    # Mock session state
    mock_st.session_state = MagicMock()

    return mock_st


@pytest.fixture
def temp_blob(tmp_path):
    """Create a LocalBlobStorage with temporary directory."""
    return LocalBlobStorage(base_path=tmp_path / "blobs", base_url="/assets")


@pytest.fixture
def temp_store(temp_blob):
    """Create an empty DocumentStore."""
    return DocumentStore(temp_blob)


@pytest.fixture
def temp_uploader(temp_store):
    """Create a ScreenshotUploader over the temporary store."""
    return ScreenshotUploader(temp_store)


@pytest.fixture
def sample_png_bytes():
    """Encoded test screenshot."""
    buf = io.BytesIO()
    Image.new("RGB", (TEST_IMAGE_WIDTH, TEST_IMAGE_HEIGHT), color="white").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def sample_region():
    """Create a track event region."""
    return Region(
        id="region-1",
        coordinates=Rectangle(10, 10, 20, 20),
        event_type=EventType.TRACK_EVENT,
        details=TrackEventDetails(category="Cart", action="Click"),
    )


@pytest.fixture
def store_with_module(temp_store, temp_blob, sample_png_bytes, sample_region):
    """Store with one module holding two screenshots, the first with one event."""
    temp_store.create_module("Checkout")
    for shot_id in ("shot-1", "shot-2"):
        key = f"screenshots/checkout/{shot_id}.png"
        temp_blob.put_object(key, sample_png_bytes, "image/png")
        temp_store.add_screenshot(
            "checkout",
            Screenshot(id=shot_id, name=f"Screen {shot_id}", url=temp_blob.url_for(key)),
        )
    temp_store.upsert_region("shot-1", sample_region)
    return temp_store


@pytest.fixture
def annotation_state_empty():
    """Create empty AnnotationState."""
    return AnnotationState()


@pytest.fixture
def annotation_state_with_module():
    """Create AnnotationState with the checkout module selected."""
    return AnnotationState(current_module="checkout", current_screenshot_idx=0)


@pytest.fixture
def viewer_state_with_module():
    """Create read-only AnnotationState with the checkout module selected."""
    return AnnotationState(current_module="checkout", role=Role.USER)


@pytest.fixture
def mock_uploaded_file(sample_png_bytes):
    """Mock Streamlit uploaded file."""
    mock_file = MagicMock()
    mock_file.type = "image/png"
    mock_file.name = "cart page.png"
    mock_file.read = MagicMock(return_value=sample_png_bytes)
    return mock_file


# Helper functions for verifying UI components by label


def find_button_by_label(mock_st, label):
    """
    Find button call by its label in mock Streamlit button calls.

    Args:
        mock_st: Mock streamlit object
        label: Button label to search for

    Returns:
        Call args if found, or None if not found
    """
    if not mock_st.button.called:
        return None

    for call in mock_st.button.call_args_list:
        if call[0][0] == label:  # First positional arg is the label
            return call
    return None


def is_button_disabled(button_call):
    """Check if button call has disabled=True."""
    if not button_call:
        return False
    return button_call[1].get("disabled", False)


def click_buttons(*labels):
    """side_effect for st.button that reports a click on the given labels."""
    return lambda label, *args, **kwargs: label in labels
