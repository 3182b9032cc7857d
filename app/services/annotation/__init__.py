"""
Annotation Service

Data models, interaction engine, persistence and UI components for marking
analytics events on screenshots.

Usage:
    from app.services.annotation import (
        LocalBlobStorage, DocumentStore, ScreenshotUploader, AnnotationEngine,
        ImageSize, EventType, TrackEventDetails,
    )

    # Storage
    blob = LocalBlobStorage()
    store = DocumentStore(blob)
    module = store.create_module("Checkout Flow")

    # Upload a screenshot into the module
    uploader = ScreenshotUploader(store)
    screenshot = uploader.upload(module.key, png_bytes, "image/png", "cart page.png")

    # Draw a region: pointer events are on-screen pixels
    engine = AnnotationEngine(
        natural_size=ImageSize(1600, 1200),
        display_size=ImageSize(800, 600),
        screenshot_id=screenshot.id,
        drawing_enabled=True,
    )
    engine.pointer_down(100, 100)
    engine.pointer_move(300, 250)
    [done] = engine.pointer_up(300, 250)

    # Pick an event type and persist
    region = done.pending.commit(
        EventType.TRACK_EVENT,
        TrackEventDetails(category="Cart", action="Click", name="Checkout"),
    )
    store.upsert_region(screenshot.id, region)

    # Use annotation canvas (in Streamlit app)
    from app.services.annotation import annotation_canvas, parse_canvas_result
    events, display_size = parse_canvas_result(annotation_canvas(pil_image, regions))
"""
from .errors import (
    AnnotationError,
    BlobNotFound,
    DegenerateRegion,
    DuplicateModule,
    DuplicateRegionId,
    DuplicateScreenshot,
    InvalidImageSize,
    ModuleNotFound,
    OrderMismatch,
    OutOfBounds,
    PersistenceError,
    ScreenshotNotFound,
    UnknownEventType,
    UploadRejected,
)
from .models import (
    Document,
    EventType,
    ImageSize,
    Module,
    OutlinkDetails,
    PageViewDetails,
    PendingRegion,
    Rectangle,
    Region,
    Role,
    Screenshot,
    ScreenshotStatus,
    TrackEventDetails,
)
from .coordinates import clamp_to_bounds, clamp_translation, percent_to_pixels, pixels_to_percent
from .engine import (
    AnnotationEngine,
    DrawComplete,
    InteractionState,
    PointerEvent,
    RegionDeleted,
    RegionSelected,
    RegionUpdated,
)
from .event_types import EventTypeInfo, all_event_types, count_by_type, filter_regions, resolve
from .blob import BlobStorage, LocalBlobStorage
from .store import DocumentStore
from .upload import ScreenshotUploader
from .render import render_overlay

# Lazy imports for Streamlit components (avoid loading Streamlit in non-UI contexts)
_canvas_module = None


def __getattr__(name):
    """Lazy load Streamlit canvas components."""
    global _canvas_module
    if name in ("annotation_canvas", "parse_canvas_result"):
        if _canvas_module is None:
            from . import canvas as _canvas_module
        return getattr(_canvas_module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "AnnotationError",
    "BlobNotFound",
    "DegenerateRegion",
    "DuplicateModule",
    "DuplicateRegionId",
    "DuplicateScreenshot",
    "InvalidImageSize",
    "ModuleNotFound",
    "OrderMismatch",
    "OutOfBounds",
    "PersistenceError",
    "ScreenshotNotFound",
    "UnknownEventType",
    "UploadRejected",
    "Document",
    "EventType",
    "ImageSize",
    "Module",
    "OutlinkDetails",
    "PageViewDetails",
    "PendingRegion",
    "Rectangle",
    "Region",
    "Role",
    "Screenshot",
    "ScreenshotStatus",
    "TrackEventDetails",
    "clamp_to_bounds",
    "clamp_translation",
    "percent_to_pixels",
    "pixels_to_percent",
    "AnnotationEngine",
    "DrawComplete",
    "InteractionState",
    "PointerEvent",
    "RegionDeleted",
    "RegionSelected",
    "RegionUpdated",
    "EventTypeInfo",
    "all_event_types",
    "count_by_type",
    "filter_regions",
    "resolve",
    "BlobStorage",
    "LocalBlobStorage",
    "DocumentStore",
    "ScreenshotUploader",
    "render_overlay",
    "annotation_canvas",
    "parse_canvas_result",
]
