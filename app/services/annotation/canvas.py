"""
Annotation Canvas - Streamlit component for drawing event regions on screenshots

The browser side renders the screenshot and its regions and reports raw
pointer events back; all gesture logic runs in AnnotationEngine.
"""
import base64
import os
from functools import lru_cache
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image

from app import config
from .engine import PointerEvent
from .event_types import region_label, resolve
from .models import ImageSize, Region

POINTER_KINDS = ("down", "move", "up", "cancel")


@lru_cache(maxsize=None)
def _component():
    """Declare the custom component on first use"""
    import streamlit.components.v1 as components

    if not config.ANNOTATION_CANVAS_RELEASE_MODE:
        return components.declare_component(
            "annotation_canvas",
            url=config.ANNOTATION_CANVAS_DEV_URL,  # Vite dev server
        )
    parent_dir = os.path.dirname(os.path.abspath(__file__))
    build_dir = os.path.join(parent_dir, "../../../frontend/annotation_canvas/build")
    return components.declare_component("annotation_canvas", path=build_dir)


def image_to_base64(image: Image.Image) -> str:
    """
    Convert PIL Image to base64 string

    Args:
        image: PIL Image object

    Returns:
        Base64-encoded data URL string
    """
    buffered = BytesIO()
    image.save(buffered, format="PNG")
    img_str = base64.b64encode(buffered.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"


def region_to_dict(region: Region) -> Dict[str, Any]:
    """Convert Region to dict format for JS component"""
    return {
        "id": region.id,
        "coordinates": region.coordinates.to_dict(),
        "eventType": region.event_type.value,
        "color": resolve(region.event_type).color,
        "label": region_label(region),
    }


def annotation_canvas(
    image: Image.Image,
    regions: List[Region],
    selected_region_id: Optional[str] = None,
    drawing_enabled: bool = False,
    drag_mode: bool = False,
    read_only: bool = False,
    display_width: int = config.DEFAULT_DISPLAY_WIDTH,
    key: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Display the interactive canvas for one screenshot

    Args:
        image: Screenshot at its natural size
        regions: Regions to draw (coordinates in percent)
        selected_region_id: Region to highlight
        drawing_enabled: Show the crosshair cursor for drawing
        drag_mode: Show move/resize cursors over regions
        read_only: Disable all pointer reporting
        display_width: Maximum rendered width in pixels
        key: Streamlit component key

    Returns:
        Dict with the batched pointer events since the last rerun:
        - events: List of {kind, x, y, inside} in on-screen pixels
        - displayWidth / displayHeight: Rendered image size
    """
    regions_data = [region_to_dict(r) for r in regions]
    return _component()(
        imageUrl=image_to_base64(image),
        naturalWidth=image.width,
        naturalHeight=image.height,
        regions=regions_data,
        selectedRegionId=selected_region_id,
        drawingEnabled=drawing_enabled,
        dragMode=drag_mode,
        readOnly=read_only,
        displayWidth=display_width,
        key=key,
        default=None,
    )


def parse_canvas_result(result: Optional[Dict[str, Any]]) -> Tuple[List[PointerEvent], Optional[ImageSize]]:
    """
    Parse the result from annotation_canvas component

    Args:
        result: Raw result dict from component

    Returns:
        Tuple of (pointer events, displayed image size or None)
    """
    if not result:
        return [], None

    events = []
    for raw in result.get("events") or []:
        kind = raw.get("kind")
        if kind not in POINTER_KINDS:
            continue
        inside = raw.get("inside")
        events.append(PointerEvent(
            kind=kind,
            x=float(raw.get("x", 0.0)),
            y=float(raw.get("y", 0.0)),
            inside=None if inside is None else bool(inside),
        ))

    display_size = None
    width = result.get("displayWidth")
    height = result.get("displayHeight")
    if width and height and width > 0 and height > 0:
        display_size = ImageSize(width=float(width), height=float(height))

    return events, display_size
