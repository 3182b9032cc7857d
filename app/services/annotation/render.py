"""
Static overlay rendering

Draws stored regions onto a screenshot with Pillow. Used as the read-only
preview; the interactive canvas draws its own overlay in the browser.
"""
from typing import Iterable, Optional

from PIL import Image, ImageColor, ImageDraw

from .coordinates import percent_to_pixels
from .event_types import region_label, resolve
from .models import ImageSize, Rectangle, Region

FILL_ALPHA = 40
BORDER_WIDTH = 2
SELECTED_BORDER_WIDTH = 4


def _rgba(color: str, alpha: int = 255) -> tuple:
    r, g, b = ImageColor.getrgb(color)[:3]
    return (r, g, b, alpha)


def _draw_box(draw: ImageDraw.ImageDraw, rect: Rectangle, color: str, width: int, label: Optional[str] = None):
    box = [rect.start_x, rect.start_y, rect.right, rect.bottom]
    draw.rectangle(box, fill=_rgba(color, FILL_ALPHA), outline=_rgba(color), width=width)
    if label:
        text_y = max(rect.start_y - 12, 0)
        draw.text((rect.start_x + 2, text_y), label, fill=_rgba(color))


def render_overlay(
    image: Image.Image,
    regions: Iterable[Region],
    selected_region_id: Optional[str] = None,
    show_labels: bool = True,
) -> Image.Image:
    """
    Draw regions on a copy of an image

    Args:
        image: Screenshot at the size it will be displayed
        regions: Regions to draw, in stacking order
        selected_region_id: Region drawn with a thicker border
        show_labels: Whether to write each region's label above it

    Returns:
        New RGB image with the overlay applied
    """
    base = image.convert("RGBA")
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    size = ImageSize(width=base.width, height=base.height)

    for region in regions:
        rect = percent_to_pixels(region.coordinates, size)
        width = SELECTED_BORDER_WIDTH if region.id == selected_region_id else BORDER_WIDTH
        label = region_label(region) if show_labels else None
        _draw_box(draw, rect, resolve(region.event_type).color, width, label)

    return Image.alpha_composite(base, overlay).convert("RGB")


def fit_to_width(image: Image.Image, max_width: int) -> Image.Image:
    """Downscale an image to at most max_width, keeping its aspect ratio"""
    if image.width <= max_width:
        return image
    height = max(1, round(image.height * max_width / image.width))
    return image.resize((max_width, height), Image.LANCZOS)
