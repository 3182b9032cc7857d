"""
Coordinate conversion between pixel and percentage rectangles

Regions are stored as percentages of the image's natural size so they stay
in place however the screenshot is displayed. Pixel rectangles only exist
while a gesture is in progress.
"""
from .errors import InvalidImageSize
from .models import ImageSize, Rectangle


def check_image_size(image_size: ImageSize) -> None:
    if image_size.width <= 0 or image_size.height <= 0:
        raise InvalidImageSize(image_size.width, image_size.height)


def pixels_to_percent(pixel_rect: Rectangle, image_size: ImageSize) -> Rectangle:
    """
    Convert a pixel rectangle to percentages of the image size

    No clamping is applied; callers clamp at commit time.

    Args:
        pixel_rect: Rectangle in image pixels
        image_size: Natural size of the image

    Returns:
        Rectangle in percent (0-100) of the image dimensions

    Raises:
        InvalidImageSize: If either image dimension is not positive
    """
    check_image_size(image_size)
    return Rectangle(
        start_x=pixel_rect.start_x / image_size.width * 100,
        start_y=pixel_rect.start_y / image_size.height * 100,
        width=pixel_rect.width / image_size.width * 100,
        height=pixel_rect.height / image_size.height * 100,
    )


def percent_to_pixels(percent_rect: Rectangle, image_size: ImageSize) -> Rectangle:
    """
    Convert a percentage rectangle back to image pixels

    Args:
        percent_rect: Rectangle in percent of the image dimensions
        image_size: Natural size of the image

    Returns:
        Rectangle in image pixels

    Raises:
        InvalidImageSize: If either image dimension is not positive
    """
    check_image_size(image_size)
    return Rectangle(
        start_x=percent_rect.start_x / 100 * image_size.width,
        start_y=percent_rect.start_y / 100 * image_size.height,
        width=percent_rect.width / 100 * image_size.width,
        height=percent_rect.height / 100 * image_size.height,
    )


def scale_rectangle(rect: Rectangle, from_size: ImageSize, to_size: ImageSize) -> Rectangle:
    """Rescale a pixel rectangle between two renderings of the same image"""
    check_image_size(from_size)
    check_image_size(to_size)
    sx = to_size.width / from_size.width
    sy = to_size.height / from_size.height
    return Rectangle(
        start_x=rect.start_x * sx,
        start_y=rect.start_y * sy,
        width=rect.width * sx,
        height=rect.height * sy,
    )


def clamp_translation(rect: Rectangle, limit: float = 100) -> Rectangle:
    """
    Shift a rectangle back inside [0, limit] without changing its size

    Used while dragging: a region pushed past the right edge ends with
    start_x + width == limit. Extents larger than the limit are capped.
    """
    width = min(max(rect.width, 0), limit)
    height = min(max(rect.height, 0), limit)
    start_x = min(max(rect.start_x, 0), limit - width)
    start_y = min(max(rect.start_y, 0), limit - height)
    return Rectangle(start_x=start_x, start_y=start_y, width=width, height=height)


def clamp_to_bounds(rect: Rectangle, limit: float = 100) -> Rectangle:
    """Trim a rectangle to the part that lies inside [0, limit]"""
    left = min(max(rect.start_x, 0), limit)
    top = min(max(rect.start_y, 0), limit)
    right = min(max(rect.right, 0), limit)
    bottom = min(max(rect.bottom, 0), limit)
    return Rectangle(start_x=left, start_y=top, width=max(right - left, 0), height=max(bottom - top, 0))
