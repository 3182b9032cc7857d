"""
Annotation interaction engine

State machine turning pointer gestures on a rendered screenshot into region
intents. Pointer positions are on-screen pixels relative to the top-left of
the displayed image; the displayed size may differ from the image's natural
size. Regions are stored in percentages, so every hit test and live
rectangle is re-derived from the stored coordinates and the current sizes.

The engine never persists anything. It returns intents (draw complete,
select, update, delete) that the owner forwards to the DocumentStore, and
the owner calls apply() once a change has been stored.

States:
    IDLE -> DRAWING -> IDLE      draw a new region (admin, drawing enabled)
    IDLE -> SELECTING -> IDLE    click an existing region (drag mode off)
    IDLE -> DRAGGING -> IDLE     move a region (admin, drag mode on)
    IDLE -> RESIZING -> IDLE     drag a corner/edge handle (admin, drag mode on)
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

from app import config
from .coordinates import (
    check_image_size,
    clamp_to_bounds,
    clamp_translation,
    percent_to_pixels,
    pixels_to_percent,
    scale_rectangle,
)
from .errors import DegenerateRegion
from .models import ImageSize, PendingRegion, Rectangle, Region, Role, new_region_id

logger = logging.getLogger(__name__)


class InteractionState(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    SELECTING = "selecting"
    DRAGGING = "dragging"
    RESIZING = "resizing"


class ResizeHandle(str, Enum):
    TOP_LEFT = "topLeft"
    TOP_RIGHT = "topRight"
    BOTTOM_LEFT = "bottomLeft"
    BOTTOM_RIGHT = "bottomRight"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class PointerEvent:
    """Pointer input in on-screen pixels; kind is down, move, up or cancel"""
    kind: str
    x: float = 0.0
    y: float = 0.0
    inside: Optional[bool] = None


@dataclass(frozen=True)
class DrawComplete:
    pending: PendingRegion


@dataclass(frozen=True)
class RegionSelected:
    region_id: Optional[str]


@dataclass(frozen=True)
class RegionUpdated:
    region: Region


@dataclass(frozen=True)
class RegionDeleted:
    region_id: str
    screenshot_id: Optional[str] = None


Intent = Union[DrawComplete, RegionSelected, RegionUpdated, RegionDeleted]


@dataclass
class InteractionContext:
    """
    Mutable gesture state

    Attributes:
        state: Current state machine state
        anchor: On-screen point where the gesture started
        current: Latest on-screen pointer position
        active_region_id: Region being dragged or resized
        origin: Percentage coordinates of the active region at gesture start
        live: Percentage coordinates of the active region during the gesture
        handle: Resize handle being dragged
        selected_region_id: Highlighted region (survives gestures)
    """
    state: InteractionState = InteractionState.IDLE
    anchor: Optional[Tuple[float, float]] = None
    current: Optional[Tuple[float, float]] = None
    active_region_id: Optional[str] = None
    origin: Optional[Rectangle] = None
    live: Optional[Rectangle] = None
    handle: Optional[ResizeHandle] = None
    selected_region_id: Optional[str] = None

    def reset(self) -> None:
        """Return to IDLE, keeping the selection"""
        self.state = InteractionState.IDLE
        self.anchor = None
        self.current = None
        self.active_region_id = None
        self.origin = None
        self.live = None
        self.handle = None


class AnnotationEngine:
    """
    Drives draw/select/move/resize/delete gestures over one screenshot

    Args:
        natural_size: Pixel size of the image file
        display_size: On-screen size of the rendered image (defaults to natural)
        regions: Regions already stored for the screenshot
        screenshot_id: Owning screenshot, copied into emitted regions
        drawing_enabled: Whether pointer-down on empty area starts a drawing
        drag_mode: Whether pointer-down on a region moves it instead of selecting
        role: Session role; non-admins can only select
        resize_enabled: Whether edge/corner handles are active in drag mode
        min_region_size: On-screen pixels a drawing must exceed in both axes
        handle_size: On-screen pixel tolerance around edges and corners
    """

    def __init__(
        self,
        natural_size: ImageSize,
        display_size: Optional[ImageSize] = None,
        regions: Iterable[Region] = (),
        screenshot_id: Optional[str] = None,
        drawing_enabled: bool = False,
        drag_mode: bool = False,
        role: Role = Role.ADMIN,
        resize_enabled: bool = True,
        min_region_size: float = config.MIN_REGION_SIZE,
        handle_size: float = config.RESIZE_HANDLE_SIZE,
    ):
        check_image_size(natural_size)
        display_size = display_size or natural_size
        check_image_size(display_size)
        self.natural_size = natural_size
        self.display_size = display_size
        self.screenshot_id = screenshot_id
        self.drawing_enabled = drawing_enabled
        self.drag_mode = drag_mode
        self.role = Role(role)
        self.resize_enabled = resize_enabled
        self.min_region_size = min_region_size
        self.handle_size = handle_size
        self.context = InteractionContext()
        self._regions: List[Region] = list(regions)

    # ------------------------------------------------------------------
    # Region list and surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> InteractionState:
        return self.context.state

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def regions(self) -> List[Region]:
        return list(self._regions)

    @property
    def selected_region_id(self) -> Optional[str]:
        return self.context.selected_region_id

    def get_region(self, region_id: str) -> Optional[Region]:
        for region in self._regions:
            if region.id == region_id:
                return region
        return None

    def set_regions(self, regions: Iterable[Region]) -> None:
        """Replace the local regions, e.g. with the last stored state"""
        self._regions = list(regions)
        if self.get_region(self.context.selected_region_id or "") is None:
            self.context.selected_region_id = None

    def resize(self, display_size: Optional[ImageSize] = None, natural_size: Optional[ImageSize] = None) -> None:
        """Change the displayed and/or natural size; stored coordinates are untouched"""
        if display_size is not None:
            check_image_size(display_size)
            self.display_size = display_size
        if natural_size is not None:
            check_image_size(natural_size)
            self.natural_size = natural_size

    def apply(self, intent: Intent) -> None:
        """Mirror a persisted intent into the local region list"""
        if isinstance(intent, RegionUpdated):
            for i, region in enumerate(self._regions):
                if region.id == intent.region.id:
                    self._regions[i] = intent.region
                    return
            self._regions.append(intent.region)
        elif isinstance(intent, RegionDeleted):
            self._regions = [r for r in self._regions if r.id != intent.region_id]
            if self.context.selected_region_id == intent.region_id:
                self.context.selected_region_id = None
        elif isinstance(intent, RegionSelected):
            self.context.selected_region_id = intent.region_id

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def to_natural(self, x: float, y: float) -> Tuple[float, float]:
        """Map an on-screen point to natural image pixels"""
        return (
            x * self.natural_size.width / self.display_size.width,
            y * self.natural_size.height / self.display_size.height,
        )

    def is_inside(self, x: float, y: float) -> bool:
        return 0 <= x <= self.display_size.width and 0 <= y <= self.display_size.height

    def _clamp_to_surface(self, x: float, y: float) -> Tuple[float, float]:
        return (
            min(max(x, 0), self.display_size.width),
            min(max(y, 0), self.display_size.height),
        )

    def hit_test(self, x: float, y: float) -> Optional[Region]:
        """
        Topmost region containing a point given in natural image pixels

        Later regions are drawn on top, so the highest index wins.
        """
        for region in reversed(self._regions):
            if percent_to_pixels(region.coordinates, self.natural_size).contains(x, y):
                return region
        return None

    def region_at(self, x: float, y: float) -> Optional[Region]:
        """Topmost region under an on-screen point"""
        return self.hit_test(*self.to_natural(x, y))

    def handle_at(self, x: float, y: float) -> Optional[Tuple[Region, ResizeHandle]]:
        """Topmost region whose corner or edge handle is under an on-screen point"""
        for region in reversed(self._regions):
            handle = self._handle_for(x, y, percent_to_pixels(region.coordinates, self.display_size))
            if handle is not None:
                return region, handle
        return None

    def _handle_for(self, x: float, y: float, rect: Rectangle) -> Optional[ResizeHandle]:
        size = self.handle_size
        near_left = abs(x - rect.start_x) <= size
        near_right = abs(x - rect.right) <= size
        near_top = abs(y - rect.start_y) <= size
        near_bottom = abs(y - rect.bottom) <= size

        # Corners take precedence over edges
        if near_left and near_top:
            return ResizeHandle.TOP_LEFT
        if near_right and near_top:
            return ResizeHandle.TOP_RIGHT
        if near_left and near_bottom:
            return ResizeHandle.BOTTOM_LEFT
        if near_right and near_bottom:
            return ResizeHandle.BOTTOM_RIGHT

        within_x = rect.start_x < x < rect.right
        within_y = rect.start_y < y < rect.bottom
        if near_left and within_y:
            return ResizeHandle.LEFT
        if near_right and within_y:
            return ResizeHandle.RIGHT
        if near_top and within_x:
            return ResizeHandle.TOP
        if near_bottom and within_x:
            return ResizeHandle.BOTTOM
        return None

    def _percent_delta(self, x: float, y: float) -> Tuple[float, float]:
        ax, ay = self.context.anchor
        return (
            (x - ax) / self.display_size.width * 100,
            (y - ay) / self.display_size.height * 100,
        )

    @staticmethod
    def _resized(origin: Rectangle, handle: ResizeHandle, dx: float, dy: float) -> Rectangle:
        left, top, right, bottom = origin.start_x, origin.start_y, origin.right, origin.bottom
        if handle in (ResizeHandle.TOP_LEFT, ResizeHandle.BOTTOM_LEFT, ResizeHandle.LEFT):
            left += dx
        if handle in (ResizeHandle.TOP_RIGHT, ResizeHandle.BOTTOM_RIGHT, ResizeHandle.RIGHT):
            right += dx
        if handle in (ResizeHandle.TOP_LEFT, ResizeHandle.TOP_RIGHT, ResizeHandle.TOP):
            top += dy
        if handle in (ResizeHandle.BOTTOM_LEFT, ResizeHandle.BOTTOM_RIGHT, ResizeHandle.BOTTOM):
            bottom += dy
        # from_corners flips an edge dragged past its opposite edge
        return clamp_to_bounds(Rectangle.from_corners(left, top, right, bottom))

    def _pending_from_screen(self, screen_rect: Rectangle) -> PendingRegion:
        if screen_rect.width <= self.min_region_size or screen_rect.height <= self.min_region_size:
            raise DegenerateRegion(
                f"Drawn rectangle {screen_rect.width:.1f}x{screen_rect.height:.1f} "
                f"is not larger than {self.min_region_size}px"
            )
        natural_rect = scale_rectangle(screen_rect, self.display_size, self.natural_size)
        percent = clamp_to_bounds(pixels_to_percent(natural_rect, self.natural_size))
        return PendingRegion(id=new_region_id(), coordinates=percent, screenshot_id=self.screenshot_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def pointer_down(self, x: float, y: float) -> List[Intent]:
        ctx = self.context
        if ctx.state != InteractionState.IDLE or not self.is_inside(x, y):
            return []

        if self.is_admin and self.drag_mode:
            if self.resize_enabled:
                found = self.handle_at(x, y)
                if found is not None:
                    region, handle = found
                    self._begin_edit(InteractionState.RESIZING, region, x, y)
                    ctx.handle = handle
                    return []
            region = self.region_at(x, y)
            if region is not None:
                self._begin_edit(InteractionState.DRAGGING, region, x, y)
            return []

        region = self.region_at(x, y)
        if region is not None:
            ctx.state = InteractionState.SELECTING
            ctx.anchor = ctx.current = (x, y)
            ctx.selected_region_id = None if ctx.selected_region_id == region.id else region.id
            return [RegionSelected(ctx.selected_region_id)]

        if self.is_admin and self.drawing_enabled:
            ctx.state = InteractionState.DRAWING
            ctx.anchor = ctx.current = (x, y)
            return []

        if ctx.selected_region_id is not None:
            ctx.selected_region_id = None
            return [RegionSelected(None)]
        return []

    def _begin_edit(self, state: InteractionState, region: Region, x: float, y: float) -> None:
        ctx = self.context
        ctx.state = state
        ctx.anchor = ctx.current = (x, y)
        ctx.active_region_id = region.id
        ctx.origin = ctx.live = region.coordinates

    def pointer_move(self, x: float, y: float) -> List[Intent]:
        ctx = self.context
        if ctx.state == InteractionState.DRAWING:
            ctx.current = self._clamp_to_surface(x, y)
        elif ctx.state == InteractionState.DRAGGING:
            dx, dy = self._percent_delta(x, y)
            ctx.live = clamp_translation(ctx.origin.translated(dx, dy))
            ctx.current = (x, y)
        elif ctx.state == InteractionState.RESIZING:
            dx, dy = self._percent_delta(x, y)
            ctx.live = self._resized(ctx.origin, ctx.handle, dx, dy)
            ctx.current = (x, y)
        return []

    def pointer_up(self, x: float, y: float, inside: Optional[bool] = None) -> List[Intent]:
        ctx = self.context
        if ctx.state == InteractionState.IDLE:
            return []
        if ctx.state == InteractionState.SELECTING:
            ctx.reset()
            return []

        if inside is None:
            inside = self.is_inside(x, y)
        if not inside:
            logger.debug("Pointer released outside surface, discarding %s gesture", ctx.state.value)
            return self.cancel()

        self.pointer_move(x, y)

        if ctx.state == InteractionState.DRAWING:
            ax, ay = ctx.anchor
            cx, cy = ctx.current
            ctx.reset()
            try:
                pending = self._pending_from_screen(Rectangle.from_corners(ax, ay, cx, cy))
            except DegenerateRegion as e:
                logger.debug("Discarding drawing: %s", e)
                return []
            return [DrawComplete(pending)]

        region = self.get_region(ctx.active_region_id)
        origin, live = ctx.origin, ctx.live
        ctx.reset()
        if region is None or live is None or live == origin or live.is_degenerate:
            return []
        return [RegionUpdated(region.with_coordinates(live))]

    def cancel(self) -> List[Intent]:
        """Abort the current gesture without emitting anything"""
        self.context.reset()
        return []

    def request_delete(self, region_id: str) -> List[Intent]:
        """Delete intent for a region; admin only and only between gestures"""
        if not self.is_admin or self.context.state != InteractionState.IDLE:
            return []
        region = self.get_region(region_id)
        if region is None:
            return []
        return [RegionDeleted(region_id=region.id, screenshot_id=self.screenshot_id)]

    def dispatch(self, event: PointerEvent) -> List[Intent]:
        """Route a decoded pointer event to its transition"""
        if event.kind == "down":
            return self.pointer_down(event.x, event.y)
        if event.kind == "move":
            return self.pointer_move(event.x, event.y)
        if event.kind == "up":
            return self.pointer_up(event.x, event.y, inside=event.inside)
        if event.kind == "cancel":
            return self.cancel()
        raise ValueError(f"Unknown pointer event kind: {event.kind!r}")

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def live_rectangle(self) -> Optional[Rectangle]:
        """On-screen rectangle of the gesture in progress, if any"""
        ctx = self.context
        if ctx.state == InteractionState.DRAWING:
            return Rectangle.from_corners(*ctx.anchor, *ctx.current)
        if ctx.state in (InteractionState.DRAGGING, InteractionState.RESIZING) and ctx.live is not None:
            return percent_to_pixels(ctx.live, self.display_size)
        return None

    def display_rectangles(self) -> List[Tuple[Region, Rectangle]]:
        """On-screen rectangle of every region, with the active one at its live position"""
        ctx = self.context
        result = []
        for region in self._regions:
            coords = region.coordinates
            if region.id == ctx.active_region_id and ctx.live is not None:
                coords = ctx.live
            result.append((region, percent_to_pixels(coords, self.display_size)))
        return result

