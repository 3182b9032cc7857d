"""
Annotation Data Models

Dataclasses for modules, screenshots and the event regions drawn on them.
Each model converts to and from the flat JSON shape stored in the document.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple, Union
import uuid
import json

from .errors import OutOfBounds, UnknownEventType

# Float noise tolerated when checking percentage bounds
BOUNDS_TOLERANCE = 1e-9


class EventType(str, Enum):
    """Analytics event kinds a region can represent"""
    PAGE_VIEW = "pageview"
    TRACK_EVENT_WITH_PAGE_VIEW = "trackevent_pageview"
    TRACK_EVENT = "trackevent"
    OUTLINK = "outlink"
    BACKEND_EVENT = "backendevent"


class ScreenshotStatus(str, Enum):
    """Documentation progress of a screenshot"""
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class Role(str, Enum):
    """Session role; only admins may draw, move, resize or delete"""
    ADMIN = "admin"
    USER = "user"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'"""
    if not value:
        return utc_now()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_region_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ImageSize:
    """Width and height of an image, in pixels"""
    width: float
    height: float


@dataclass(frozen=True)
class Rectangle:
    """
    Axis-aligned rectangle

    The same shape is used for pixel and percentage coordinates; the unit is
    implied by where the rectangle comes from.
    """
    start_x: float
    start_y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.start_x + self.width

    @property
    def bottom(self) -> float:
        return self.start_y + self.height

    @property
    def is_degenerate(self) -> bool:
        return self.width == 0 or self.height == 0

    def contains(self, x: float, y: float) -> bool:
        """Inclusive point-in-rectangle test"""
        return self.start_x <= x <= self.right and self.start_y <= y <= self.bottom

    def translated(self, dx: float, dy: float) -> "Rectangle":
        return replace(self, start_x=self.start_x + dx, start_y=self.start_y + dy)

    @classmethod
    def from_corners(cls, ax: float, ay: float, bx: float, by: float) -> "Rectangle":
        """Build a rectangle from two opposite corners in any drag direction"""
        return cls(
            start_x=min(ax, bx),
            start_y=min(ay, by),
            width=abs(bx - ax),
            height=abs(by - ay),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "startX": self.start_x,
            "startY": self.start_y,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Rectangle":
        return cls(
            start_x=float(data["startX"]),
            start_y=float(data["startY"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )


def check_percent_bounds(rect: Rectangle) -> None:
    """Raise OutOfBounds unless the rectangle lies inside [0, 100]"""
    low = -BOUNDS_TOLERANCE
    high = 100 + BOUNDS_TOLERANCE
    if (
        rect.start_x < low
        or rect.start_y < low
        or rect.width < low
        or rect.height < low
        or rect.right > high
        or rect.bottom > high
    ):
        raise OutOfBounds(f"Rectangle outside image bounds: {rect.to_dict()}")


# Event details: one variant per family of event types. The flat
# name/category/action/value fields only exist in the stored JSON.

@dataclass(frozen=True)
class PageViewDetails:
    """Page view with a custom title and URL"""
    custom_title: str = ""
    custom_url: str = ""

    def to_fields(self) -> Dict[str, str]:
        return {"name": self.custom_title, "category": self.custom_url, "action": "", "value": ""}


@dataclass(frozen=True)
class TrackEventDetails:
    """Analytics taxonomy fields for track and backend events"""
    category: str = ""
    action: str = ""
    name: str = ""
    value: str = ""

    def to_fields(self) -> Dict[str, str]:
        return {"name": self.name, "category": self.category, "action": self.action, "value": self.value}


OUTLINK_ACTION = "Outlink"


@dataclass(frozen=True)
class OutlinkDetails:
    """Outbound link click; the action is always 'Outlink'"""
    category: str = ""
    name: str = ""
    value: str = ""

    def to_fields(self) -> Dict[str, str]:
        return {"name": self.name, "category": self.category, "action": OUTLINK_ACTION, "value": self.value}


EventDetails = Union[PageViewDetails, TrackEventDetails, OutlinkDetails]

DETAILS_BY_EVENT_TYPE = {
    EventType.PAGE_VIEW: PageViewDetails,
    EventType.TRACK_EVENT_WITH_PAGE_VIEW: TrackEventDetails,
    EventType.TRACK_EVENT: TrackEventDetails,
    EventType.BACKEND_EVENT: TrackEventDetails,
    EventType.OUTLINK: OutlinkDetails,
}


def details_from_fields(event_type: EventType, data: Dict[str, Any]) -> EventDetails:
    """Build the details variant for an event type from flat stored fields"""
    name = data.get("name") or ""
    category = data.get("category") or ""
    value = data.get("value") or ""
    if event_type == EventType.PAGE_VIEW:
        return PageViewDetails(custom_title=name, custom_url=category)
    if event_type == EventType.OUTLINK:
        return OutlinkDetails(category=category, name=name, value=value)
    return TrackEventDetails(
        category=category,
        action=data.get("action") or "",
        name=name,
        value=value,
    )


def coerce_event_type(value: Union[EventType, str]) -> EventType:
    """Map a stored string to EventType, rejecting anything outside the closed set"""
    if isinstance(value, EventType):
        return value
    try:
        return EventType(value)
    except ValueError:
        raise UnknownEventType(value) from None


@dataclass
class Region:
    """
    Annotated event region

    Attributes:
        id: Unique identifier, shared by the drawn rectangle and stored event
        coordinates: Percentage rectangle relative to the image's natural size
        event_type: Kind of analytics event
        details: Event fields for the event type's variant
        dimensions: Ids of dimension definitions attached to the event
        description: Optional developer note
        screenshot_id: Owning screenshot
        updated_at: Last modification time
    """
    coordinates: Rectangle
    event_type: EventType
    details: EventDetails
    id: str = field(default_factory=new_region_id)
    dimensions: Tuple[str, ...] = ()
    description: Optional[str] = None
    screenshot_id: Optional[str] = None
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.event_type = coerce_event_type(self.event_type)
        expected = DETAILS_BY_EVENT_TYPE[self.event_type]
        if not isinstance(self.details, expected):
            raise ValueError(
                f"{self.event_type.value} events take {expected.__name__}, "
                f"got {type(self.details).__name__}"
            )
        self.dimensions = tuple(self.dimensions)
        if len(set(self.dimensions)) != len(self.dimensions):
            raise ValueError(f"Duplicate dimension ids on region {self.id}")
        check_percent_bounds(self.coordinates)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "coordinates": self.coordinates.to_dict(),
            "screenshotId": self.screenshot_id,
            "eventType": self.event_type.value,
        }
        data.update(self.details.to_fields())
        data["dimensions"] = list(self.dimensions)
        if self.description:
            data["description"] = self.description
        data["updatedAt"] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Region":
        event_type = coerce_event_type(data["eventType"])
        return cls(
            id=data["id"],
            coordinates=Rectangle.from_dict(data["coordinates"]),
            event_type=event_type,
            details=details_from_fields(event_type, data),
            dimensions=tuple(data.get("dimensions") or ()),
            description=data.get("description") or None,
            screenshot_id=data.get("screenshotId"),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def with_coordinates(self, coordinates: Rectangle) -> "Region":
        """Copy of this region moved to new percentage coordinates"""
        return replace(self, coordinates=coordinates, updated_at=utc_now())


@dataclass(frozen=True)
class PendingRegion:
    """
    Freshly drawn region awaiting an event type

    Emitted by the interaction engine when a draw gesture completes; the
    event-type form turns it into a Region with commit().
    """
    id: str
    coordinates: Rectangle
    screenshot_id: Optional[str] = None

    def commit(
        self,
        event_type: Union[EventType, str],
        details: EventDetails,
        dimensions: Tuple[str, ...] = (),
        description: Optional[str] = None,
    ) -> Region:
        return Region(
            id=self.id,
            coordinates=self.coordinates,
            event_type=event_type,
            details=details,
            dimensions=tuple(dimensions),
            description=description,
            screenshot_id=self.screenshot_id,
        )


@dataclass
class Screenshot:
    """
    Uploaded screenshot and its annotated events

    Attributes:
        id: Unique identifier
        name: Display name
        url: Reference to the stored image asset
        page_name: Key of the owning module
        status: Documentation progress
        label_id: Optional page label reference
        events: Regions drawn on this screenshot (order not significant)
    """
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str = ""
    url: str = ""
    page_name: str = ""
    status: ScreenshotStatus = ScreenshotStatus.TODO
    label_id: Optional[str] = None
    events: List[Region] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "pageName": self.page_name,
            "status": self.status.value,
        }
        if self.label_id is not None:
            data["labelId"] = self.label_id
        data["createdAt"] = format_timestamp(self.created_at)
        data["updatedAt"] = format_timestamp(self.updated_at)
        data["events"] = [r.to_dict() for r in self.events]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Screenshot":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            url=data.get("url", ""),
            page_name=data.get("pageName", ""),
            status=ScreenshotStatus(data.get("status") or ScreenshotStatus.TODO.value),
            label_id=data.get("labelId"),
            events=[Region.from_dict(r) for r in data.get("events") or []],
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def get_region(self, region_id: str) -> Optional[Region]:
        """Get a region by ID"""
        for region in self.events:
            if region.id == region_id:
                return region
        return None

    def upsert_region(self, region: Region) -> bool:
        """Replace the region with the same id in place, or append. Returns True if replaced."""
        for i, existing in enumerate(self.events):
            if existing.id == region.id:
                self.events[i] = region
                return True
        self.events.append(region)
        return False

    def remove_region(self, region_id: str) -> bool:
        """Remove a region by ID. Returns True if found and removed."""
        for i, region in enumerate(self.events):
            if region.id == region_id:
                self.events.pop(i)
                return True
        return False

    def touch(self) -> None:
        self.updated_at = utc_now()


@dataclass
class Module:
    """A product area grouping an ordered list of screenshots"""
    key: str
    name: str
    id: str = ""
    screenshots: List[Screenshot] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "screenshots": [s.to_dict() for s in self.screenshots],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Module":
        return cls(
            id=str(data.get("id", "")),
            key=data["key"],
            name=data.get("name", data["key"]),
            screenshots=[Screenshot.from_dict(s) for s in data.get("screenshots") or []],
        )

    def get_screenshot(self, screenshot_id: str) -> Optional[Screenshot]:
        for screenshot in self.screenshots:
            if screenshot.id == screenshot_id:
                return screenshot
        return None

    @property
    def screenshot_ids(self) -> List[str]:
        return [s.id for s in self.screenshots]


@dataclass
class Document:
    """Root document: every module with its screenshots and events"""
    modules: List[Module] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"modules": [m.to_dict() for m in self.modules]}

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(modules=[Module.from_dict(m) for m in data.get("modules") or []])

    @classmethod
    def from_json(cls, json_str: str) -> "Document":
        """Deserialize from JSON string"""
        data = json.loads(json_str) if json_str.strip() else {}
        if not isinstance(data, dict):
            raise ValueError("Document root must be a JSON object")
        return cls.from_dict(data)

    def get_module(self, key: str) -> Optional[Module]:
        for module in self.modules:
            if module.key == key:
                return module
        return None

    def find_screenshot(self, screenshot_id: str) -> Tuple[Optional[Module], Optional[Screenshot]]:
        """Scan every module for a screenshot id"""
        for module in self.modules:
            screenshot = module.get_screenshot(screenshot_id)
            if screenshot is not None:
                return module, screenshot
        return None, None

    def find_region_owner(self, region_id: str) -> Optional[Screenshot]:
        """Screenshot whose events contain the region id, if any"""
        for module in self.modules:
            for screenshot in module.screenshots:
                if screenshot.get_region(region_id) is not None:
                    return screenshot
        return None

    def region_ids(self) -> List[str]:
        return [
            region.id
            for module in self.modules
            for screenshot in module.screenshots
            for region in screenshot.events
        ]

    @property
    def total_events(self) -> int:
        """Total number of regions across all screenshots"""
        return len(self.region_ids())
