"""
Event type lookup

Maps each event type to its legend entry: display name, border color,
description and the metadata fields the editing form requires.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .models import EventType, Region, PageViewDetails, coerce_event_type


@dataclass(frozen=True)
class EventTypeInfo:
    """Display attributes of an event type"""
    event_type: EventType
    display_name: str
    color: str
    description: str
    required_fields: Tuple[str, ...]


_EVENT_TYPES = {
    EventType.PAGE_VIEW: EventTypeInfo(
        event_type=EventType.PAGE_VIEW,
        display_name="Page View",
        color="#2563EB",
        description="Track when users view a page",
        required_fields=("name", "category"),
    ),
    EventType.TRACK_EVENT_WITH_PAGE_VIEW: EventTypeInfo(
        event_type=EventType.TRACK_EVENT_WITH_PAGE_VIEW,
        display_name="TrackEvent with PageView",
        color="#16A34A",
        description="Track user interactions that also trigger a page view",
        required_fields=("category", "action"),
    ),
    EventType.TRACK_EVENT: EventTypeInfo(
        event_type=EventType.TRACK_EVENT,
        display_name="TrackEvent",
        color="#9333EA",
        description="Track user interactions without a page view",
        required_fields=("category", "action"),
    ),
    EventType.OUTLINK: EventTypeInfo(
        event_type=EventType.OUTLINK,
        display_name="Outlink",
        color="#DC2626",
        description="Track when users click links to external sites",
        required_fields=("category",),
    ),
    EventType.BACKEND_EVENT: EventTypeInfo(
        event_type=EventType.BACKEND_EVENT,
        display_name="Backend Event",
        color="#F59E0B",
        description="Track backend-specific events and operations",
        required_fields=("category", "action"),
    ),
}


def resolve(event_type: Union[EventType, str]) -> EventTypeInfo:
    """
    Look up the display attributes of an event type

    Args:
        event_type: EventType member or its stored string value

    Returns:
        EventTypeInfo for the type

    Raises:
        UnknownEventType: If the value is outside the closed set
    """
    return _EVENT_TYPES[coerce_event_type(event_type)]


def all_event_types() -> List[EventTypeInfo]:
    """Every event type in legend order"""
    return list(_EVENT_TYPES.values())


def region_label(region: Region) -> str:
    """Short label drawn next to a region"""
    if isinstance(region.details, PageViewDetails):
        return "PageView"
    return region.details.to_fields()["action"] or resolve(region.event_type).display_name


def count_by_type(regions: Iterable[Region]) -> Dict[EventType, int]:
    """Number of regions per event type, in legend order, zero for absent types"""
    counts = {event_type: 0 for event_type in _EVENT_TYPES}
    for region in regions:
        counts[region.event_type] += 1
    return counts


def filter_regions(regions: Iterable[Region], event_type: Optional[Union[EventType, str]] = None) -> List[Region]:
    """Regions of one event type; every region when event_type is None"""
    if event_type is None:
        return list(regions)
    event_type = coerce_event_type(event_type)
    return [region for region in regions if region.event_type == event_type]
