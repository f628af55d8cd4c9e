"""
Itinerary models - Structured activity/location/time records for a trip.
"""
from pydantic import BaseModel, Field
from datetime import date, datetime
import uuid


class ItineraryItem(BaseModel):
    """A single activity in the itinerary."""
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        description="Surrogate key, unique within the store"
    )
    location_name: str = Field(
        ...,
        description="City name of the activity"
    )
    activity: str = Field(
        ...,
        description="What the traveler is doing"
    )
    start_time: datetime = Field(
        ...,
        description="Local wall-clock start"
    )
    # end_time >= start_time is expected but not enforced
    end_time: datetime = Field(
        ...,
        description="Local wall-clock end"
    )


class DayGroup(BaseModel):
    """All itinerary items starting on one calendar day."""
    day: date
    items: list[ItineraryItem] = Field(default_factory=list)


def group_by_day(items: list[ItineraryItem]) -> list[DayGroup]:
    """
    Group items by the calendar day of their start time.

    Groups are ordered by date ascending and items within a group by start
    time ascending. This is a read-time view; stored items have no order.
    """
    groups: dict[date, list[ItineraryItem]] = {}
    for item in sorted(items, key=lambda i: i.start_time):
        groups.setdefault(item.start_time.date(), []).append(item)

    return [
        DayGroup(day=day, items=day_items)
        for day, day_items in sorted(groups.items())
    ]
