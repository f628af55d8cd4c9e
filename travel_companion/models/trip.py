"""
Trip management - Tracks each trip's transcript and itinerary, plus the
in-memory mirror of all trips.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Callable, Optional
from enum import Enum
import logging
import uuid

from .itinerary import ItineraryItem
from ..errors import DuplicateNameError, TripNotFoundError

logger = logging.getLogger(__name__)


WELCOME_MESSAGE = (
    "To get started, please tell me about any activities or places you're interested in. "
    "Be sure to include the name and the preferred start date & time for each activity."
)


class MessageRole(str, Enum):
    """Author of a transcript message. Assistant replies are stored as system."""
    USER = "user"
    SYSTEM = "system"


class Message(BaseModel):
    """A single message in the conversation. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    role: MessageRole = Field(..., description="'user' or 'system'")
    content: str = Field(..., description="Message content")


class Trip(BaseModel):
    """A trip with its append-only transcript and its itinerary."""
    name: str = Field(..., min_length=1, description="Unique display name")

    # Conversation history, oldest first
    messages: list[Message] = Field(
        default_factory=list,
        description="Chat transcript"
    )

    itinerary_items: list[ItineraryItem] = Field(
        default_factory=list,
        description="Current itinerary; unordered at rest"
    )

    def append_message(self, message: Message) -> Message:
        """Add a message to the end of the transcript."""
        self.messages.append(message)
        return message

    def find_item(self, item_id: uuid.UUID) -> Optional[ItineraryItem]:
        """Find an itinerary item by id."""
        return next((item for item in self.itinerary_items if item.id == item_id), None)

    def to_chat_messages(self) -> list[dict]:
        """Transcript in the chat transport's request shape."""
        return [{"role": msg.role.value, "content": msg.content} for msg in self.messages]


def create_trip(name: str) -> Trip:
    """Build a new trip seeded with the welcome message."""
    trip = Trip(name=name)
    trip.append_message(Message(role=MessageRole.SYSTEM, content=WELCOME_MESSAGE))
    return trip


TripObserver = Callable[[str, str], None]


class TripRepository:
    """
    In-memory mirror of the durable store, keyed by trip name.

    The store stays the source of truth; callers update it first and only
    touch the mirror once the store call succeeded. Observers are notified
    with (event, trip_name) after every change.
    """

    def __init__(self):
        self._trips: dict[str, Trip] = {}
        self._observers: list[TripObserver] = []

    def __contains__(self, name: str) -> bool:
        return name in self._trips

    def __len__(self) -> int:
        return len(self._trips)

    def names(self) -> list[str]:
        """Trip names in insertion order."""
        return list(self._trips)

    def get(self, name: str) -> Optional[Trip]:
        return self._trips.get(name)

    def require(self, name: str) -> Trip:
        trip = self._trips.get(name)
        if trip is None:
            raise TripNotFoundError(name)
        return trip

    def add(self, trip: Trip):
        if trip.name in self._trips:
            raise DuplicateNameError(trip.name)
        self._trips[trip.name] = trip
        self.notify("trip_added", trip.name)

    def remove(self, name: str):
        if self._trips.pop(name, None) is not None:
            self.notify("trip_removed", name)

    def replace_all(self, trips: list[Trip]):
        """Swap the whole mirror, e.g. after loading from the store."""
        self._trips = {trip.name: trip for trip in trips}
        self.notify("trips_loaded", "")

    def subscribe(self, observer: TripObserver):
        self._observers.append(observer)

    def notify(self, event: str, trip_name: str):
        for observer in list(self._observers):
            try:
                observer(event, trip_name)
            except Exception as e:
                logger.error(f"Trip observer failed on {event} for '{trip_name}': {e}")
