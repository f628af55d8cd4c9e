"""
Error taxonomy for the travel companion.

Parse-level failures are not exceptions: the extractor drops malformed
records and keeps scanning. Everything here is scoped to one turn or one trip.
"""


class TravelCompanionError(Exception):
    """Base class for all travel companion errors."""


class TransportError(TravelCompanionError):
    """The chat transport failed (network, timeout, decode or empty reply)."""


class PersistenceError(TravelCompanionError):
    """A durable store operation failed and was rolled back."""


class DuplicateNameError(TravelCompanionError):
    """A trip with this name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Trip '{name}' already exists")


class TripNotFoundError(TravelCompanionError):
    """No trip with this name exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Trip '{name}' not found")


class ItineraryItemNotFoundError(TravelCompanionError):
    """No itinerary item with this id exists in the trip."""

    def __init__(self, trip_name: str, item_id):
        self.trip_name = trip_name
        self.item_id = item_id
        super().__init__(f"Itinerary item {item_id} not found in trip '{trip_name}'")
