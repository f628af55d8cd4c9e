"""
Itinerary Reconciler.
Replaces a trip's itinerary with freshly extracted items, in the store and then in the mirror.
"""
import logging

from .store import TripStore
from ..errors import PersistenceError
from ..models.itinerary import ItineraryItem
from ..models.trip import Trip, TripRepository

logger = logging.getLogger(__name__)


class ItineraryReconciler:
    """
    Full replace, not merge: anything not in the latest extraction is gone.

    The store clears and rewrites the items in one transaction, so a failed
    write leaves the previous itinerary in place. The mirror is only touched
    after the store committed.
    """

    def __init__(self, store: TripStore, trips: TripRepository):
        self.store = store
        self.trips = trips

    def reconcile(self, trip_name: str, items: list[ItineraryItem]) -> Trip:
        """
        Replace the trip's itinerary with ``items``.

        Raises:
            TripNotFoundError: if the trip is not in the mirror or the store
            PersistenceError: if the store could not commit the replacement
        """
        trip = self.trips.require(trip_name)

        try:
            self.store.replace_itinerary_items(trip_name, items)
        except PersistenceError:
            logger.error(f"Itinerary reconciliation failed for '{trip_name}'; keeping {len(trip.itinerary_items)} item(s)")
            raise

        trip.itinerary_items = list(items)
        self.trips.notify("itinerary_replaced", trip_name)
        logger.info(f"Itinerary for '{trip_name}' replaced with {len(items)} item(s)")
        return trip
