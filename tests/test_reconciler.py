"""Tests for itinerary reconciliation."""
import pytest
from datetime import datetime

from travel_companion.errors import PersistenceError, TripNotFoundError
from travel_companion.models.itinerary import ItineraryItem
from travel_companion.models.trip import create_trip
from travel_companion.services.extractor import ItineraryExtractor
from travel_companion.services.reconciler import ItineraryReconciler


REPLY = (
    "Here you go: "
    "[start]Activity: Hike; Location: Boise; Start Time: 6:00 PM on July 22, 2022; End Time: TBD[end]"
    "[start]Activity: Dinner; Location: Boise; Start Time: 9:00 PM on July 22, 2022; End Time: TBD[end]"
)


def seed_trip(store, trips, name="Boise", item_count=3):
    trip = create_trip(name)
    for hour in range(item_count):
        start = datetime(2022, 7, 21, 9 + hour)
        trip.itinerary_items.append(
            ItineraryItem(location_name=name, activity=f"Old {hour}", start_time=start, end_time=start)
        )
    store.create_trip(trip)
    trips.add(trip)
    return trip


def summary(items):
    return sorted((i.activity, i.location_name, i.start_time, i.end_time) for i in items)


class TestItineraryReconciler:
    """Test the replace protocol."""

    def test_replaces_existing_items(self, store, trips):
        """N old items become exactly the M extracted ones, in store and mirror."""
        trip = seed_trip(store, trips)
        old_ids = {item.id for item in trip.itinerary_items}
        items = ItineraryExtractor().extract(REPLY)

        ItineraryReconciler(store, trips).reconcile("Boise", items)

        mirrored = trips.require("Boise").itinerary_items
        assert [i.activity for i in mirrored] == ["Hike", "Dinner"]
        assert not old_ids & {i.id for i in mirrored}
        assert summary(store.get_trip("Boise").itinerary_items) == summary(mirrored)

    def test_rerun_with_same_reply(self, store, trips):
        """Reconciling the same reply twice lands on the same items, ids aside."""
        seed_trip(store, trips)
        extractor = ItineraryExtractor()
        reconciler = ItineraryReconciler(store, trips)

        reconciler.reconcile("Boise", extractor.extract(REPLY))
        first = summary(trips.require("Boise").itinerary_items)
        reconciler.reconcile("Boise", extractor.extract(REPLY))

        assert summary(trips.require("Boise").itinerary_items) == first
        assert len(store.get_trip("Boise").itinerary_items) == 2

    def test_empty_extraction_clears(self, store, trips):
        seed_trip(store, trips)

        ItineraryReconciler(store, trips).reconcile("Boise", [])

        assert trips.require("Boise").itinerary_items == []
        assert store.get_trip("Boise").itinerary_items == []

    def test_failure_keeps_previous_itinerary(self, store, trips):
        """A failed write leaves both store and mirror as they were."""
        trip = seed_trip(store, trips)
        before = list(trip.itinerary_items)
        clash = ItineraryExtractor().extract(REPLY)[0]

        with pytest.raises(PersistenceError):
            ItineraryReconciler(store, trips).reconcile("Boise", [clash, clash])

        assert trips.require("Boise").itinerary_items == before
        assert summary(store.get_trip("Boise").itinerary_items) == summary(before)

    def test_unknown_trip(self, store, trips):
        with pytest.raises(TripNotFoundError):
            ItineraryReconciler(store, trips).reconcile("Nowhere", [])

    def test_observers_notified(self, store, trips):
        seed_trip(store, trips)
        events = []
        trips.subscribe(lambda event, name: events.append((event, name)))

        ItineraryReconciler(store, trips).reconcile("Boise", [])

        assert events == [("itinerary_replaced", "Boise")]
