"""Tests for the SQLite trip store."""
import pytest
from datetime import datetime
import uuid

from travel_companion.errors import (
    DuplicateNameError,
    ItineraryItemNotFoundError,
    PersistenceError,
    TripNotFoundError,
)
from travel_companion.models.itinerary import ItineraryItem
from travel_companion.models.trip import Message, MessageRole, create_trip


def make_item(activity: str = "Dinner", hour: int = 21) -> ItineraryItem:
    start = datetime(2022, 7, 21, hour, 0)
    return ItineraryItem(location_name="Boise", activity=activity, start_time=start, end_time=start)


def count_rows(store, table: str, trip_name: str) -> int:
    return store._conn.execute(f"SELECT COUNT(*) FROM {table} WHERE trip_name = ?", (trip_name,)).fetchone()[0]


class TestTrips:
    """Test trip-level operations."""

    def test_create_and_get(self, store):
        trip = create_trip("Boise")
        store.create_trip(trip)

        loaded = store.get_trip("Boise")
        assert loaded.name == "Boise"
        assert loaded.messages == trip.messages
        assert loaded.itinerary_items == []

    def test_duplicate_name_rejected(self, store):
        """A second trip with the same name fails and leaves the first untouched."""
        store.create_trip(create_trip("Boise"))
        store.append_message("Boise", Message(role=MessageRole.USER, content="hi"))

        with pytest.raises(DuplicateNameError):
            store.create_trip(create_trip("Boise"))

        assert len(store.get_trip("Boise").messages) == 2

    def test_list_trips_in_creation_order(self, store):
        for name in ("Boise", "Paris", "Lisbon"):
            store.create_trip(create_trip(name))

        assert [trip.name for trip in store.list_trips()] == ["Boise", "Paris", "Lisbon"]

    def test_get_unknown_trip(self, store):
        with pytest.raises(TripNotFoundError):
            store.get_trip("Nowhere")

    def test_delete_cascades(self, store):
        """Deleting a trip removes its messages and items."""
        store.create_trip(create_trip("Boise"))
        store.create_trip(create_trip("Paris"))
        store.append_message("Boise", Message(role=MessageRole.USER, content="hike at 6pm"))
        store.add_itinerary_item("Boise", make_item())

        store.delete_trip("Boise")

        with pytest.raises(TripNotFoundError):
            store.get_trip("Boise")
        assert count_rows(store, "messages", "Boise") == 0
        assert count_rows(store, "itinerary_items", "Boise") == 0
        assert len(store.get_trip("Paris").messages) == 1

    def test_delete_unknown_trip(self, store):
        with pytest.raises(TripNotFoundError):
            store.delete_trip("Nowhere")


class TestMessages:
    """Test transcript persistence."""

    def test_messages_keep_insertion_order(self, store):
        store.create_trip(create_trip("Boise"))
        contents = [f"message {i}" for i in range(5)]
        for content in contents:
            store.append_message("Boise", Message(role=MessageRole.USER, content=content))

        loaded = store.get_trip("Boise").messages
        assert [m.content for m in loaded[1:]] == contents

    def test_append_to_unknown_trip(self, store):
        with pytest.raises(TripNotFoundError):
            store.append_message("Nowhere", Message(role=MessageRole.USER, content="hi"))


class TestItineraryItems:
    """Test itinerary persistence."""

    def test_add_and_clear(self, store):
        store.create_trip(create_trip("Boise"))
        store.add_itinerary_item("Boise", make_item("Dinner"))
        store.add_itinerary_item("Boise", make_item("Hike", 18))

        assert len(store.get_trip("Boise").itinerary_items) == 2

        store.clear_itinerary_items("Boise")
        assert store.get_trip("Boise").itinerary_items == []

    def test_items_round_trip(self, store):
        store.create_trip(create_trip("Boise"))
        item = make_item()
        store.add_itinerary_item("Boise", item)

        assert store.get_trip("Boise").itinerary_items == [item]

    def test_update_item(self, store):
        store.create_trip(create_trip("Boise"))
        item = make_item()
        store.add_itinerary_item("Boise", item)

        updated = store.update_itinerary_item("Boise", item.id, {"activity": "Late dinner", "end_time": datetime(2022, 7, 21, 23)})

        assert updated.id == item.id
        assert updated.activity == "Late dinner"
        assert updated.location_name == "Boise"
        assert store.get_trip("Boise").itinerary_items == [updated]

    def test_update_rejects_unknown_fields(self, store):
        """No field is written when any requested field is not editable."""
        store.create_trip(create_trip("Boise"))
        item = make_item()
        store.add_itinerary_item("Boise", item)

        with pytest.raises(ValueError):
            store.update_itinerary_item("Boise", item.id, {"activity": "Brunch", "id": str(uuid.uuid4())})

        assert store.get_trip("Boise").itinerary_items == [item]

    def test_update_invalid_value_changes_nothing(self, store):
        store.create_trip(create_trip("Boise"))
        item = make_item()
        store.add_itinerary_item("Boise", item)

        with pytest.raises(ValueError):
            store.update_itinerary_item("Boise", item.id, {"activity": "Brunch", "start_time": "not a time"})

        assert store.get_trip("Boise").itinerary_items == [item]

    def test_item_lookup_is_scoped_to_trip(self, store):
        store.create_trip(create_trip("Boise"))
        store.create_trip(create_trip("Paris"))
        item = make_item()
        store.add_itinerary_item("Boise", item)

        with pytest.raises(ItineraryItemNotFoundError):
            store.update_itinerary_item("Paris", item.id, {"activity": "Brunch"})
        with pytest.raises(ItineraryItemNotFoundError):
            store.delete_itinerary_item("Paris", item.id)

    def test_delete_item(self, store):
        store.create_trip(create_trip("Boise"))
        keep, drop = make_item("Hike", 18), make_item("Dinner")
        store.add_itinerary_item("Boise", keep)
        store.add_itinerary_item("Boise", drop)

        store.delete_itinerary_item("Boise", drop.id)

        assert store.get_trip("Boise").itinerary_items == [keep]

    def test_replace_items(self, store):
        store.create_trip(create_trip("Boise"))
        store.add_itinerary_item("Boise", make_item("Old"))
        new_items = [make_item("Hike", 18), make_item("Dinner")]

        store.replace_itinerary_items("Boise", new_items)

        assert sorted(i.activity for i in store.get_trip("Boise").itinerary_items) == ["Dinner", "Hike"]

    def test_failed_replace_rolls_back(self, store):
        """A write failure mid-replace keeps the previous itinerary."""
        store.create_trip(create_trip("Boise"))
        original = make_item("Original")
        store.add_itinerary_item("Boise", original)

        clash = make_item("Clash")
        with pytest.raises(PersistenceError):
            store.replace_itinerary_items("Boise", [clash, clash])

        assert store.get_trip("Boise").itinerary_items == [original]

    def test_replace_for_unknown_trip(self, store):
        with pytest.raises(TripNotFoundError):
            store.replace_itinerary_items("Nowhere", [make_item()])


class TestDurability:
    """Test that data survives reopening the database."""

    def test_reopen_file_database(self, tmp_path):
        from travel_companion.services.store import SQLiteTripStore

        path = str(tmp_path / "trips.db")
        first = SQLiteTripStore(path)
        first.create_trip(create_trip("Boise"))
        first.add_itinerary_item("Boise", make_item())
        first.close()

        second = SQLiteTripStore(path)
        try:
            trip = second.get_trip("Boise")
            assert len(trip.messages) == 1
            assert len(trip.itinerary_items) == 1
        finally:
            second.close()
