"""
Trip Store.
Durable CRUD for trips, their transcripts and their itineraries, addressed by
trip name (natural key) and item id (surrogate key).
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Protocol
import logging
import sqlite3
import uuid

from ..errors import (
    DuplicateNameError,
    ItineraryItemNotFoundError,
    PersistenceError,
    TravelCompanionError,
    TripNotFoundError,
)
from ..models.itinerary import ItineraryItem
from ..models.trip import Message, MessageRole, Trip

logger = logging.getLogger(__name__)


UPDATABLE_ITEM_FIELDS = frozenset({"location_name", "activity", "start_time", "end_time"})


class TripStore(Protocol):
    """
    Persistence for trips.
    Every mutating call either commits fully or raises and leaves prior state unchanged.
    """

    def create_trip(self, trip: Trip) -> None:
        ...

    def get_trip(self, name: str) -> Trip:
        ...

    def delete_trip(self, name: str) -> None:
        ...

    def list_trips(self) -> list[Trip]:
        ...

    def append_message(self, trip_name: str, message: Message) -> None:
        ...

    def clear_itinerary_items(self, trip_name: str) -> None:
        ...

    def add_itinerary_item(self, trip_name: str, item: ItineraryItem) -> None:
        ...

    def update_itinerary_item(self, trip_name: str, item_id: uuid.UUID, fields: dict[str, Any]) -> ItineraryItem:
        ...

    def delete_itinerary_item(self, trip_name: str, item_id: uuid.UUID) -> None:
        ...

    def replace_itinerary_items(self, trip_name: str, items: list[ItineraryItem]) -> None:
        """Clear the trip's itinerary and write ``items`` in one transaction."""
        ...


SCHEMA = """
CREATE TABLE IF NOT EXISTS trips (
    name TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    trip_name TEXT NOT NULL REFERENCES trips(name) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS itinerary_items (
    id TEXT PRIMARY KEY,
    trip_name TEXT NOT NULL REFERENCES trips(name) ON DELETE CASCADE,
    location_name TEXT NOT NULL,
    activity TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL
);
"""


class SQLiteTripStore:
    """SQLite-backed trip store. Use ``:memory:`` for a throwaway database."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            logger.error(f"Error opening trip database {db_path}: {e}")
            raise PersistenceError(f"Cannot open trip database {db_path}: {e}") from e

    def close(self):
        self._conn.close()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction; roll back on any error."""
        try:
            with self._conn:
                yield self._conn
        except TravelCompanionError:
            raise
        except sqlite3.Error as e:
            logger.error(f"Store error during {action}: {e}")
            raise PersistenceError(f"Failed to {action}: {e}") from e

    @staticmethod
    def _require_trip(conn: sqlite3.Connection, name: str):
        row = conn.execute("SELECT 1 FROM trips WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise TripNotFoundError(name)

    @staticmethod
    def _insert_message(conn: sqlite3.Connection, trip_name: str, message: Message):
        conn.execute(
            "INSERT INTO messages (id, trip_name, role, content) VALUES (?, ?, ?, ?)",
            (str(message.id), trip_name, message.role.value, message.content),
        )

    @staticmethod
    def _insert_item(conn: sqlite3.Connection, trip_name: str, item: ItineraryItem):
        conn.execute(
            "INSERT INTO itinerary_items (id, trip_name, location_name, activity, start_time, end_time) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(item.id),
                trip_name,
                item.location_name,
                item.activity,
                item.start_time.isoformat(),
                item.end_time.isoformat(),
            ),
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ItineraryItem:
        return ItineraryItem(
            id=uuid.UUID(row["id"]),
            location_name=row["location_name"],
            activity=row["activity"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
        )

    def _load_trip(self, conn: sqlite3.Connection, name: str) -> Trip:
        messages = [
            Message(id=uuid.UUID(row["id"]), role=MessageRole(row["role"]), content=row["content"])
            for row in conn.execute(
                "SELECT id, role, content FROM messages WHERE trip_name = ? ORDER BY seq", (name,)
            )
        ]
        items = [
            self._row_to_item(row)
            for row in conn.execute("SELECT * FROM itinerary_items WHERE trip_name = ?", (name,))
        ]
        return Trip(name=name, messages=messages, itinerary_items=items)

    # Trips

    def create_trip(self, trip: Trip) -> None:
        """Persist a new trip together with its seed messages and items."""
        with self._transaction(f"create trip '{trip.name}'") as conn:
            if conn.execute("SELECT 1 FROM trips WHERE name = ?", (trip.name,)).fetchone():
                raise DuplicateNameError(trip.name)
            conn.execute("INSERT INTO trips (name) VALUES (?)", (trip.name,))
            for message in trip.messages:
                self._insert_message(conn, trip.name, message)
            for item in trip.itinerary_items:
                self._insert_item(conn, trip.name, item)

    def get_trip(self, name: str) -> Trip:
        try:
            self._require_trip(self._conn, name)
            return self._load_trip(self._conn, name)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read trip '{name}': {e}") from e

    def delete_trip(self, name: str) -> None:
        """Delete a trip; its messages and itinerary items go with it."""
        with self._transaction(f"delete trip '{name}'") as conn:
            cursor = conn.execute("DELETE FROM trips WHERE name = ?", (name,))
            if cursor.rowcount == 0:
                raise TripNotFoundError(name)

    def list_trips(self) -> list[Trip]:
        try:
            names = [row["name"] for row in self._conn.execute("SELECT name FROM trips ORDER BY rowid")]
            return [self._load_trip(self._conn, name) for name in names]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list trips: {e}") from e

    # Transcript

    def append_message(self, trip_name: str, message: Message) -> None:
        with self._transaction(f"append message to '{trip_name}'") as conn:
            self._require_trip(conn, trip_name)
            self._insert_message(conn, trip_name, message)

    # Itinerary

    def clear_itinerary_items(self, trip_name: str) -> None:
        with self._transaction(f"clear itinerary of '{trip_name}'") as conn:
            self._require_trip(conn, trip_name)
            conn.execute("DELETE FROM itinerary_items WHERE trip_name = ?", (trip_name,))

    def add_itinerary_item(self, trip_name: str, item: ItineraryItem) -> None:
        with self._transaction(f"add itinerary item to '{trip_name}'") as conn:
            self._require_trip(conn, trip_name)
            self._insert_item(conn, trip_name, item)

    def update_itinerary_item(self, trip_name: str, item_id: uuid.UUID, fields: dict[str, Any]) -> ItineraryItem:
        """
        Update some fields of one item. All fields are applied or none.

        Raises:
            ValueError: if ``fields`` names anything other than the item's editable fields
        """
        unknown = set(fields) - UPDATABLE_ITEM_FIELDS
        if unknown:
            raise ValueError(f"Cannot update itinerary item fields: {', '.join(sorted(unknown))}")

        with self._transaction(f"update itinerary item {item_id}") as conn:
            self._require_trip(conn, trip_name)
            row = conn.execute(
                "SELECT * FROM itinerary_items WHERE id = ? AND trip_name = ?",
                (str(item_id), trip_name),
            ).fetchone()
            if row is None:
                raise ItineraryItemNotFoundError(trip_name, item_id)

            current = self._row_to_item(row)
            updated = ItineraryItem.model_validate({**current.model_dump(), **fields})
            conn.execute(
                "UPDATE itinerary_items SET location_name = ?, activity = ?, start_time = ?, end_time = ? "
                "WHERE id = ?",
                (
                    updated.location_name,
                    updated.activity,
                    updated.start_time.isoformat(),
                    updated.end_time.isoformat(),
                    str(item_id),
                ),
            )
        return updated

    def delete_itinerary_item(self, trip_name: str, item_id: uuid.UUID) -> None:
        with self._transaction(f"delete itinerary item {item_id}") as conn:
            self._require_trip(conn, trip_name)
            cursor = conn.execute(
                "DELETE FROM itinerary_items WHERE id = ? AND trip_name = ?",
                (str(item_id), trip_name),
            )
            if cursor.rowcount == 0:
                raise ItineraryItemNotFoundError(trip_name, item_id)

    def replace_itinerary_items(self, trip_name: str, items: list[ItineraryItem]) -> None:
        """Clear the trip's itinerary and write ``items`` in one transaction."""
        with self._transaction(f"replace itinerary of '{trip_name}'") as conn:
            self._require_trip(conn, trip_name)
            conn.execute("DELETE FROM itinerary_items WHERE trip_name = ?", (trip_name,))
            for item in items:
                self._insert_item(conn, trip_name, item)
