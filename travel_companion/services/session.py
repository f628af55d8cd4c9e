"""
Trip Session - Drives chat turns and keeps the mirror and the store in sync.

Each turn moves IDLE -> AWAITING_REPLY -> APPLIED or FAILED. Turns for the
same trip are serialized; turns for different trips run independently.
"""
from pydantic import BaseModel, Field
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Optional
import asyncio
import logging
import threading
import uuid

from .extractor import ItineraryExtractor, build_itinerary_request
from .llm_client import ChatTransport
from .reconciler import ItineraryReconciler
from .store import TripStore
from ..config import settings
from ..errors import DuplicateNameError, TransportError, TravelCompanionError, TripNotFoundError
from ..models.itinerary import DayGroup, ItineraryItem, group_by_day
from ..models.trip import Message, MessageRole, Trip, TripRepository, create_trip

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    """Where a turn is in its request/reply cycle."""
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    APPLIED = "applied"
    FAILED = "failed"


class TurnKind(str, Enum):
    """What a turn does with the assistant's reply."""
    CONVERSATION = "conversation"  # Reply is appended to the transcript
    ITINERARY_REFRESH = "itinerary_refresh"  # Reply is parsed into the itinerary


class TurnResult(BaseModel):
    """Outcome of one turn."""
    trip_name: str
    kind: TurnKind
    state: TurnState = TurnState.IDLE
    reply: Optional[str] = None
    items: list[ItineraryItem] = Field(default_factory=list)
    error: Optional[str] = None


class TripSession:
    """
    Owns the trip mirror and coordinates it with the store and the chat transport.

    Every mutation goes to the store first; the mirror follows only when the
    store call succeeded.
    """

    def __init__(
        self,
        store: TripStore,
        transport: ChatTransport,
        trips: Optional[TripRepository] = None,
        extractor: Optional[ItineraryExtractor] = None,
        reply_timeout: Optional[float] = None,
    ):
        self.store = store
        self.transport = transport
        self.trips = trips if trips is not None else TripRepository()
        self.extractor = extractor or ItineraryExtractor()
        self.reconciler = ItineraryReconciler(store, self.trips)
        self.reply_timeout = reply_timeout if reply_timeout is not None else settings.llm_timeout_seconds

        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._active_turns: dict[str, TurnResult] = {}

    # Trips

    def load(self):
        """Rebuild the mirror from the store."""
        trips = self.store.list_trips()
        self.trips.replace_all(trips)
        logger.info(f"Loaded {len(trips)} trip(s) from the store")

    def list_trips(self) -> list[Trip]:
        return [self.trips.require(name) for name in self.trips.names()]

    def get_trip(self, name: str) -> Trip:
        return self.trips.require(name)

    def create_trip(self, name: str) -> Trip:
        """
        Create a trip seeded with the welcome message.

        Raises:
            DuplicateNameError: if the name is taken; existing trips are never overwritten
        """
        if name in self.trips:
            raise DuplicateNameError(name)

        trip = create_trip(name)
        self.store.create_trip(trip)
        self.trips.add(trip)
        return trip

    def delete_trip(self, name: str):
        """Delete a trip with its transcript and itinerary. A reply still in flight for it is discarded."""
        self.store.delete_trip(name)
        self.trips.remove(name)

        active = self._active_turns.get(name)
        if active is not None and active.state == TurnState.AWAITING_REPLY:
            self._fail(active, "Trip was deleted while awaiting a reply")

    # Turns

    @asynccontextmanager
    async def _holding(self, trip_name: str) -> AsyncIterator[None]:
        """
        Hold the trip's turn lock.

        The lock lives only while some turn holds or waits on it.
        """
        lock = self._locks.get(trip_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[trip_name] = lock
        self._lock_users[trip_name] = self._lock_users.get(trip_name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[trip_name] -= 1
            if self._lock_users[trip_name] == 0:
                del self._lock_users[trip_name]
                del self._locks[trip_name]

    async def send_message(self, trip_name: str, text: str) -> TurnResult:
        """
        Conversational turn: the user's message and the reply both join the transcript.

        Raises:
            TripNotFoundError: if the trip does not exist when the turn is requested
        """
        self.trips.require(trip_name)
        async with self._holding(trip_name):
            return await self._converse(trip_name, text)

    async def refresh_itinerary(self, trip_name: str) -> TurnResult:
        """Itinerary-refresh turn: ask for the itinerary in tag format and replace the stored one."""
        self.trips.require(trip_name)
        async with self._holding(trip_name):
            return await self._refresh(trip_name)

    async def chat(self, trip_name: str, text: str, refresh: bool = True) -> list[TurnResult]:
        """
        Send a message and, once the reply is in, refresh the itinerary.

        Both turns run under one hold of the trip's lock, so no other turn
        for the trip can slip between them. The refresh is skipped when the
        conversational turn failed.
        """
        self.trips.require(trip_name)
        async with self._holding(trip_name):
            results = [await self._converse(trip_name, text)]
            if refresh and results[0].state == TurnState.APPLIED:
                results.append(await self._refresh(trip_name))
        return results

    def _trip_for(self, turn: TurnResult) -> Optional[Trip]:
        """The turn's trip, or None with the turn FAILED when it was deleted while the turn queued."""
        try:
            return self.trips.require(turn.trip_name)
        except TripNotFoundError as e:
            self._fail(turn, str(e))
            return None

    async def _converse(self, trip_name: str, text: str) -> TurnResult:
        turn = TurnResult(trip_name=trip_name, kind=TurnKind.CONVERSATION)
        trip = self._trip_for(turn)
        if trip is None:
            return turn

        user_message = Message(role=MessageRole.USER, content=text)
        if not self._append(turn, trip, user_message):
            return turn

        reply = await self._request_reply(turn, trip, trip.to_chat_messages())
        if reply is None:
            return turn

        if self._append(turn, trip, Message(role=MessageRole.SYSTEM, content=reply)):
            turn.reply = reply
            turn.state = TurnState.APPLIED
        return turn

    async def _refresh(self, trip_name: str) -> TurnResult:
        turn = TurnResult(trip_name=trip_name, kind=TurnKind.ITINERARY_REFRESH)
        trip = self._trip_for(turn)
        if trip is None:
            return turn

        # The request prompt goes out with this turn only, never into the transcript
        request = trip.to_chat_messages() + [
            {"role": MessageRole.USER.value, "content": build_itinerary_request(trip_name)}
        ]
        reply = await self._request_reply(turn, trip, request)
        if reply is None:
            return turn

        items = self.extractor.extract(reply)
        try:
            self.reconciler.reconcile(trip_name, items)
        except TravelCompanionError as e:
            self._fail(turn, str(e))
            return turn

        turn.reply = reply
        turn.items = items
        turn.state = TurnState.APPLIED
        return turn

    async def _request_reply(self, turn: TurnResult, trip: Trip, messages: list[dict]) -> Optional[str]:
        """
        Await the assistant's reply for a turn.

        Returns None, with the turn FAILED, on transport error, on timeout, or
        when the reply is stale: the turn was failed meanwhile or the trip was
        deleted or replaced.
        """
        turn.state = TurnState.AWAITING_REPLY
        self._active_turns[turn.trip_name] = turn
        try:
            reply = await asyncio.wait_for(self.transport.chat(messages), timeout=self.reply_timeout)
        except asyncio.TimeoutError:
            self._fail(turn, f"No reply within {self.reply_timeout}s")
            return None
        except TransportError as e:
            self._fail(turn, str(e))
            return None
        finally:
            if self._active_turns.get(turn.trip_name) is turn:
                del self._active_turns[turn.trip_name]

        if turn.state != TurnState.AWAITING_REPLY or self.trips.get(turn.trip_name) is not trip:
            logger.warning(f"Discarding stale {turn.kind.value} reply for '{turn.trip_name}'")
            if turn.state == TurnState.AWAITING_REPLY:
                self._fail(turn, "Trip changed while awaiting a reply")
            return None

        return reply

    def _append(self, turn: TurnResult, trip: Trip, message: Message) -> bool:
        """Append a message to store and mirror; fail the turn if the store refuses."""
        try:
            self.store.append_message(trip.name, message)
        except TravelCompanionError as e:
            self._fail(turn, str(e))
            return False

        trip.append_message(message)
        self.trips.notify("message_appended", trip.name)
        return True

    @staticmethod
    def _fail(turn: TurnResult, error: str):
        turn.state = TurnState.FAILED
        turn.error = error
        logger.warning(f"{turn.kind.value} turn for '{turn.trip_name}' failed: {error}")

    # Itinerary

    def get_itinerary(self, trip_name: str) -> list[DayGroup]:
        """The trip's itinerary grouped by day."""
        return group_by_day(self.trips.require(trip_name).itinerary_items)

    def add_itinerary_item(
        self,
        trip_name: str,
        location_name: str,
        activity: str,
        start_time: datetime,
        end_time: datetime,
    ) -> ItineraryItem:
        """Add one item by hand."""
        trip = self.trips.require(trip_name)
        item = ItineraryItem(
            location_name=location_name,
            activity=activity,
            start_time=start_time,
            end_time=end_time,
        )
        self.store.add_itinerary_item(trip_name, item)
        trip.itinerary_items.append(item)
        self.trips.notify("itinerary_item_added", trip_name)
        return item

    def update_itinerary_item(self, trip_name: str, item_id: uuid.UUID, **fields) -> ItineraryItem:
        """Edit some fields of one item by hand."""
        trip = self.trips.require(trip_name)
        updated = self.store.update_itinerary_item(trip_name, item_id, fields)

        trip.itinerary_items = [
            updated if item.id == item_id else item
            for item in trip.itinerary_items
        ]
        self.trips.notify("itinerary_item_updated", trip_name)
        return updated

    def delete_itinerary_item(self, trip_name: str, item_id: uuid.UUID):
        """Remove one item by hand."""
        trip = self.trips.require(trip_name)
        self.store.delete_itinerary_item(trip_name, item_id)

        trip.itinerary_items = [item for item in trip.itinerary_items if item.id != item_id]
        self.trips.notify("itinerary_item_deleted", trip_name)


# Global trip session
trip_session: Optional[TripSession] = None
_trip_session_guard = threading.Lock()


def get_trip_session() -> TripSession:
    """Get or create the global trip session, loaded from the configured database."""
    global trip_session
    if trip_session is None:
        # FastAPI calls sync dependencies from its threadpool
        with _trip_session_guard:
            if trip_session is None:
                from .llm_client import LLMClient
                from .store import SQLiteTripStore

                session = TripSession(SQLiteTripStore(settings.database_path), LLMClient())
                session.load()
                trip_session = session
    return trip_session
