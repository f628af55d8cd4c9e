"""
API Routes for the travel companion.
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
import uuid

from ..errors import (
    DuplicateNameError,
    ItineraryItemNotFoundError,
    PersistenceError,
    TripNotFoundError,
)
from ..models.itinerary import DayGroup, ItineraryItem
from ..models.trip import Message, Trip
from ..services.session import TripSession, TurnResult, TurnState, get_trip_session


router = APIRouter(prefix="/api", tags=["travel-companion"])


# Request/Response Models
class CreateTripRequest(BaseModel):
    name: str = Field(..., min_length=1)


class TripListResponse(BaseModel):
    trips: list[str]


class MessagesResponse(BaseModel):
    messages: list[Message]


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    refresh_itinerary: bool = True


class ChatResponse(BaseModel):
    turns: list[TurnResult]


class ItineraryResponse(BaseModel):
    days: list[DayGroup]


class ItineraryItemRequest(BaseModel):
    location_name: str
    activity: str
    start_time: datetime
    end_time: datetime


class ItineraryItemUpdateRequest(BaseModel):
    location_name: Optional[str] = None
    activity: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


def _require_trip(session: TripSession, name: str) -> Trip:
    try:
        return session.get_trip(name)
    except TripNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# Endpoints

@router.post("/trips", response_model=Trip, status_code=status.HTTP_201_CREATED)
async def create_trip(request: CreateTripRequest, session: TripSession = Depends(get_trip_session)):
    """Create a new trip with its welcome message."""
    try:
        return session.create_trip(request.name)
    except DuplicateNameError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/trips", response_model=TripListResponse)
async def list_trips(session: TripSession = Depends(get_trip_session)):
    """List trip names."""
    return TripListResponse(trips=[trip.name for trip in session.list_trips()])


@router.get("/trips/{name}", response_model=Trip)
async def get_trip(name: str, session: TripSession = Depends(get_trip_session)):
    """Get a trip with its transcript and itinerary."""
    return _require_trip(session, name)


@router.delete("/trips/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip(name: str, session: TripSession = Depends(get_trip_session)):
    """Delete a trip, its transcript and its itinerary."""
    try:
        session.delete_trip(name)
    except TripNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/trips/{name}/messages", response_model=MessagesResponse)
async def get_messages(name: str, session: TripSession = Depends(get_trip_session)):
    """Get all chat messages for a trip, oldest first."""
    return MessagesResponse(messages=_require_trip(session, name).messages)


@router.post("/trips/{name}/chat", response_model=ChatResponse)
async def chat(name: str, request: ChatRequest, response: Response, session: TripSession = Depends(get_trip_session)):
    """Send a chat message and, unless disabled, refresh the itinerary from the conversation."""
    _require_trip(session, name)

    turns = await session.chat(name, request.message, refresh=request.refresh_itinerary)
    if turns[0].state == TurnState.FAILED:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return ChatResponse(turns=turns)


@router.post("/trips/{name}/itinerary/refresh", response_model=TurnResult)
async def refresh_itinerary(name: str, response: Response, session: TripSession = Depends(get_trip_session)):
    """Ask the assistant for the itinerary and replace the stored one."""
    _require_trip(session, name)

    turn = await session.refresh_itinerary(name)
    if turn.state == TurnState.FAILED:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return turn


@router.get("/trips/{name}/itinerary", response_model=ItineraryResponse)
async def get_itinerary(name: str, session: TripSession = Depends(get_trip_session)):
    """Get the itinerary grouped by day."""
    _require_trip(session, name)
    return ItineraryResponse(days=session.get_itinerary(name))


@router.post("/trips/{name}/itinerary", response_model=ItineraryItem, status_code=status.HTTP_201_CREATED)
async def add_itinerary_item(name: str, request: ItineraryItemRequest, session: TripSession = Depends(get_trip_session)):
    """Add an itinerary item by hand."""
    _require_trip(session, name)
    try:
        return session.add_itinerary_item(name, **request.model_dump())
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.patch("/trips/{name}/itinerary/{item_id}", response_model=ItineraryItem)
async def update_itinerary_item(
    name: str,
    item_id: uuid.UUID,
    request: ItineraryItemUpdateRequest,
    session: TripSession = Depends(get_trip_session),
):
    """Edit an itinerary item by hand."""
    try:
        return session.update_itinerary_item(name, item_id, **request.model_dump(exclude_none=True))
    except (TripNotFoundError, ItineraryItemNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/trips/{name}/itinerary/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_itinerary_item(name: str, item_id: uuid.UUID, session: TripSession = Depends(get_trip_session)):
    """Remove an itinerary item."""
    try:
        session.delete_itinerary_item(name, item_id)
    except (TripNotFoundError, ItineraryItemNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
