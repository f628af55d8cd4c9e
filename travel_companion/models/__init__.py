"""Data models for the travel companion."""
from .itinerary import ItineraryItem, DayGroup, group_by_day
from .trip import Trip, Message, MessageRole, TripRepository, create_trip, WELCOME_MESSAGE

__all__ = [
    "ItineraryItem",
    "DayGroup",
    "group_by_day",
    "Trip",
    "Message",
    "MessageRole",
    "TripRepository",
    "create_trip",
    "WELCOME_MESSAGE",
]
