"""Services for the travel companion."""
from .llm_client import LLMClient
from .extractor import ItineraryExtractor
from .reconciler import ItineraryReconciler
from .session import TripSession
from .store import SQLiteTripStore, TripStore

__all__ = [
    "LLMClient",
    "ItineraryExtractor",
    "ItineraryReconciler",
    "TripSession",
    "SQLiteTripStore",
    "TripStore",
]
