"""
Mock LLM Client - Offline stand-in for the chat transport.

Conversational turns get a short acknowledgement. Itinerary requests are
answered by restating, in tag format, every tagged record the user has
already typed into the transcript, so the whole turn cycle runs without a
network.
"""
from typing import Optional
import logging

from .extractor import END_TAG, START_TAG, RawRecord, scan_records

logger = logging.getLogger(__name__)


ITINERARY_REQUEST_MARKER = "Show me my itinerary for"


def format_record(record: RawRecord) -> str:
    """Render one record in the itinerary tag format."""
    return (
        f"{START_TAG}Activity: {record.activity}; Location: {record.location}; "
        f"Start Time: {record.start}; End Time: {record.end}{END_TAG}"
    )


class MockLLMClient:
    """Deterministic chat client used when no provider is configured."""

    def __init__(self):
        self.model = "mock-itinerary"

    async def chat(self, messages: list[dict], temperature: Optional[float] = None, max_tokens: Optional[int] = None) -> str:
        last = messages[-1]["content"] if messages else ""

        if ITINERARY_REQUEST_MARKER in last:
            records = [
                record
                for msg in messages[:-1]
                if msg["role"] == "user"
                for record in scan_records(msg["content"])
            ]
            logger.debug(f"Mock itinerary reply with {len(records)} record(s)")
            if not records:
                return "Your itinerary is empty so far."
            return "Here is your itinerary: " + "".join(format_record(r) for r in records)

        return (
            "Got it! I've noted that. Tell me about any other activities you're planning, "
            "including the start date and time."
        )
