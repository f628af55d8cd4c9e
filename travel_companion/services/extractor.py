"""
Itinerary Extractor.
Turns an assistant reply written in the itinerary tag format into itinerary items.

    [start]Activity: <activity>; Location: <city>; Start Time: <time>; End Time: <time>|TBD[end]

Times look like ``9:00 PM on July 21, 2022``. Records that do not fit the
format, or whose times do not parse, are dropped and scanning moves on.
"""
from typing import Iterator, NamedTuple, Optional
from datetime import datetime, timedelta
import logging

from ..models.itinerary import ItineraryItem

logger = logging.getLogger(__name__)


START_TAG = "[start]"
END_TAG = "[end]"
FIRST_LABEL = "Activity: "
# Remaining labels, in the order they must appear after the first one
FIELD_SEPARATORS = ("; Location: ", "; Start Time: ", "; End Time: ")

TIME_FORMATS = (
    "%I:%M %p on %B %d, %Y",  # 9:00 PM on July 21, 2022
    "%I:%M %p on %b %d, %Y",  # 9:00 PM on Jul 21, 2022
)
TBD = "TBD"
DEFAULT_DURATION = timedelta(hours=2)


ITINERARY_REQUEST_TEMPLATE = (
    "What is the end date? If no end time, explicitly state 'End Time: TBD' instead of leaving it empty. "
    "Show me my itinerary for {trip_name}. "
    "Please format it with these tags: "
    "[start]Activity: [activity]; Location: [location]; Start Time: [start_time]; End Time: [end_time][end]. "
    "Specify the location only by city name, not full address. "
    "Format the dates like this: h:mm AM/PM on Month D, YYYY. "
    "Here are some examples: "
    "[start]Activity: Dinner with family; Location: Boise; Start Time: 9:00 PM on July 21, 2022; End Time: TBD[end]"
    "[start]Activity: Dinner with uncle; Location: Boise; Start Time: 5:00 PM on July 22, 2022; End Time: TBD[end]"
)


class RawRecord(NamedTuple):
    """The four fields of one tagged record, verbatim."""
    activity: str
    location: str
    start: str
    end: str


def build_itinerary_request(trip_name: str) -> str:
    """The internal prompt asking the assistant to restate the itinerary in tag format."""
    return ITINERARY_REQUEST_TEMPLATE.format(trip_name=trip_name)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a tag-format time as local wall-clock time. Returns None if it does not parse."""
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _split_fields(body: str) -> Optional[RawRecord]:
    """Split a record body on the fixed labels. Each separator is the first one after the previous."""
    if not body.startswith(FIRST_LABEL):
        return None

    values = []
    cursor = len(FIRST_LABEL)
    for separator in FIELD_SEPARATORS:
        index = body.find(separator, cursor)
        if index == -1:
            return None
        values.append(body[cursor:index])
        cursor = index + len(separator)
    values.append(body[cursor:])

    return RawRecord(*values)


def scan_records(text: str) -> Iterator[RawRecord]:
    """
    Yield every well-formed tagged record in order of appearance.

    A record runs from the last ``[start]`` before an ``[end]`` up to that
    ``[end]``; scanning resumes after it, so records never overlap. Records
    may not span a line break.
    """
    pos = 0
    while True:
        start = text.find(START_TAG, pos)
        if start == -1:
            return
        end = text.find(END_TAG, start + len(START_TAG))
        if end == -1:
            return

        start = text.rfind(START_TAG, start, end)
        body = text[start + len(START_TAG):end]
        pos = end + len(END_TAG)

        if "\n" in body or "\r" in body:
            logger.debug(f"Skipping multi-line record at offset {start}")
            continue

        record = _split_fields(body)
        if record is None:
            logger.debug(f"Skipping malformed record at offset {start}: {body!r}")
            continue

        yield record


class ItineraryExtractor:
    """Extracts itinerary items from an assistant reply."""

    def __init__(self, default_duration: timedelta = DEFAULT_DURATION):
        self.default_duration = default_duration

    def extract(self, text: str) -> list[ItineraryItem]:
        """
        Extract itinerary items from one assistant reply.

        Args:
            text: The assistant's reply

        Returns:
            Items in order of appearance, with fresh ids. Duplicated records
            yield duplicated items.
        """
        items = []
        skipped = 0

        for record in scan_records(text):
            item = self._to_item(record)
            if item is None:
                skipped += 1
                continue
            items.append(item)

        if skipped:
            logger.debug(f"Dropped {skipped} record(s) with unparseable times")
        return items

    def _to_item(self, record: RawRecord) -> Optional[ItineraryItem]:
        start_time = parse_timestamp(record.start)
        if start_time is None:
            return None

        if record.end == TBD:
            end_time = start_time + self.default_duration
        else:
            end_time = parse_timestamp(record.end)
            if end_time is None:
                return None

        return ItineraryItem(
            location_name=record.location,
            activity=record.activity,
            start_time=start_time,
            end_time=end_time,
        )
