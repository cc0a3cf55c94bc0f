"""Canonical event definitions and category matching."""
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

import requests

from processor.dates import (
    expand_window,
    format_event_datetime,
    parse_event_datetime,
    ranges_overlap,
)
from processor.duplicate_detector import normalize_title
from processor.models import (
    CalendarEvent,
    CanonicalCalendar,
    CanonicalEventDefinition,
)

logger = logging.getLogger(__name__)

DEFAULT_CANONICAL_EVENTS_PATH = Path(__file__).with_name('canonical_events.json')
DEFAULT_CATEGORY_KEYWORDS = ('holiday', 'prekinder', 'year')
CONFLICT_WINDOW_DAYS = 7


@dataclass
class ConflictScan:
    """Events in a definition's window, split by how they relate to it."""
    conflicts: List[CalendarEvent] = field(default_factory=list)
    ambiguous: List[CalendarEvent] = field(default_factory=list)


def event_categories(event: CalendarEvent, keywords: Iterable[str]) -> Set[str]:
    """
    Resolve the categories an event belongs to.

    An explicit category tag wins. Untagged events fall back to the
    keywords found among the words of their normalized title.
    """
    if event.category:
        return {event.category}
    words = set(normalize_title(event.title).split())
    return {keyword for keyword in keywords if keyword in words}


def definition_window(definition: CanonicalEventDefinition,
                      days: int = CONFLICT_WINDOW_DAYS):
    start = parse_event_datetime(definition.start_date)
    end = parse_event_datetime(definition.end_date)
    return expand_window(start, end, days)


def scan_conflicts(
    events: Iterable[CalendarEvent],
    definition: CanonicalEventDefinition,
    keywords: Sequence[str] = DEFAULT_CATEGORY_KEYWORDS,
    window_days: int = CONFLICT_WINDOW_DAYS
) -> ConflictScan:
    """
    Classify events against one canonical definition.

    Args:
        events: Candidate events (typically the store's window query)
        definition: Canonical definition to compare against
        keywords: Category keywords for untagged events
        window_days: Days the definition's range is expanded by

    Returns:
        ConflictScan with the conflicting events and the events whose
        title matches several categories including the definition's
    """
    window_start, window_end = definition_window(definition, window_days)
    scan = ConflictScan()

    for event in events:
        categories = event_categories(event, keywords)
        if definition.category not in categories:
            continue

        start = parse_event_datetime(event.start_date)
        if start is None:
            continue
        end = parse_event_datetime(event.end_date) or start
        if not ranges_overlap(start, end, window_start, window_end):
            continue

        if len(categories) > 1:
            scan.ambiguous.append(event)
        else:
            scan.conflicts.append(event)

    return scan


def dates_match(event: CalendarEvent, definition: CanonicalEventDefinition) -> bool:
    return (
        parse_event_datetime(event.start_date) ==
        parse_event_datetime(definition.start_date) and
        parse_event_datetime(event.end_date) ==
        parse_event_datetime(definition.end_date)
    )


def is_exact_match(event: CalendarEvent, definition: CanonicalEventDefinition) -> bool:
    """
    Check whether a stored event already equals its canonical definition.

    Titles are compared after normalization; dates, all-day flag and
    assignee must be identical.
    """
    return (
        normalize_title(event.title) == normalize_title(definition.title) and
        dates_match(event, definition) and
        bool(event.all_day) == bool(definition.all_day) and
        event.assigned_to == definition.assigned_to
    )


def load_canonical_calendar(
    source: Optional[str] = None,
    keywords: Sequence[str] = DEFAULT_CATEGORY_KEYWORDS,
    timeout: int = 30
) -> CanonicalCalendar:
    """
    Load the versioned canonical definition document.

    Args:
        source: File path or http(s) URL; the bundled document when None
        keywords: Keywords used to derive a missing category
        timeout: HTTP timeout in seconds for URL sources

    Returns:
        CanonicalCalendar

    Raises:
        ValueError: If the document is missing fields or malformed
        requests.RequestException: If a URL source cannot be fetched
    """
    if source and source.startswith(('http://', 'https://')):
        document = _fetch_canonical_document(source, timeout)
    else:
        path = Path(source) if source else DEFAULT_CANONICAL_EVENTS_PATH
        try:
            document = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Cannot read canonical events from {path}: {e}") from e

    calendar = parse_canonical_document(document, keywords)
    logger.info(
        f"Loaded {len(calendar.definitions)} canonical definitions "
        f"(version {calendar.version})"
    )
    return calendar


def parse_canonical_document(document: dict,
                             keywords: Sequence[str] = DEFAULT_CATEGORY_KEYWORDS
                             ) -> CanonicalCalendar:
    if not isinstance(document, dict) or 'definitions' not in document:
        raise ValueError("Canonical document must contain 'definitions'")

    definitions = []
    seen_ids = set()
    for raw in document['definitions']:
        try:
            definition = CanonicalEventDefinition(
                id=raw['id'],
                title=raw['title'],
                start_date=format_event_datetime(raw['start_date']),
                end_date=format_event_datetime(raw['end_date']),
                all_day=bool(raw.get('all_day', False)),
                assigned_to=raw['assigned_to'],
                description=raw.get('description', ''),
                source=raw.get('source', ''),
                category=raw.get('category') or '',
                location=raw.get('location')
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid canonical definition {raw!r}: {e}") from e

        if definition.id in seen_ids:
            raise ValueError(f"Duplicate canonical definition id: {definition.id}")
        seen_ids.add(definition.id)

        if not definition.category:
            words = set(normalize_title(definition.title).split())
            matched = [keyword for keyword in keywords if keyword in words]
            if len(matched) != 1:
                raise ValueError(
                    f"Cannot derive a single category for '{definition.title}' "
                    f"(matched: {matched})"
                )
            definition.category = matched[0]

        if parse_event_datetime(definition.end_date) < parse_event_datetime(definition.start_date):
            raise ValueError(f"Canonical definition {definition.id} ends before it starts")

        definitions.append(definition)

    return CanonicalCalendar(
        version=str(document.get('version', 'unversioned')),
        definitions=definitions
    )


def _fetch_canonical_document(url: str, timeout: int) -> dict:
    """
    Fetch the canonical document with retry logic.

    Raises:
        requests.RequestException: If all retry attempts fail
    """
    max_retries = 3
    base_delay = 1  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(
                f"Fetching canonical events (attempt {attempt + 1}/{max_retries})"
            )
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
            return response.json()

        except requests.RequestException as e:
            if attempt < max_retries - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                    f"Retrying in {delay} seconds..."
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"All {max_retries} retry attempts failed. Last error: {e}"
                )
                raise
