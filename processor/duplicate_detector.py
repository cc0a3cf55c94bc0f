"""Duplicate detection over stored calendar events."""
import logging
import re
from collections import defaultdict
from typing import Dict, List, Tuple

from processor.dates import parse_event_datetime
from processor.models import (
    CalendarEvent,
    DuplicateEventRef,
    DuplicateGroup,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

NO_DATE_KEY = 'no-date'

_PUNCTUATION_RE = re.compile(r'[^\w\s]')
_WHITESPACE_RE = re.compile(r'\s+')


def normalize_title(title) -> str:
    """
    Normalize a title for comparison.

    Lowercases, strips punctuation and collapses whitespace, so
    "Holiday!" and "  holiday " compare equal.
    """
    if not title:
        return ''
    normalized = _PUNCTUATION_RE.sub('', str(title).lower())
    return _WHITESPACE_RE.sub(' ', normalized).strip()


class DuplicateDetector:
    """Groups events by normalized title and calendar day."""

    def find_duplicates(
        self, events: List[CalendarEvent]
    ) -> Tuple[List[DuplicateGroup], List[ValidationWarning]]:
        """
        Find clusters of events that look like the same entry.

        Args:
            events: Events to inspect, in any order

        Returns:
            Tuple of (duplicate groups, one POTENTIAL_DUPLICATE warning per
            clustered event). Both lists are sorted so the result does not
            depend on the input order.
        """
        title_groups: Dict[str, List[CalendarEvent]] = defaultdict(list)
        for event in events:
            key = normalize_title(event.title)
            if not key:
                continue
            title_groups[key].append(event)

        duplicates = []
        warnings = []

        for normalized_title in sorted(title_groups):
            group = title_groups[normalized_title]
            if len(group) < 2:
                continue

            day_groups: Dict[str, List[CalendarEvent]] = defaultdict(list)
            for event in group:
                day_groups[self._day_key(event)].append(event)

            for day_key in sorted(day_groups):
                members = sorted(day_groups[day_key], key=lambda e: e.event_id)
                if len(members) < 2:
                    continue

                duplicates.append(DuplicateGroup(
                    events=[
                        DuplicateEventRef(
                            id=member.event_id,
                            title=member.title,
                            date=day_key if day_key != NO_DATE_KEY else 'No date'
                        )
                        for member in members
                    ],
                    reason=(
                        f'Multiple events with title "{normalized_title}" '
                        f'on {day_key}'
                    )
                ))

                for member in members:
                    warnings.append(ValidationWarning(
                        event_id=member.event_id,
                        event_title=member.title,
                        warning_type='POTENTIAL_DUPLICATE',
                        message=(
                            'This event may be a duplicate of other events '
                            'with similar title and date'
                        )
                    ))

        if duplicates:
            logger.info(f"Found {len(duplicates)} duplicate clusters")
        return duplicates, warnings

    @staticmethod
    def _day_key(event: CalendarEvent) -> str:
        start = parse_event_datetime(event.start_date)
        if start is None:
            return NO_DATE_KEY
        return start.date().isoformat()
