"""Validator for stored calendar events."""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from processor.canonical import (
    DEFAULT_CATEGORY_KEYWORDS,
    dates_match,
    scan_conflicts,
)
from processor.dates import parse_event_datetime
from processor.duplicate_detector import DuplicateDetector, normalize_title
from processor.models import (
    CalendarEvent,
    CanonicalEventDefinition,
    ValidationError,
    ValidationResult,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

DEFAULT_FAMILY_MEMBERS = ('gonzalo', 'mpaz', 'borja', 'melody')

# Marks errors about a canonical event that has no stored counterpart
CANONICAL_TITLE_PREFIX = 'Canonical event: '


class CalendarValidator:
    """Applies structural and business rules to every stored event."""

    EARLIEST_USUAL_HOUR = 6
    LATEST_USUAL_HOUR = 23
    MAX_YEARS_AHEAD = 1

    def __init__(
        self,
        store,
        canonical_definitions: Sequence[CanonicalEventDefinition] = (),
        family_members: Sequence[str] = DEFAULT_FAMILY_MEMBERS,
        category_keywords: Sequence[str] = DEFAULT_CATEGORY_KEYWORDS,
        duplicate_detector: Optional[DuplicateDetector] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the validator.

        Args:
            store: Event store exposing get_all_events()
            canonical_definitions: Definitions every calendar must contain
            family_members: Allowed values for assigned_to
            category_keywords: Keywords used to categorize untagged events
            duplicate_detector: Detector instance (a new one when None)
            clock: Returns the current time; used for far-future checks
        """
        self.store = store
        self.canonical_definitions = list(canonical_definitions)
        self.family_members = tuple(family_members)
        self.category_keywords = tuple(category_keywords)
        self.duplicate_detector = duplicate_detector or DuplicateDetector()
        self.clock = clock

    def validate_all_events(self) -> ValidationResult:
        """
        Fetch every event ordered by start date and validate it.

        Returns:
            ValidationResult for the whole calendar

        Raises:
            Exception: Whatever the store raises when it cannot be read
        """
        events = self.store.get_all_events()
        return self.validate_events(events)

    def validate_events(self, events: List[CalendarEvent]) -> ValidationResult:
        """
        Validate an already fetched list of events.

        Args:
            events: Events to validate

        Returns:
            ValidationResult; is_valid is True when no errors were found
        """
        errors: List[ValidationError] = []
        warnings: List[ValidationWarning] = []

        for event in events:
            self._validate_event(event, errors, warnings)

        duplicates, duplicate_warnings = self.duplicate_detector.find_duplicates(events)
        warnings.extend(duplicate_warnings)

        self._validate_against_canonical(events, errors)

        result = ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            event_count=len(events),
            duplicates=duplicates
        )

        logger.info(
            f"Validated {result.event_count} events: {len(errors)} errors, "
            f"{len(warnings)} warnings, {len(duplicates)} duplicate clusters"
        )
        return result

    def _validate_event(
        self,
        event: CalendarEvent,
        errors: List[ValidationError],
        warnings: List[ValidationWarning]
    ) -> None:
        title = event.title or 'Untitled'

        if not event.title or not event.title.strip():
            errors.append(ValidationError(
                event_id=event.event_id,
                event_title=title,
                error_type='MISSING_TITLE',
                message='Event is missing a title',
                severity='high'
            ))
        elif not normalize_title(event.title):
            # Punctuation only; duplicate detection skips these too
            errors.append(ValidationError(
                event_id=event.event_id,
                event_title=title,
                error_type='MISSING_TITLE',
                message=f'Event title has no letters or digits: {event.title!r}',
                severity='high'
            ))

        start = parse_event_datetime(event.start_date)
        if event.start_date is None or event.start_date == '':
            errors.append(ValidationError(
                event_id=event.event_id,
                event_title=title,
                error_type='MISSING_DATE',
                message='Event is missing start date',
                severity='high'
            ))
        elif start is None:
            errors.append(ValidationError(
                event_id=event.event_id,
                event_title=title,
                error_type='INVALID_DATE',
                message=f'Event has invalid start date: {event.start_date}',
                severity='high'
            ))
        else:
            end = parse_event_datetime(event.end_date)
            if end is not None and end < start:
                errors.append(ValidationError(
                    event_id=event.event_id,
                    event_title=title,
                    error_type='INVALID_DATE',
                    message=f'Event ends ({event.end_date}) before it starts ({event.start_date})',
                    severity='high'
                ))

            if start.year > self.clock().year + self.MAX_YEARS_AHEAD:
                warnings.append(ValidationWarning(
                    event_id=event.event_id,
                    event_title=title,
                    warning_type='FAR_FUTURE_DATE',
                    message=(
                        f'Event is scheduled for {start.year}, which seems '
                        f'unusually far in the future'
                    )
                ))

            if not event.all_day and not (
                self.EARLIEST_USUAL_HOUR <= start.hour < self.LATEST_USUAL_HOUR
            ):
                warnings.append(ValidationWarning(
                    event_id=event.event_id,
                    event_title=title,
                    warning_type='UNUSUAL_TIME',
                    message=f'Event starts at an unusual time: {start.strftime("%H:%M")}'
                ))

        if event.assigned_to and event.assigned_to not in self.family_members:
            errors.append(ValidationError(
                event_id=event.event_id,
                event_title=title,
                error_type='INVALID_ASSIGNED_TO',
                message=(
                    f'Invalid assignedTo value: {event.assigned_to}. '
                    f'Must be one of: {", ".join(self.family_members)}'
                ),
                severity='medium'
            ))

    def _validate_against_canonical(
        self,
        events: List[CalendarEvent],
        errors: List[ValidationError]
    ) -> None:
        for definition in self.canonical_definitions:
            scan = scan_conflicts(events, definition, self.category_keywords)

            # No stored event at all, keyed by the definition rather than an event
            if not scan.conflicts and not scan.ambiguous:
                errors.append(ValidationError(
                    event_id=definition.id,
                    event_title=f'{CANONICAL_TITLE_PREFIX}{definition.title}',
                    error_type='MISSING_DATE',
                    message=(
                        f'Canonical event missing from calendar: no event for '
                        f'"{definition.title}" (definition {definition.id}) '
                        f'expected on {definition.start_date}'
                    ),
                    severity='high'
                ))
                continue

            for event in scan.conflicts:
                if dates_match(event, definition):
                    continue
                errors.append(ValidationError(
                    event_id=event.event_id,
                    event_title=event.title,
                    error_type='INVALID_DATE',
                    message=(
                        f'{definition.title} should be on {definition.start_date}, '
                        f'but found on {event.start_date}'
                    ),
                    severity='high'
                ))
