"""Process-wide cache of calendar query results."""
import logging
import threading
from typing import Dict, List, Optional, Tuple

from processor.dates import format_event_datetime
from processor.models import CalendarEvent

logger = logging.getLogger(__name__)

CALENDAR_SCOPE = 'calendar'


class CalendarReadCache:
    """
    Memoizes event store range queries per scope.

    Invalidation is unconditional and unversioned: the last call wins.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str, str], List[CalendarEvent]] = {}
        self._lock = threading.Lock()

    def query(self, store, start_date, end_date,
              scope: str = CALENDAR_SCOPE) -> List[CalendarEvent]:
        """Return the store's events for a range, memoized per scope."""
        key = (scope, format_event_datetime(start_date), format_event_datetime(end_date))
        with self._lock:
            if key in self._entries:
                return list(self._entries[key])

        events = store.query(start_date, end_date)
        with self._lock:
            self._entries[key] = list(events)
        return events

    def invalidate(self, scope: Optional[str] = None) -> int:
        """
        Drop cached results.

        Args:
            scope: Scope to drop; every entry when None

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = [key for key in self._entries if scope is None or key[0] == scope]
            for key in keys:
                del self._entries[key]

        logger.info(
            "read_cache_invalidated",
            extra={'scope': scope or 'all', 'entries_cleared': len(keys)}
        )
        return len(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_read_cache = CalendarReadCache()


def get_read_cache() -> CalendarReadCache:
    """Return the process-wide cache instance."""
    return _read_cache
