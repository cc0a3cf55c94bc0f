"""Reconciles stored events against canonical definitions."""
import logging
import threading
from typing import Any, Dict, List, Sequence, Tuple

from processor.canonical import (
    CONFLICT_WINDOW_DAYS,
    DEFAULT_CATEGORY_KEYWORDS,
    definition_window,
    is_exact_match,
    scan_conflicts,
)
from processor.models import (
    CalendarEvent,
    CanonicalEventDefinition,
    ConflictResolution,
)
from storage.intent_log import PHASE_CREATING, PHASE_DELETING

logger = logging.getLogger(__name__)

STRATEGY_KEEP_EXISTING = 'keep_existing'
STRATEGY_USE_CANONICAL = 'use_canonical'
STRATEGY_MANUAL = 'manual'


def get_event_color(title: str) -> str:
    """Pick a display colour from the event title."""
    title_lower = title.lower()

    if 'holiday' in title_lower:
        return '#ef4444'
    if 'meeting' in title_lower or 'academic' in title_lower:
        return '#8b5cf6'
    if 'school' in title_lower or 'education' in title_lower:
        return '#3b82f6'
    return '#10b981'


class CanonicalReconciler:
    """
    Makes the event store agree with a list of canonical definitions.

    Definitions are reconciled one at a time under the reentrant ``lock``; two
    definitions with overlapping windows must never write concurrently.
    """

    def __init__(
        self,
        store,
        definitions: Sequence[CanonicalEventDefinition],
        intent_log=None,
        category_keywords: Sequence[str] = DEFAULT_CATEGORY_KEYWORDS,
        sync_actor: str = 'calendar-sync',
        window_days: int = CONFLICT_WINDOW_DAYS
    ):
        """
        Initialize the reconciler.

        Args:
            store: Event store (create/update/delete/query)
            definitions: Canonical definitions, reconciled in this order
            intent_log: Optional log for two-phase replacements
            category_keywords: Keywords used to categorize untagged events
            sync_actor: Value written to created_by on created events
            window_days: Days each definition's range is expanded by
        """
        self.store = store
        self.definitions = list(definitions)
        self.intent_log = intent_log
        self.category_keywords = tuple(category_keywords)
        self.sync_actor = sync_actor
        self.window_days = window_days
        self.lock = threading.RLock()

    def reconcile(self, definition: CanonicalEventDefinition) -> ConflictResolution:
        """
        Reconcile a single canonical definition.

        Returns:
            ConflictResolution describing the strategy and writes made

        Raises:
            Exception: Whatever the store raises; earlier writes are kept
        """
        with self.lock:
            resolution = self._reconcile(definition)

        logger.info(
            f"{definition.title}: {resolution.action}",
            extra={
                'definition_id': definition.id,
                'strategy': resolution.strategy,
                'writes': resolution.writes
            }
        )
        return resolution

    def reconcile_all(self) -> Tuple[List[ConflictResolution], List[str]]:
        """
        Reconcile every definition in order under a single lock hold.

        A definition that fails is logged and recorded; the remaining
        definitions are still reconciled.

        Returns:
            Tuple of (resolutions of the definitions that succeeded,
            one error message per definition that failed)
        """
        resolutions = []
        errors = []

        with self.lock:
            for definition in self.definitions:
                try:
                    resolutions.append(self.reconcile(definition))
                except Exception as e:
                    error_msg = f"Failed to process {definition.title}: {e}"
                    logger.error(
                        error_msg,
                        extra={
                            'definition_id': definition.id,
                            'error_type': type(e).__name__
                        },
                        exc_info=True
                    )
                    errors.append(error_msg)

        return resolutions, errors

    def resume_pending(self) -> List[ConflictResolution]:
        """
        Finish replacements interrupted between delete and create.

        Returns:
            One resolution per resumed intent
        """
        if self.intent_log is None:
            return []

        by_id = {definition.id: definition for definition in self.definitions}
        resolutions = []

        with self.lock:
            for intent in self.intent_log.pending():
                definition = by_id.get(intent.definition_id)
                if definition is None:
                    logger.warning(
                        f"Dropping intent for unknown definition {intent.definition_id}"
                    )
                    self.intent_log.clear(intent.definition_id)
                    continue

                logger.warning(
                    f"Resuming interrupted replacement for {definition.id} "
                    f"(phase {intent.phase})"
                )
                deleted = 0
                if intent.phase == PHASE_DELETING:
                    for event_id in intent.event_ids:
                        self.store.delete(event_id)
                        deleted += 1

                resolution = self._reconcile(definition)
                resolution.deleted += deleted
                self.intent_log.clear(definition.id)
                resolutions.append(resolution)

        return resolutions

    def _reconcile(self, definition: CanonicalEventDefinition) -> ConflictResolution:
        window_start, window_end = definition_window(definition, self.window_days)
        existing = self.store.query(window_start, window_end)
        scan = scan_conflicts(
            existing, definition, self.category_keywords, self.window_days
        )

        if scan.ambiguous:
            flagged = sorted(event.event_id for event in scan.ambiguous)
            return ConflictResolution(
                definition_id=definition.id,
                strategy=STRATEGY_MANUAL,
                reasoning=(
                    f'{len(flagged)} events match several categories including '
                    f'"{definition.category}"'
                ),
                action='Flagged for manual review',
                flagged_event_ids=flagged
            )

        conflicts = scan.conflicts

        if not conflicts:
            self._create_canonical(definition)
            return ConflictResolution(
                definition_id=definition.id,
                strategy=STRATEGY_USE_CANONICAL,
                reasoning='No existing events found, created canonical event',
                action='Created new event',
                created=1
            )

        if len(conflicts) == 1:
            conflict = conflicts[0]
            if is_exact_match(conflict, definition):
                return ConflictResolution(
                    definition_id=definition.id,
                    strategy=STRATEGY_KEEP_EXISTING,
                    reasoning='Existing event matches canonical event exactly',
                    action='No changes needed'
                )

            self.store.update(conflict.event_id, self._canonical_fields(definition))
            return ConflictResolution(
                definition_id=definition.id,
                strategy=STRATEGY_USE_CANONICAL,
                reasoning='Updated existing event to match canonical source',
                action='Updated existing event',
                updated=1
            )

        self._replace(definition, conflicts)
        return ConflictResolution(
            definition_id=definition.id,
            strategy=STRATEGY_USE_CANONICAL,
            reasoning=(
                f'Removed {len(conflicts)} conflicting events and created '
                f'canonical event'
            ),
            action=f'Replaced {len(conflicts)} events',
            created=1,
            deleted=len(conflicts)
        )

    def _replace(self, definition: CanonicalEventDefinition,
                 conflicts: List[CalendarEvent]) -> None:
        # The intent stays recorded until the canonical event exists again
        event_ids = [conflict.event_id for conflict in conflicts]
        if self.intent_log is not None:
            self.intent_log.record(definition.id, event_ids)

        for event_id in event_ids:
            self.store.delete(event_id)

        if self.intent_log is not None:
            self.intent_log.mark_phase(definition.id, PHASE_CREATING)

        self._create_canonical(definition)

        if self.intent_log is not None:
            self.intent_log.clear(definition.id)

    def _create_canonical(self, definition: CanonicalEventDefinition) -> str:
        data = self._canonical_fields(definition)
        data.update({
            'color': get_event_color(definition.title),
            'created_by': self.sync_actor,
            'recurring': 'none',
        })
        return self.store.create(data)

    @staticmethod
    def _canonical_fields(definition: CanonicalEventDefinition) -> Dict[str, Any]:
        return {
            'title': definition.title,
            'description': definition.description,
            'start_date': definition.start_date,
            'end_date': definition.end_date,
            'all_day': definition.all_day,
            'assigned_to': definition.assigned_to,
            'category': definition.category,
        }
