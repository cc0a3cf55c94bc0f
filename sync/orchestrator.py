"""Sequences validation, reconciliation and cache invalidation."""
import logging
import time

from processor.models import HealthCheckResult, SyncResult, ValidationResult
from storage.read_cache import CALENDAR_SCOPE
from sync.report import format_status_report

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Runs one synchronization pass against the canonical source.

    Holds no state between calls; every invocation validates, reconciles
    and re-validates from scratch.
    """

    def __init__(self, validator, reconciler, read_cache):
        """
        Args:
            validator: CalendarValidator
            reconciler: CanonicalReconciler
            read_cache: Anything with invalidate(scope)
        """
        self.validator = validator
        self.reconciler = reconciler
        self.read_cache = read_cache

    def sync_with_canonical_source(self) -> SyncResult:
        """
        Synchronize stored events with the canonical definitions.

        Returns:
            SyncResult; success is False when any definition failed or the
            store could not be read
        """
        start_time = time.time()
        logger.info("Starting event synchronization with canonical source")

        try:
            resumed = self.reconciler.resume_pending()

            validation_result = self.validator.validate_all_events()

            if (validation_result.is_valid and not validation_result.duplicates
                    and not resumed):
                logger.info("All events are already synchronized")
                return SyncResult(
                    success=True,
                    message='All events are already synchronized with canonical source',
                    events_processed=validation_result.event_count,
                    errors=[],
                    warnings=[],
                    validation_result=validation_result
                )

            reconciled, errors = self.reconciler.reconcile_all()
            events_processed = len(reconciled)
            resolutions = list(resumed) + reconciled
            warnings = [
                f"{resolution.definition_id}: events "
                f"{', '.join(resolution.flagged_event_ids)} match "
                f"several categories and need manual review"
                for resolution in reconciled
                if resolution.flagged_event_ids
            ]

            self.read_cache.invalidate(CALENDAR_SCOPE)

            post_sync_validation = self.validator.validate_all_events()

            result = SyncResult(
                success=not errors,
                message=(
                    f'Successfully synchronized {events_processed} events with '
                    f'canonical source'
                    if not errors else
                    f'Synchronization completed with {len(errors)} errors'
                ),
                events_processed=events_processed,
                errors=errors,
                warnings=warnings,
                validation_result=post_sync_validation,
                added=sum(r.created for r in resolutions),
                updated=sum(r.updated for r in resolutions),
                deleted=sum(r.deleted for r in resolutions),
                resolutions=resolutions
            )

            logger.info(
                "Synchronization completed" if result.success
                else "Synchronization completed with issues",
                extra={
                    'duration_seconds': round(time.time() - start_time, 2),
                    'events_added': result.added,
                    'events_updated': result.updated,
                    'events_deleted': result.deleted,
                    'errors': errors
                }
            )
            return result

        except Exception as e:
            logger.error(
                f"Event synchronization failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            # A failure may land between writes
            self.read_cache.invalidate(CALENDAR_SCOPE)
            return SyncResult(
                success=False,
                message=f'Synchronization failed: {e}',
                events_processed=0,
                errors=[str(e)],
                warnings=[]
            )

    def perform_health_check(self) -> HealthCheckResult:
        """
        Summarize calendar health from a fresh validation.

        Returns:
            HealthCheckResult; healthy only with zero errors, warnings and
            duplicates
        """
        try:
            validation_result = self.validator.validate_all_events()
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return HealthCheckResult(
                is_healthy=False,
                issues=[f'Health check failed: {e}'],
                recommendations=['Fix underlying system issues and retry health check'],
                validation_result=ValidationResult(
                    is_valid=False,
                    errors=[],
                    warnings=[],
                    event_count=0,
                    duplicates=[]
                )
            )

        issues = []
        recommendations = []

        if validation_result.errors:
            issues.append(f'{len(validation_result.errors)} validation errors found')
            recommendations.append('Run event synchronization to fix validation errors')

        if validation_result.duplicates:
            issues.append(f'{len(validation_result.duplicates)} duplicate events found')
            recommendations.append('Remove duplicate events to avoid confusion')

        if validation_result.warnings:
            issues.append(f'{len(validation_result.warnings)} warnings found')
            recommendations.append('Review warnings for potential issues')

        is_healthy = not issues
        if is_healthy:
            recommendations.append('Calendar is healthy! Consider regular validation checks.')

        return HealthCheckResult(
            is_healthy=is_healthy,
            issues=issues,
            recommendations=recommendations,
            validation_result=validation_result
        )

    def get_sync_status_report(self) -> str:
        return format_status_report(self.perform_health_check())
