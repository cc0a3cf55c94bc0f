"""Plain-text reports for validation and sync status."""
from processor.models import HealthCheckResult, ValidationResult

RULE = '=' * 50


def format_validation_report(result: ValidationResult) -> str:
    """Render a ValidationResult for console output."""
    lines = [
        '',
        'CALENDAR VALIDATION REPORT',
        RULE,
        '',
        'Summary:',
        f'  Total Events: {result.event_count}',
        f'  Validation Status: {"PASSED" if result.is_valid else "FAILED"}',
        f'  Errors: {len(result.errors)}',
        f'  Warnings: {len(result.warnings)}',
        f'  Duplicates: {len(result.duplicates)}',
        '',
    ]

    if result.errors:
        lines.append(f'ERRORS ({len(result.errors)}):')
        for index, error in enumerate(result.errors, 1):
            lines.append(f'  {index}. [{error.severity.upper()}] {error.event_title}')
            lines.append(f'     {error.message}')
            lines.append(f'     Event ID: {error.event_id}')
            lines.append('')

    if result.warnings:
        lines.append(f'WARNINGS ({len(result.warnings)}):')
        for index, warning in enumerate(result.warnings, 1):
            lines.append(f'  {index}. {warning.event_title}')
            lines.append(f'     {warning.message}')
            lines.append(f'     Event ID: {warning.event_id}')
            lines.append('')

    if result.duplicates:
        lines.append(f'DUPLICATES ({len(result.duplicates)}):')
        for index, duplicate in enumerate(result.duplicates, 1):
            lines.append(f'  {index}. {duplicate.reason}')
            for event in duplicate.events:
                lines.append(f'     - {event.title} ({event.date}) [{event.id}]')
            lines.append('')

    if result.is_valid:
        lines.append('All calendar events are valid and consistent!')
    else:
        lines.append('Calendar validation failed. Please fix the errors above.')

    return '\n'.join(lines) + '\n'


def format_status_report(health: HealthCheckResult) -> str:
    """Render a health check as a synchronization status report."""
    lines = [
        '',
        'CALENDAR SYNCHRONIZATION STATUS',
        RULE,
        '',
        f'Health Status: {"HEALTHY" if health.is_healthy else "ISSUES FOUND"}',
        '',
    ]

    if health.issues:
        lines.append(f'Issues Found ({len(health.issues)}):')
        lines.extend(f'  {index}. {issue}' for index, issue in enumerate(health.issues, 1))
        lines.append('')

    if health.recommendations:
        lines.append(f'Recommendations ({len(health.recommendations)}):')
        lines.extend(
            f'  {index}. {recommendation}'
            for index, recommendation in enumerate(health.recommendations, 1)
        )
        lines.append('')

    validation = health.validation_result
    lines.extend([
        'Validation Details:',
        f'  Total Events: {validation.event_count}',
        f'  Errors: {len(validation.errors)}',
        f'  Warnings: {len(validation.warnings)}',
        f'  Duplicates: {len(validation.duplicates)}',
        '',
    ])

    if not health.is_healthy:
        lines.extend([
            'Quick Fix:',
            '  Invoke the handler with {"action": "sync"} to resolve conflicts',
            '  and synchronize with the official calendar.',
        ])

    return '\n'.join(lines) + '\n'
