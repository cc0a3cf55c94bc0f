"""Data models for calendar validation and synchronization."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class CalendarEvent:
    """Calendar event as stored in the events table."""
    event_id: str
    title: str
    start_date: Optional[str]
    end_date: Optional[str]
    all_day: bool = False
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: str = ''
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    color: str = '#3b82f6'
    recurring: str = 'none'
    category: Optional[str] = None
    reminder: Optional[int] = None


@dataclass
class CanonicalEventDefinition:
    """Authoritative definition of an event that must exist."""
    id: str
    title: str
    start_date: str
    end_date: str
    all_day: bool
    assigned_to: str
    description: str
    source: str
    category: str
    location: Optional[str] = None


@dataclass
class CanonicalCalendar:
    """Versioned list of canonical event definitions."""
    version: str
    definitions: List[CanonicalEventDefinition]


@dataclass
class ValidationError:
    """Structural or business-rule violation found on an event."""
    event_id: str
    event_title: str
    error_type: str
    message: str
    severity: str


@dataclass
class ValidationWarning:
    """Suspicious but non-blocking condition found on an event."""
    event_id: str
    event_title: str
    warning_type: str
    message: str


@dataclass
class DuplicateEventRef:
    id: str
    title: str
    date: str


@dataclass
class DuplicateGroup:
    """Cluster of events sharing normalized title and calendar day."""
    events: List[DuplicateEventRef]
    reason: str


@dataclass
class ValidationResult:
    """Result of validating every stored event."""
    is_valid: bool
    errors: List[ValidationError]
    warnings: List[ValidationWarning]
    event_count: int
    duplicates: List[DuplicateGroup]


@dataclass
class ConflictResolution:
    """Outcome of reconciling one canonical definition."""
    definition_id: str
    strategy: str
    reasoning: str
    action: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    flagged_event_ids: List[str] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return self.created + self.updated + self.deleted


@dataclass
class ReconciliationIntent:
    """Marker for an in-flight delete-then-create replacement."""
    definition_id: str
    event_ids: List[str]
    phase: str
    created_at: str


@dataclass
class SyncResult:
    """Result of sync operation."""
    success: bool
    message: str
    events_processed: int
    errors: List[str]
    warnings: List[str]
    validation_result: Optional[ValidationResult] = None
    added: int = 0
    updated: int = 0
    deleted: int = 0
    resolutions: List[ConflictResolution] = field(default_factory=list)


@dataclass
class HealthCheckResult:
    """Calendar health summary derived from a validation run."""
    is_healthy: bool
    issues: List[str]
    recommendations: List[str]
    validation_result: ValidationResult
