"""
Auditable Incident Log Schemas and Enums.

Shared contract for the ledger services, the API router and the export
formatter. Field names match the persisted columns so records coming back
from the persistence port validate directly into these models.
"""
from enum import Enum
from typing import Optional, List, Dict
from datetime import datetime, timezone
from pydantic import BaseModel, Field, JsonValue, field_validator


class EntryType(str, Enum):
    """How the entry relates in time to the incident it describes."""
    CONTEMPORANEOUS = "contemporaneous"  # logged as it happened
    RETROSPECTIVE = "retrospective"      # logged after the fact, needs justification


class ChangeType(str, Enum):
    """Classification of an amendment. Does not affect authorization."""
    AMENDMENT = "amendment"
    CORRECTION = "correction"
    CLARIFICATION = "clarification"
    STATUS_CHANGE = "status_change"
    ESCALATION = "escalation"


# Fields a revision may target. Anything else is rejected by the ledger.
AMENDABLE_FIELDS = (
    "occurrence",
    "action_taken",
    "callsign_from",
    "callsign_to",
    "incident_type",
    "priority",
    "location",
    "time_of_occurrence",
    "status",
)

FIELD_LABELS: Dict[str, str] = {
    "occurrence": "Occurrence Description",
    "action_taken": "Action Taken",
    "callsign_from": "Callsign From",
    "callsign_to": "Callsign To",
    "incident_type": "Incident Type",
    "priority": "Priority",
    "location": "Location",
    "time_of_occurrence": "Time of Occurrence",
    "status": "Status",
}

CHANGE_TYPE_LABELS: Dict[ChangeType, Dict[str, str]] = {
    ChangeType.AMENDMENT: {"label": "Amendment", "description": "General change to log content"},
    ChangeType.CORRECTION: {"label": "Correction", "description": "Factual error corrected"},
    ChangeType.CLARIFICATION: {"label": "Clarification", "description": "Additional context added"},
    ChangeType.STATUS_CHANGE: {"label": "Status Change", "description": "Incident status updated"},
    ChangeType.ESCALATION: {"label": "Escalation", "description": "Escalation level changed"},
}


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class IncidentLogCreate(BaseModel):
    log_number: str = Field(..., min_length=1, max_length=50)
    event_id: Optional[str] = None
    occurrence: str = Field(..., min_length=1)
    action_taken: Optional[str] = None
    incident_type: str = Field(..., min_length=1)
    priority: Optional[str] = None
    location: Optional[str] = None
    callsign_from: Optional[str] = None
    callsign_to: Optional[str] = None
    status: str = "open"
    time_of_occurrence: datetime
    time_logged: Optional[datetime] = None  # defaults to now
    entry_type: EntryType = EntryType.CONTEMPORANEOUS
    retrospective_justification: Optional[str] = None

    normalize_timestamps = field_validator("time_of_occurrence", "time_logged")(as_utc)


class AuditableIncidentLog(BaseModel):
    id: int
    log_number: str
    event_id: Optional[str] = None
    occurrence: str
    action_taken: Optional[str] = None
    incident_type: str
    priority: Optional[str] = None
    location: Optional[str] = None
    callsign_from: Optional[str] = None
    callsign_to: Optional[str] = None
    status: str
    time_of_occurrence: datetime
    time_logged: datetime
    entry_type: EntryType
    retrospective_justification: Optional[str] = None
    logged_by_user_id: str
    logged_by_role: Optional[str] = None
    logged_by_callsign: Optional[str] = None
    is_amended: bool = False
    revision_count: int = 0
    created_at: datetime

    normalize_timestamps = field_validator("time_of_occurrence", "time_logged", "created_at")(as_utc)

    class Config:
        from_attributes = True


class LogRevision(BaseModel):
    id: str
    incident_log_id: int
    revision_number: int = Field(..., ge=1)
    field_changed: str
    old_value: JsonValue = None
    new_value: JsonValue = None
    change_type: ChangeType
    change_reason: str
    changed_by_user_id: str
    changed_by_callsign: Optional[str] = None
    changed_at: datetime

    normalize_timestamps = field_validator("changed_at")(as_utc)

    class Config:
        from_attributes = True


class EntryTypeValidation(BaseModel):
    is_valid: bool = True
    warnings: List[str] = []
    suggested_entry_type: Optional[EntryType] = None
    time_delta_minutes: int


class DualTimestamp(BaseModel):
    occurred: str
    logged: str
    delta_minutes: int
    is_retrospective: bool
    entry_type: EntryType


class AmendmentDiff(BaseModel):
    field: str
    old_value: str
    new_value: str
    changed_by: str
    changed_at: str
    reason: str
    change_type: ChangeType


class RevisionHistorySummary(BaseModel):
    total_revisions: int = 0
    last_amended_at: Optional[datetime] = None
    last_amended_by: Optional[str] = None
    change_types: List[ChangeType] = []
    has_corrections: bool = False
    has_clarifications: bool = False


class AmendmentDecision(BaseModel):
    can_amend: bool
    reason: Optional[str] = None


class AmendLogRequest(BaseModel):
    """Request body for the amend endpoint."""
    field_changed: str
    new_value: JsonValue = None
    change_reason: str
    change_type: ChangeType = ChangeType.AMENDMENT


class CreateLogResult(BaseModel):
    success: bool
    log: Optional[AuditableIncidentLog] = None
    warnings: List[str] = []
    error: Optional[str] = None
    error_kind: Optional[str] = None


class AmendLogResult(BaseModel):
    success: bool
    revision: Optional[LogRevision] = None
    log: Optional[AuditableIncidentLog] = None  # reflects is_amended after the append
    error: Optional[str] = None
    error_kind: Optional[str] = None


class HistoryResult(BaseModel):
    success: bool
    log: Optional[AuditableIncidentLog] = None
    revisions: List[LogRevision] = []
    diffs: List[AmendmentDiff] = []
    summary: Optional[RevisionHistorySummary] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class CurrentLogView(BaseModel):
    """A log with its content fields as they stand after all revisions."""
    log: AuditableIncidentLog
    current_values: Dict[str, JsonValue]
    revision_count: int
