"""
History formatting for auditable incident logs.

Turns a log and its revisions into display diffs, a summary, and the plain
text export handed to inquiries. The export is deterministic for a given log
and revision set apart from the generation timestamp in its trailer.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from backend.app.core.config import get_settings
from backend.app.schemas.incident_logs import (
    AMENDABLE_FIELDS,
    CHANGE_TYPE_LABELS,
    FIELD_LABELS,
    AmendmentDiff,
    AuditableIncidentLog,
    ChangeType,
    DualTimestamp,
    EntryType,
    LogRevision,
    RevisionHistorySummary,
)

EMPTY_VALUE = "(empty)"
RULE = "=" * 80
SEPARATOR = "-" * 80


def format_timestamp(value: datetime) -> str:
    """en-GB style ``DD/MM/YYYY, HH:MM:SS`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%d/%m/%Y, %H:%M:%S")


def format_dual_timestamp(
    time_of_occurrence: datetime,
    time_logged: datetime,
    entry_type: EntryType,
) -> DualTimestamp:
    delta_minutes = int((time_logged - time_of_occurrence).total_seconds() // 60)
    return DualTimestamp(
        occurred=format_timestamp(time_of_occurrence),
        logged=format_timestamp(time_logged),
        delta_minutes=delta_minutes,
        is_retrospective=entry_type == EntryType.RETROSPECTIVE,
        entry_type=entry_type,
    )


def format_value(value: Any) -> str:
    if value is None:
        return EMPTY_VALUE
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def field_label(field_name: str) -> str:
    return FIELD_LABELS.get(field_name, field_name)


def _attribution(revision: LogRevision, changed_by: Optional[str]) -> str:
    return changed_by or revision.changed_by_callsign or revision.changed_by_user_id or "Unknown"


def format_diff(revision: LogRevision, changed_by: Optional[str] = None) -> AmendmentDiff:
    """Display form of one revision. ``changed_by`` is the actor's display name, if known."""
    return AmendmentDiff(
        field=field_label(revision.field_changed),
        old_value=format_value(revision.old_value),
        new_value=format_value(revision.new_value),
        changed_by=_attribution(revision, changed_by),
        changed_at=format_timestamp(revision.changed_at),
        reason=revision.change_reason,
        change_type=revision.change_type,
    )


def _in_order(revisions: Iterable[LogRevision]) -> List[LogRevision]:
    return sorted(revisions, key=lambda r: r.revision_number)


def summarize(
    revisions: Iterable[LogRevision],
    changed_by_names: Optional[Dict[str, str]] = None,
) -> RevisionHistorySummary:
    ordered = _in_order(revisions)
    if not ordered:
        return RevisionHistorySummary()

    names = changed_by_names or {}
    last = ordered[-1]
    change_types: List[ChangeType] = []
    for revision in ordered:
        if revision.change_type not in change_types:
            change_types.append(revision.change_type)

    return RevisionHistorySummary(
        total_revisions=len(ordered),
        last_amended_at=last.changed_at,
        last_amended_by=_attribution(last, names.get(last.changed_by_user_id)),
        change_types=change_types,
        has_corrections=ChangeType.CORRECTION in change_types,
        has_clarifications=ChangeType.CLARIFICATION in change_types,
    )


def export_text(
    log: AuditableIncidentLog,
    revisions: Iterable[LogRevision],
    changed_by_names: Optional[Dict[str, str]] = None,
    generated_at: Optional[datetime] = None,
    source_label: Optional[str] = None,
) -> str:
    """Canonical plain-text revision history for a single log."""
    names = changed_by_names or {}
    ordered = _in_order(revisions)
    generated_at = generated_at or datetime.now(timezone.utc)
    source_label = source_label or get_settings().export_source_label

    lines = [RULE, "INCIDENT LOG REVISION HISTORY", RULE, ""]

    timestamps = format_dual_timestamp(log.time_of_occurrence, log.time_logged, log.entry_type)
    lines.append(f"Log Number: {log.log_number}")
    lines.append(f"Incident Type: {log.incident_type}")
    lines.append(f"Entry Type: {log.entry_type.value.upper()}")
    lines.append(f"Time of Occurrence: {timestamps.occurred}")
    lines.append(f"Time Logged: {timestamps.logged}")
    if log.entry_type == EntryType.RETROSPECTIVE and log.retrospective_justification:
        lines.append(f"Retrospective Justification: {log.retrospective_justification}")

    lines.extend(["", SEPARATOR, ""])

    if not ordered:
        lines.append("No amendments have been made to this log.")
    else:
        lines.append(f"Total Revisions: {len(ordered)}")
        lines.append("")
        for index, revision in enumerate(ordered):
            diff = format_diff(revision, names.get(revision.changed_by_user_id))
            label = CHANGE_TYPE_LABELS[revision.change_type]["label"]
            lines.append(f"Revision #{revision.revision_number} - {label}")
            lines.append(f"Changed At: {diff.changed_at}")
            lines.append(f"Changed By: {diff.changed_by}")
            lines.append(f"Field: {diff.field}")
            lines.append(f"Old Value: {diff.old_value}")
            lines.append(f"New Value: {diff.new_value}")
            lines.append(f"Reason: {diff.reason}")
            if index < len(ordered) - 1:
                lines.extend(["", SEPARATOR, ""])

    lines.extend([
        "",
        RULE,
        f"Generated from {source_label} - {generated_at.isoformat()}",
        "Log entries are immutable and auditable",
        RULE,
    ])
    return "\n".join(lines)


def original_values(log: AuditableIncidentLog) -> Dict[str, Any]:
    """Amendable fields as first logged, in their JSON form."""
    values = {}
    for name in AMENDABLE_FIELDS:
        value = getattr(log, name)
        values[name] = value.isoformat() if isinstance(value, datetime) else value
    return values


def replay_current_values(log: AuditableIncidentLog, revisions: Iterable[LogRevision]) -> Dict[str, Any]:
    """Current content of a log: the original values with every revision applied in order."""
    values = original_values(log)
    for revision in _in_order(revisions):
        values[revision.field_changed] = revision.new_value
    return values
