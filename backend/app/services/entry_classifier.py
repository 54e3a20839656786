"""
Entry classification for incident logs.

Compares when an incident happened with when it was logged and flags entries
that look late. Classification never blocks creation: real-world logging is
never perfectly contemporaneous, so the result only carries warnings and a
suggested entry type for a human to act on.
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional

from backend.app.core.config import get_settings
from backend.app.schemas.incident_logs import EntryType, EntryTypeValidation


def validate_entry_type(
    time_of_occurrence: datetime,
    time_logged: datetime,
    declared_entry_type: EntryType,
    warning_minutes: Optional[int] = None,
    critical_minutes: Optional[int] = None,
    max_retrospective_hours: Optional[int] = None,
) -> EntryTypeValidation:
    """Classify a log entry by the delay between occurrence and logging."""
    settings = get_settings()
    warning_minutes = warning_minutes if warning_minutes is not None else settings.entry_warning_minutes
    critical_minutes = critical_minutes if critical_minutes is not None else settings.entry_critical_minutes
    max_retrospective_hours = (
        max_retrospective_hours if max_retrospective_hours is not None else settings.max_retrospective_hours
    )

    delta = time_logged - time_of_occurrence
    delta_minutes = math.floor(delta.total_seconds() / 60)

    warnings: List[str] = []
    suggested: Optional[EntryType] = None

    if delta_minutes > warning_minutes and declared_entry_type == EntryType.CONTEMPORANEOUS:
        warnings.append(
            f"Entry logged {delta_minutes} minutes after occurrence. "
            f"Consider marking as 'retrospective' with justification."
        )
        suggested = EntryType.RETROSPECTIVE

    if delta_minutes > critical_minutes:
        warnings.append(
            f"Critical time delta: {delta_minutes} minutes. Retrospective justification is required."
        )

    if declared_entry_type == EntryType.RETROSPECTIVE and delta_minutes > max_retrospective_hours * 60:
        warnings.append(
            f"Entry is more than {max_retrospective_hours} hours old. Please justify the significant delay."
        )

    if delta < timedelta(0):
        # Upstream clock or input error; reported, never corrected here
        warnings.append("Warning: Occurrence time is in the future. Please verify the timestamp.")

    return EntryTypeValidation(
        is_valid=True,
        warnings=warnings,
        suggested_entry_type=suggested,
        time_delta_minutes=delta_minutes,
    )


def format_time_delta(minutes: int) -> str:
    """Human-readable rendering of a delay in whole minutes."""
    if minutes < 1:
        return "less than 1 minute"
    if minutes == 1:
        return "1 minute"
    if minutes < 60:
        return f"{minutes} minutes"

    hours, remaining = divmod(minutes, 60)
    hour_part = "1 hour" if hours == 1 else f"{hours} hours"
    if remaining == 0:
        return hour_part
    minute_part = "1 minute" if remaining == 1 else f"{remaining} minutes"
    return f"{hour_part} {minute_part}"
