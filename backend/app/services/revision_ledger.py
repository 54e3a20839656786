"""
Revision ledger for incident logs.

Appends one field-level amendment at a time. Revision numbers are assigned by
the persistence port inside the insert transaction, never taken from the
caller, so each log's revisions run 1..N without gaps or repeats.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union

from backend.app.core.config import get_settings
from backend.app.core.errors import PersistenceError, RevisionNumberConflict, ValidationError
from backend.app.core.logging import get_logger
from backend.app.schemas.incident_logs import AMENDABLE_FIELDS, ChangeType, LogRevision
from backend.app.services.log_persistence import LOG_REVISIONS, LogPersistencePort

logger = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who is making a change, as recorded on the revision."""
    user_id: str
    callsign: Optional[str] = None


def validate_change_reason(reason: Optional[str], min_length: int) -> str:
    stripped = (reason or "").strip()
    if not stripped:
        raise ValidationError("Change reason is required for all amendments.")
    if len(stripped) < min_length:
        raise ValidationError(f"Change reason must be substantive (at least {min_length} characters).")
    return stripped


class RevisionLedger:
    def __init__(
        self,
        persistence: LogPersistencePort,
        clock: Optional[Callable[[], datetime]] = None,
        max_retries: Optional[int] = None,
        reason_min_length: Optional[int] = None,
    ):
        settings = get_settings()
        self.persistence = persistence
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_retries = max_retries if max_retries is not None else settings.revision_append_max_retries
        self.reason_min_length = (
            reason_min_length if reason_min_length is not None else settings.change_reason_min_length
        )

    def validate(self, field_changed: str, reason: Optional[str], change_type: Union[ChangeType, str]):
        """Check an amendment before anything is written. Returns (reason, change_type)."""
        if field_changed not in AMENDABLE_FIELDS:
            raise ValidationError(f'Field "{field_changed}" cannot be amended.')
        cleaned_reason = validate_change_reason(reason, self.reason_min_length)
        try:
            kind = ChangeType(change_type)
        except ValueError:
            raise ValidationError(f'Unknown change type "{change_type}".')
        return cleaned_reason, kind

    async def append(
        self,
        log_id: int,
        field_changed: str,
        old_value: Any,
        new_value: Any,
        reason: str,
        change_type: Union[ChangeType, str],
        actor: Actor,
        expected_revision_count: Optional[int] = None,
    ) -> LogRevision:
        """
        Record one amendment. Pass ``expected_revision_count`` when
        ``old_value`` was derived from the history; RevisionBaseChanged is
        raised, and nothing written, if the history has moved on since.
        """
        cleaned_reason, kind = self.validate(field_changed, reason, change_type)
        for label, value in (("old", old_value), ("new", new_value)):
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                raise ValidationError(f"The {label} value for {field_changed} is not JSON-serialisable.")

        record = {
            "incident_log_id": log_id,
            "field_changed": field_changed,
            "old_value": old_value,
            "new_value": new_value,
            "change_type": kind.value,
            "change_reason": cleaned_reason,
            "changed_by_user_id": actor.user_id,
            "changed_by_callsign": actor.callsign,
            "changed_at": self.clock(),
        }

        for attempt in range(1, self.max_retries + 1):
            try:
                stored = await self.persistence.append_revision(record, expected_revision_count)
            except RevisionNumberConflict as e:
                logger.warning(
                    f"Revision number collision on log {log_id} (attempt {attempt}/{self.max_retries})",
                    extra={"extra_data": {"log_id": log_id, "revision_number": e.revision_number}},
                )
                continue

            revision = LogRevision.model_validate(stored)
            logger.info(
                f"Revision #{revision.revision_number} recorded for log {log_id}: {field_changed}",
                extra={"extra_data": {
                    "log_id": log_id,
                    "revision_number": revision.revision_number,
                    "field_changed": field_changed,
                    "change_type": kind.value,
                    "changed_by": actor.user_id,
                }},
            )
            return revision

        raise PersistenceError(
            f"Could not assign a revision number for log {log_id} after {self.max_retries} attempts"
        )

    async def history(self, log_id: int) -> List[LogRevision]:
        """All revisions for a log in ascending revision_number order."""
        records = await self.persistence.select_many(
            LOG_REVISIONS, {"incident_log_id": log_id}, order_by="revision_number"
        )
        return [LogRevision.model_validate(r) for r in records]
