"""
Immutable incident log store.

Creates incident log records and reads them back. Once a log is written its
fields change only through RevisionLedger.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from backend.app.core.errors import DuplicateRecordError, RecordLookupError, ValidationError
from backend.app.core.logging import get_logger
from backend.app.schemas.incident_logs import AuditableIncidentLog, EntryType, IncidentLogCreate
from backend.app.services.entry_classifier import validate_entry_type
from backend.app.services.log_persistence import INCIDENT_LOGS, USERS, LogPersistencePort

logger = get_logger(__name__)

RETROSPECTIVE_JUSTIFICATION_REQUIRED = (
    "Retrospective entries require a justification explaining the delay in logging."
)


@dataclass
class CreatedLog:
    log: AuditableIncidentLog
    warnings: List[str] = field(default_factory=list)


class ImmutableLogStore:
    def __init__(
        self,
        persistence: LogPersistencePort,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.persistence = persistence
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def create(self, log_data: IncidentLogCreate, logged_by_user_id: str) -> CreatedLog:
        """
        Persist a new incident log.

        Raises ValidationError for a retrospective entry without a
        justification; nothing is written in that case. Timing warnings from
        the classifier are returned alongside the created log.
        """
        justification = (log_data.retrospective_justification or "").strip()
        if log_data.entry_type == EntryType.RETROSPECTIVE and not justification:
            raise ValidationError(RETROSPECTIVE_JUSTIFICATION_REQUIRED)

        duplicate = f"Log number {log_data.log_number} already exists."
        if await self.persistence.select_one(INCIDENT_LOGS, {"log_number": log_data.log_number}) is not None:
            raise ValidationError(duplicate)

        profile = await self.persistence.select_one(USERS, {"id": logged_by_user_id})
        if profile is None:
            raise RecordLookupError(f"User {logged_by_user_id} not found")

        now = self.clock()
        time_logged = log_data.time_logged or now
        validation = validate_entry_type(log_data.time_of_occurrence, time_logged, log_data.entry_type)

        record = log_data.model_dump(exclude={"time_logged", "retrospective_justification"})
        record["entry_type"] = log_data.entry_type.value
        record.update(
            time_logged=time_logged,
            retrospective_justification=justification or None,
            logged_by_user_id=logged_by_user_id,
            logged_by_role=profile.get("role"),
            logged_by_callsign=profile.get("callsign"),
            is_amended=False,
            revision_count=0,
            created_at=now,
        )

        try:
            stored = await self.persistence.insert(INCIDENT_LOGS, record)
        except DuplicateRecordError:
            # Lost a race with another create for the same log number
            raise ValidationError(duplicate)
        created = AuditableIncidentLog.model_validate(stored)
        logger.info(
            f"Incident log created: {created.log_number} ({created.entry_type.value})",
            extra={"extra_data": {
                "log_id": created.id,
                "log_number": created.log_number,
                "logged_by": logged_by_user_id,
                "time_delta_minutes": validation.time_delta_minutes,
                "warning_count": len(validation.warnings),
            }},
        )
        return CreatedLog(log=created, warnings=validation.warnings)

    async def get(self, log_id: int) -> AuditableIncidentLog:
        record = await self.persistence.select_one(INCIDENT_LOGS, {"id": log_id})
        if record is None:
            raise RecordLookupError(f"Incident log {log_id} not found")
        return AuditableIncidentLog.model_validate(record)

    async def list_for_event(self, event_id: str) -> List[AuditableIncidentLog]:
        records = await self.persistence.select_many(INCIDENT_LOGS, {"event_id": event_id}, order_by="id")
        return [AuditableIncidentLog.model_validate(r) for r in records]
