"""
Incident Log Service: public entry point for the auditable log ledger.

Wires EntryClassifier, ImmutableLogStore, AmendmentGate, RevisionLedger and
the history formatter together behind four operations:

    create_log      classify timing, persist the immutable original
    amend_log       gate check, then append one revision
    get_history     log + ordered revisions + diffs + summary
    export_history  canonical plain-text trail for inquiries

Errors raised by the components are returned as result values
(``success=False`` plus ``error`` / ``error_kind``); API handlers decide how
to map them.
"""
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from backend.app.core.errors import (
    AuthorizationError,
    IncidentLogError,
    PersistenceError,
    RevisionBaseChanged,
    ValidationError,
)
from backend.app.core.logging import get_logger
from backend.app.schemas.incident_logs import (
    AmendLogResult,
    AmendmentDecision,
    ChangeType,
    CreateLogResult,
    CurrentLogView,
    HistoryResult,
    IncidentLogCreate,
    LogRevision,
    as_utc,
)
from backend.app.services import history_formatter
from backend.app.services.amendment_gate import AmendmentGate
from backend.app.services.immutable_log_store import ImmutableLogStore
from backend.app.services.log_persistence import USERS, LogPersistencePort
from backend.app.services.revision_ledger import Actor, RevisionLedger

logger = get_logger(__name__)


def _same_value(a: Any, b: Any) -> bool:
    return json.dumps(a, sort_keys=True) == json.dumps(b, sort_keys=True)


class IncidentLogService:
    def __init__(self, persistence: LogPersistencePort, clock: Optional[Callable[[], datetime]] = None):
        self.persistence = persistence
        self.store = ImmutableLogStore(persistence, clock=clock)
        self.ledger = RevisionLedger(persistence, clock=clock)
        self.gate = AmendmentGate(persistence, clock=clock)

    async def create_log(self, log_input: IncidentLogCreate, user_id: str) -> CreateLogResult:
        try:
            created = await self.store.create(log_input, user_id)
        except IncidentLogError as e:
            logger.warning(f"Incident log creation rejected for user {user_id}: {e.message}")
            return CreateLogResult(success=False, error=e.message, error_kind=e.kind)
        return CreateLogResult(success=True, log=created.log, warnings=created.warnings)

    async def check_amendment(self, log_id: int, user_id: str) -> AmendmentDecision:
        """Fresh gate decision; raises PermissionLookupError if it cannot be made."""
        return await self.gate.can_amend(log_id, user_id)

    async def amend_log(
        self,
        log_id: int,
        field_changed: str,
        new_value: Any,
        reason: str,
        change_type: ChangeType | str,
        user_id: str,
    ) -> AmendLogResult:
        try:
            decision = await self.gate.can_amend(log_id, user_id)
            if not decision.can_amend:
                raise AuthorizationError(decision.reason or "You do not have permission to amend this log")

            self.ledger.validate(field_changed, reason, change_type)
            new_value = self._normalise_new_value(field_changed, new_value)

            profile = await self.persistence.select_one(USERS, {"id": user_id}) or {}
            actor = Actor(user_id=user_id, callsign=profile.get("callsign"))

            revision = await self._append_against_current(log_id, field_changed, new_value, reason, change_type, actor)
            log = await self.store.get(log_id)
        except IncidentLogError as e:
            logger.warning(
                f"Amendment of log {log_id} rejected: {e.message}",
                extra={"extra_data": {"log_id": log_id, "user_id": user_id, "error_kind": e.kind}},
            )
            return AmendLogResult(success=False, error=e.message, error_kind=e.kind)

        return AmendLogResult(success=True, revision=revision, log=log)

    async def _append_against_current(
        self,
        log_id: int,
        field_changed: str,
        new_value: Any,
        reason: str,
        change_type: ChangeType | str,
        actor: Actor,
    ) -> LogRevision:
        """
        Replay the history to find ``old_value``, then append only if no other
        revision landed in between. A concurrent amendment triggers a fresh
        replay, so the same-value check always runs against the latest value.
        """
        attempts = self.ledger.max_retries
        for attempt in range(1, attempts + 1):
            log = await self.store.get(log_id)
            revisions = await self.ledger.history(log_id)
            old_value = history_formatter.replay_current_values(log, revisions)[field_changed]
            if _same_value(old_value, new_value):
                raise ValidationError("New value is the same as current value. No amendment needed.")

            seen = max((r.revision_number for r in revisions), default=0)
            try:
                return await self.ledger.append(
                    log_id, field_changed, old_value, new_value, reason, change_type, actor,
                    expected_revision_count=seen,
                )
            except RevisionBaseChanged:
                logger.info(
                    f"Log {log_id} changed during amendment, replaying (attempt {attempt}/{attempts})",
                    extra={"extra_data": {"log_id": log_id, "field_changed": field_changed, "seen_revision": seen}},
                )

        raise PersistenceError(
            f"Incident log {log_id} kept changing while this amendment was being recorded. Please try again."
        )

    @staticmethod
    def _normalise_new_value(field_changed: str, new_value: Any) -> Any:
        if new_value is None or (isinstance(new_value, str) and not new_value.strip()):
            raise ValidationError("New value cannot be empty.")
        if field_changed == "time_of_occurrence":
            # Revisions carry timestamps as ISO 8601 strings
            if isinstance(new_value, datetime):
                return as_utc(new_value).astimezone(timezone.utc).isoformat()
            try:
                parsed = datetime.fromisoformat(str(new_value))
            except ValueError:
                raise ValidationError("Time of occurrence must be an ISO 8601 timestamp.")
            return as_utc(parsed).astimezone(timezone.utc).isoformat()
        return new_value

    async def _display_names(self, user_ids: Iterable[str]) -> Dict[str, str]:
        names = {}
        for user_id in set(user_ids):
            profile = await self.persistence.select_one(USERS, {"id": user_id})
            if profile:
                names[user_id] = profile.get("full_name") or profile.get("username") or user_id
        return names

    async def get_history(self, log_id: int) -> HistoryResult:
        try:
            log = await self.store.get(log_id)
            revisions = await self.ledger.history(log_id)
            names = await self._display_names(r.changed_by_user_id for r in revisions)
        except IncidentLogError as e:
            logger.warning(f"History lookup for log {log_id} failed: {e.message}")
            return HistoryResult(success=False, error=e.message, error_kind=e.kind)

        return HistoryResult(
            success=True,
            log=log,
            revisions=revisions,
            diffs=[history_formatter.format_diff(r, names.get(r.changed_by_user_id)) for r in revisions],
            summary=history_formatter.summarize(revisions, names),
        )

    async def export_history(self, log_id: int, generated_at: Optional[datetime] = None) -> str:
        """
        Plain-text revision history. Unlike the other operations this one
        raises (RecordLookupError, PersistenceError) since it has no result
        object to carry the failure.
        """
        log = await self.store.get(log_id)
        revisions = await self.ledger.history(log_id)
        names = await self._display_names(r.changed_by_user_id for r in revisions)
        logger.info(f"Revision history exported for log {log_id} ({len(revisions)} revisions)")
        return history_formatter.export_text(log, revisions, names, generated_at=generated_at)

    async def get_log(self, log_id: int) -> CurrentLogView:
        log = await self.store.get(log_id)
        revisions = await self.ledger.history(log_id)
        return CurrentLogView(
            log=log,
            current_values=history_formatter.replay_current_values(log, revisions),
            revision_count=len(revisions),
        )
