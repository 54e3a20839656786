"""
ORM Model for Auditable Incident Logs.

A log row is written once. Its content fields keep the values entered at
logging time forever; later changes live in ``incident_log_revisions`` and
the current view is obtained by replaying them. Only the bookkeeping columns
``is_amended`` and ``revision_count`` move, and only through the ledger's
atomic append statement.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, event, inspect

from backend.app.core.database import Base
from backend.app.core.errors import PersistenceError


class IncidentLogORM(Base):
    __tablename__ = "incident_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    log_number = Column(String(50), nullable=False, unique=True, index=True)
    event_id = Column(String(36), nullable=True, index=True)

    # Content fields, as originally logged
    occurrence = Column(Text, nullable=False)
    action_taken = Column(Text, nullable=True)
    incident_type = Column(String(100), nullable=False, index=True)
    priority = Column(String(20), nullable=True)
    location = Column(String(255), nullable=True)
    callsign_from = Column(String(50), nullable=True)
    callsign_to = Column(String(50), nullable=True)
    status = Column(String(30), nullable=False, default="open")

    # Dual timestamps
    time_of_occurrence = Column(DateTime(timezone=True), nullable=False)
    time_logged = Column(DateTime(timezone=True), nullable=False)

    entry_type = Column(String(20), nullable=False)  # EntryType values
    retrospective_justification = Column(Text, nullable=True)

    # Attribution at time of logging
    logged_by_user_id = Column(String(36), nullable=False, index=True)
    logged_by_role = Column(String(50), nullable=True)
    logged_by_callsign = Column(String(50), nullable=True)

    # Ledger bookkeeping
    is_amended = Column(Boolean, nullable=False, default=False)
    revision_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<IncidentLog {self.log_number} ({self.entry_type})>"


# Columns the ledger itself maintains; everything else is frozen after insert.
_LEDGER_COLUMNS = {"is_amended", "revision_count"}


@event.listens_for(IncidentLogORM, "before_update")
def _refuse_in_place_edit(mapper, connection, target):
    state = inspect(target)
    changed = [
        attr.key
        for attr in state.attrs
        if attr.key not in _LEDGER_COLUMNS and attr.history.has_changes()
    ]
    if changed:
        raise PersistenceError(
            f"Incident log {target.log_number} is immutable; "
            f"record an amendment instead of editing {', '.join(sorted(changed))}"
        )


@event.listens_for(IncidentLogORM, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise PersistenceError(f"Incident log {target.log_number} cannot be deleted")
