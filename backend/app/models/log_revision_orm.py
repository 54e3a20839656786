"""
ORM Model for Incident Log Revisions.

One row per field-level amendment. Rows are append-only: the mapper refuses
updates and deletes, and ``(incident_log_id, revision_number)`` is unique so
a numbering race surfaces as an IntegrityError instead of a duplicate.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, Integer, JSON, ForeignKey, UniqueConstraint, event

from backend.app.core.database import Base
from backend.app.core.errors import PersistenceError


class LogRevisionORM(Base):
    __tablename__ = "incident_log_revisions"
    __table_args__ = (
        UniqueConstraint("incident_log_id", "revision_number", name="uq_incident_log_revision_number"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    incident_log_id = Column(Integer, ForeignKey("incident_logs.id"), nullable=False, index=True)
    revision_number = Column(Integer, nullable=False)

    field_changed = Column(String(50), nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)

    change_type = Column(String(30), nullable=False)  # ChangeType values
    change_reason = Column(Text, nullable=False)

    changed_by_user_id = Column(String(36), nullable=False, index=True)
    changed_by_callsign = Column(String(50), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<LogRevision #{self.revision_number} {self.field_changed} on log {self.incident_log_id}>"


@event.listens_for(LogRevisionORM, "before_update")
def _refuse_revision_edit(mapper, connection, target):
    raise PersistenceError(f"Revision #{target.revision_number} of log {target.incident_log_id} is append-only")


@event.listens_for(LogRevisionORM, "before_delete")
def _refuse_revision_delete(mapper, connection, target):
    raise PersistenceError(f"Revision #{target.revision_number} of log {target.incident_log_id} cannot be deleted")
