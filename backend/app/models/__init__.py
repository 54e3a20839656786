"""Models package."""

from backend.app.models.incident_log_orm import IncidentLogORM
from backend.app.models.log_revision_orm import LogRevisionORM
from backend.app.models.user_orm import UserORM

__all__ = [
    "IncidentLogORM",
    "LogRevisionORM",
    "UserORM",
]
