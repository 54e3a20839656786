"""Services package."""

from backend.app.services.incident_log_service import IncidentLogService
from backend.app.services.log_persistence import LogPersistencePort, SqlAlchemyLogPersistence

__all__ = [
    "IncidentLogService",
    "LogPersistencePort",
    "SqlAlchemyLogPersistence",
]
