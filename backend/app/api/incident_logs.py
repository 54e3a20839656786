"""
Auditable Incident Log API Router.

Logs are created once and never edited. Changes go through /amend, which
re-checks the amendment gate on every call and appends a numbered revision.
The revision trail can be read as JSON or exported as the plain-text
document used for inquiries.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.database import get_session_factory
from backend.app.core.errors import IncidentLogError
from backend.app.core.logging import user_id_ctx
from backend.app.core.security import (
    get_current_user, User,
    INCIDENT_LOG_READ, INCIDENT_LOG_WRITE, INCIDENT_LOG_AMEND, INCIDENT_LOG_EXPORT,
)
from backend.app.schemas.incident_logs import (
    AmendLogRequest, AmendLogResult, AmendmentDecision, AuditableIncidentLog,
    CreateLogResult, CurrentLogView, HistoryResult, IncidentLogCreate,
)
from backend.app.services.incident_log_service import IncidentLogService
from backend.app.services.log_persistence import SqlAlchemyLogPersistence

logger = logging.getLogger(__name__)
router = APIRouter()

_STATUS_BY_KIND = {
    "validation": 400,
    "authorization": 403,
    "lookup": 404,
    "permission_lookup": 503,
    "persistence": 500,
}


def get_incident_log_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> IncidentLogService:
    return IncidentLogService(SqlAlchemyLogPersistence(session_factory))


def _raise_for(kind: str | None, detail: str | None) -> None:
    raise HTTPException(status_code=_STATUS_BY_KIND.get(kind or "", 500), detail=detail or "Request failed")


@router.post("/", response_model=CreateLogResult, status_code=201)
async def create_log(
    payload: IncidentLogCreate,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_WRITE]),
):
    """
    Create an immutable incident log entry.
    Timing warnings (late entry, future occurrence) are returned, not enforced.
    """
    user_id_ctx.set(current_user.id)
    result = await service.create_log(payload, current_user.id)
    if not result.success:
        _raise_for(result.error_kind, result.error)
    return result


@router.get("/event/{event_id}", response_model=List[AuditableIncidentLog])
async def list_event_logs(
    event_id: str,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_READ]),
):
    """All logs for an event, in creation order, as originally entered."""
    try:
        return await service.store.list_for_event(event_id)
    except IncidentLogError as e:
        _raise_for(e.kind, e.message)


@router.get("/{log_id}", response_model=CurrentLogView)
async def get_log(
    log_id: int,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_READ]),
):
    """The original log plus its content as it stands after all revisions."""
    try:
        return await service.get_log(log_id)
    except IncidentLogError as e:
        _raise_for(e.kind, e.message)


@router.get("/{log_id}/can-amend", response_model=AmendmentDecision)
async def can_amend(
    log_id: int,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_READ]),
):
    """
    Whether the caller could amend this log right now.
    Advisory only: /amend runs the same check again.
    """
    try:
        return await service.check_amendment(log_id, current_user.id)
    except IncidentLogError as e:
        _raise_for(e.kind, e.message)


@router.post("/{log_id}/amend", response_model=AmendLogResult, status_code=201)
async def amend_log(
    log_id: int,
    payload: AmendLogRequest,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_AMEND]),
):
    """Append a revision to a log. The original record is left untouched."""
    user_id_ctx.set(current_user.id)
    result = await service.amend_log(
        log_id,
        payload.field_changed,
        payload.new_value,
        payload.change_reason,
        payload.change_type,
        current_user.id,
    )
    if not result.success:
        _raise_for(result.error_kind, result.error)
    return result


@router.get("/{log_id}/revisions", response_model=HistoryResult)
async def get_revisions(
    log_id: int,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_READ]),
):
    """Full revision history with display diffs and a summary."""
    result = await service.get_history(log_id)
    if not result.success:
        _raise_for(result.error_kind, result.error)
    return result


@router.get("/{log_id}/revisions/export", response_class=PlainTextResponse)
async def export_revisions(
    log_id: int,
    service: IncidentLogService = Depends(get_incident_log_service),
    current_user: User = Security(get_current_user, scopes=[INCIDENT_LOG_EXPORT]),
):
    """Export the revision history as a plain-text document for inquiries."""
    try:
        text = await service.export_history(log_id)
    except IncidentLogError as e:
        _raise_for(e.kind, e.message)

    logger.info(f"Revision history for log {log_id} exported by {current_user.username}")
    return PlainTextResponse(
        text,
        headers={"Content-Disposition": f'attachment; filename="incident-log-{log_id}-revisions.txt"'},
    )
