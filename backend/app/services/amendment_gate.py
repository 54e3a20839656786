"""
Amendment permission gate.

Decides, at the moment of asking, whether a user may amend a log:

  - admin role           -> always permitted
  - original logger      -> permitted while the log is at most 24h old
  - anyone else          -> denied

Role and elapsed time both change over a log's life, so the decision is
computed fresh on every call and is only good for the append that follows.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from backend.app.core.config import get_settings
from backend.app.core.errors import PermissionLookupError, PersistenceError
from backend.app.core.logging import get_logger
from backend.app.schemas.incident_logs import AmendmentDecision, as_utc
from backend.app.services.log_persistence import INCIDENT_LOGS, USERS, LogPersistencePort

logger = get_logger(__name__)


class AmendmentGate:
    def __init__(
        self,
        persistence: LogPersistencePort,
        clock: Optional[Callable[[], datetime]] = None,
        window_hours: Optional[int] = None,
        admin_role: Optional[str] = None,
    ):
        settings = get_settings()
        self.persistence = persistence
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.window = timedelta(hours=window_hours if window_hours is not None else settings.amendment_window_hours)
        self.admin_role = admin_role or settings.admin_role

    @property
    def window_hours(self) -> int:
        return int(self.window.total_seconds() // 3600)

    async def can_amend(self, log_id: int, user_id: str) -> AmendmentDecision:
        """
        Raises PermissionLookupError when the log or the user's profile cannot
        be read; callers must treat that as a hard stop.
        """
        try:
            log = await self.persistence.select_one(INCIDENT_LOGS, {"id": log_id})
            profile = await self.persistence.select_one(USERS, {"id": user_id})
        except PersistenceError as e:
            logger.error(f"Permission lookup failed for log {log_id}, user {user_id}: {e.message}")
            raise PermissionLookupError()

        if log is None:
            raise PermissionLookupError(f"Unable to verify amendment permissions: incident log {log_id} not found", missing_record=True)
        if profile is None:
            raise PermissionLookupError(f"Unable to verify amendment permissions: user {user_id} not found", missing_record=True)

        if profile.get("role") == self.admin_role:
            return AmendmentDecision(can_amend=True)

        if log["logged_by_user_id"] == user_id:
            elapsed = self.clock() - as_utc(log["created_at"])
            if elapsed <= self.window:
                return AmendmentDecision(can_amend=True)
            logger.info(
                f"Amendment window expired for log {log_id}",
                extra={"extra_data": {"log_id": log_id, "user_id": user_id, "elapsed_hours": round(elapsed.total_seconds() / 3600, 2)}},
            )
            return AmendmentDecision(
                can_amend=False,
                reason=(
                    f"You can only amend logs you created within {self.window_hours} hours. "
                    f"Please contact an admin for amendments."
                ),
            )

        return AmendmentDecision(
            can_amend=False,
            reason="Only the creator may amend this log. Please contact an admin for amendments.",
        )
