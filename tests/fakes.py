"""In-memory stand-ins for the persistence port and the wall clock."""
import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from backend.app.core.errors import (
    DuplicateRecordError,
    PersistenceError,
    RecordLookupError,
    RevisionBaseChanged,
    RevisionNumberConflict,
)
from backend.app.services.log_persistence import (
    INCIDENT_LOGS,
    LOG_REVISIONS,
    USERS,
    LogPersistencePort,
    OrderBy,
)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(row.get(k) == v for k, v in filters.items())


class InMemoryLogPersistence(LogPersistencePort):
    """
    Dict-backed port. Every call yields to the event loop at least once so
    concurrent callers genuinely interleave; append_revision holds a lock
    across read-max/insert the same way the SQL implementation holds a row lock.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {INCIDENT_LOGS: [], LOG_REVISIONS: [], USERS: []}
        self._next_log_id = 1
        self._append_lock = asyncio.Lock()
        self.unavailable = False

    def add_user(self, user_id: str, **fields) -> None:
        self.tables[USERS].append({"id": user_id, "is_active": True, **fields})

    def _check_available(self) -> None:
        if self.unavailable:
            raise PersistenceError("Store unavailable")

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        await asyncio.sleep(0)
        self._check_available()
        row = dict(record)
        if table == INCIDENT_LOGS:
            if any(r["log_number"] == row["log_number"] for r in self.tables[table]):
                raise DuplicateRecordError("Write to incident_logs rejected by a uniqueness or integrity constraint")
            row["id"] = self._next_log_id
            self._next_log_id += 1
        else:
            row.setdefault("id", str(uuid.uuid4()))
        self.tables[table].append(row)
        return dict(row)

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        self._check_available()
        for row in self.tables[table]:
            if _matches(row, filters):
                return dict(row)
        return None

    async def select_many(self, table: str, filters: Dict[str, Any], order_by: OrderBy = None) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        self._check_available()
        rows = [dict(r) for r in self.tables[table] if _matches(r, filters)]
        if order_by:
            keys = [order_by] if isinstance(order_by, str) else list(order_by)
            rows.sort(key=lambda r: tuple(r[k] for k in keys))
        return rows

    async def append_revision(
        self, record: Dict[str, Any], expected_revision_count: Optional[int] = None
    ) -> Dict[str, Any]:
        await asyncio.sleep(0)
        self._check_available()
        log_id = record["incident_log_id"]
        async with self._append_lock:
            log = next((r for r in self.tables[INCIDENT_LOGS] if r["id"] == log_id), None)
            if log is None:
                raise RecordLookupError(f"Incident log {log_id} not found")
            existing = [r["revision_number"] for r in self.tables[LOG_REVISIONS] if r["incident_log_id"] == log_id]
            number = max([log["revision_count"], *existing]) + 1
            if expected_revision_count is not None and number != expected_revision_count + 1:
                raise RevisionBaseChanged(log_id, expected_revision_count)
            await asyncio.sleep(0)
            row = {**record, "id": str(uuid.uuid4()), "revision_number": number}
            self.tables[LOG_REVISIONS].append(row)
            log["revision_count"] = number
            log["is_amended"] = True
        return dict(row)


class ConflictingLogPersistence(InMemoryLogPersistence):
    """Reports a revision number collision for the first ``conflicts`` appends."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.append_calls = 0

    async def append_revision(
        self, record: Dict[str, Any], expected_revision_count: Optional[int] = None
    ) -> Dict[str, Any]:
        self.append_calls += 1
        if self.append_calls <= self.conflicts:
            raise RevisionNumberConflict(record["incident_log_id"], self.append_calls)
        return await super().append_revision(record, expected_revision_count)
