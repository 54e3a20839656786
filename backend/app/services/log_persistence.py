"""
Persistence port for the incident log ledger.

The ledger services only talk to storage through ``LogPersistencePort`` so
they can run against PostgreSQL, SQLite or an in-memory fake. Records cross
the port as plain dicts keyed by column name.

``append_revision`` is the one write that needs more than an insert: it
assigns the next revision number for the log, inserts the revision under it
and marks the log as amended, all in one transaction.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import case, func, inspect, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors import (
    DuplicateRecordError,
    PersistenceError,
    RecordLookupError,
    RevisionBaseChanged,
    RevisionNumberConflict,
)
from backend.app.core.logging import get_logger
from backend.app.models.incident_log_orm import IncidentLogORM
from backend.app.models.log_revision_orm import LogRevisionORM
from backend.app.models.user_orm import UserORM

logger = get_logger(__name__)

INCIDENT_LOGS = "incident_logs"
LOG_REVISIONS = "incident_log_revisions"
USERS = "users"

Record = Dict[str, Any]
OrderBy = Union[str, Sequence[str], None]


class LogPersistencePort(ABC):
    """Minimal storage interface consumed by the ledger services."""

    @abstractmethod
    async def insert(self, table: str, record: Record) -> Record:
        """Insert ``record`` and return it with generated columns filled in."""

    @abstractmethod
    async def select_one(self, table: str, filters: Record) -> Optional[Record]:
        """Return the first row matching every filter, or None."""

    @abstractmethod
    async def select_many(self, table: str, filters: Record, order_by: OrderBy = None) -> List[Record]:
        """Return all rows matching every filter, ascending by ``order_by``."""

    @abstractmethod
    async def append_revision(self, record: Record, expected_revision_count: Optional[int] = None) -> Record:
        """
        Atomically assign the next revision number for
        ``record["incident_log_id"]``, insert the revision and set the log's
        ``is_amended`` flag.

        ``expected_revision_count`` is the highest revision number the caller
        saw when it computed ``old_value``. If given and another revision has
        landed since, nothing is written and RevisionBaseChanged is raised.

        Raises RecordLookupError if the log does not exist and
        RevisionNumberConflict if the number was taken concurrently.
        """


class SqlAlchemyLogPersistence(LogPersistencePort):
    """
    Port implementation over an async SQLAlchemy session factory.

    Each call runs in its own session and commits on success, so a failed
    call never leaves a partial write behind.
    """

    _MODELS = {
        INCIDENT_LOGS: IncidentLogORM,
        LOG_REVISIONS: LogRevisionORM,
        USERS: UserORM,
    }

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _get_session(self):
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    def _model(self, table: str):
        try:
            return self._MODELS[table]
        except KeyError:
            raise PersistenceError(f"Unknown table '{table}'")

    @staticmethod
    def _to_record(obj) -> Record:
        return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}

    @staticmethod
    def _order_columns(model, order_by: OrderBy):
        if order_by is None:
            return []
        names = [order_by] if isinstance(order_by, str) else list(order_by)
        return [getattr(model, name).asc() for name in names]

    async def insert(self, table: str, record: Record) -> Record:
        model = self._model(table)
        try:
            async with self._get_session() as s:
                obj = model(**record)
                s.add(obj)
                await s.flush()
                await s.refresh(obj)
                return self._to_record(obj)
        except IntegrityError as e:
            logger.warning(f"Insert into {table} rejected: {e.orig}")
            raise DuplicateRecordError(f"Write to {table} rejected by a uniqueness or integrity constraint")
        except SQLAlchemyError as e:
            logger.error(f"Insert into {table} failed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to write to {table}")

    async def select_one(self, table: str, filters: Record) -> Optional[Record]:
        model = self._model(table)
        try:
            async with self._get_session() as s:
                result = await s.execute(select(model).filter_by(**filters).limit(1))
                obj = result.scalars().first()
                return self._to_record(obj) if obj is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Select from {table} failed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read from {table}")

    async def select_many(self, table: str, filters: Record, order_by: OrderBy = None) -> List[Record]:
        model = self._model(table)
        try:
            async with self._get_session() as s:
                query = select(model).filter_by(**filters).order_by(*self._order_columns(model, order_by))
                result = await s.execute(query)
                return [self._to_record(obj) for obj in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Select from {table} failed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read from {table}")

    async def append_revision(self, record: Record, expected_revision_count: Optional[int] = None) -> Record:
        log_id = record["incident_log_id"]
        revision_number = None

        # The counter on the log row is the primary source; the subquery lets
        # the counter recover if revisions were ever written around it.
        highest_existing = (
            select(func.coalesce(func.max(LogRevisionORM.revision_number), 0))
            .where(LogRevisionORM.incident_log_id == log_id)
            .scalar_subquery()
        )
        next_number = case(
            (IncidentLogORM.revision_count >= highest_existing, IncidentLogORM.revision_count),
            else_=highest_existing,
        ) + 1
        claim = (
            update(IncidentLogORM)
            .where(IncidentLogORM.id == log_id)
            .values(revision_count=next_number, is_amended=True)
            .returning(IncidentLogORM.revision_count)
            .execution_options(synchronize_session=False)
        )
        if expected_revision_count is not None:
            claim = claim.where(next_number == expected_revision_count + 1)

        try:
            async with self._get_session() as s:
                # Row-locks the log on PostgreSQL until commit
                revision_number = (await s.execute(claim)).scalar_one_or_none()
                if revision_number is None:
                    exists = (await s.execute(select(IncidentLogORM.id).where(IncidentLogORM.id == log_id))).first()
                    if exists is None:
                        raise RecordLookupError(f"Incident log {log_id} not found")
                    raise RevisionBaseChanged(log_id, expected_revision_count)

                revision = LogRevisionORM(**record, revision_number=revision_number)
                s.add(revision)
                await s.flush()
                await s.refresh(revision)
                return self._to_record(revision)
        except IntegrityError:
            if revision_number is None:
                raise PersistenceError(f"Failed to claim a revision number for log {log_id}")
            raise RevisionNumberConflict(log_id, revision_number)
        except SQLAlchemyError as e:
            logger.error(f"Revision append for log {log_id} failed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record revision for log {log_id}")
