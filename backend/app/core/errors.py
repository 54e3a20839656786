"""
Error taxonomy for the incident log ledger.

Core components raise these; IncidentLogService converts them into explicit
result values and the API router maps ``kind`` onto an HTTP status.
"""


class IncidentLogError(Exception):
    """Base class for all ledger errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(IncidentLogError):
    """A precondition failed before anything was written."""

    kind = "validation"


class AuthorizationError(IncidentLogError):
    """The amendment gate refused the request."""

    kind = "authorization"


class RecordLookupError(IncidentLogError):
    """A referenced log or user could not be found."""

    kind = "lookup"


class PermissionLookupError(RecordLookupError):
    """The data needed for a permission decision could not be read."""

    kind = "permission_lookup"

    def __init__(self, message: str = "Unable to verify amendment permissions", missing_record: bool = False):
        super().__init__(message)
        self.missing_record = missing_record
        if missing_record:
            self.kind = RecordLookupError.kind


class PersistenceError(IncidentLogError):
    """The store was unavailable or rejected the write."""

    kind = "persistence"


class RevisionNumberConflict(PersistenceError):
    """Another revision already holds the (log, revision_number) slot."""

    def __init__(self, log_id: int, revision_number: int):
        super().__init__(
            f"Revision number {revision_number} is already taken for log {log_id}"
        )
        self.log_id = log_id
        self.revision_number = revision_number


class RevisionBaseChanged(PersistenceError):
    """The log gained a revision after the caller read its history."""

    def __init__(self, log_id: int, expected_revision_count: int):
        super().__init__(
            f"Incident log {log_id} was amended by someone else while this amendment was being recorded"
        )
        self.log_id = log_id
        self.expected_revision_count = expected_revision_count


class DuplicateRecordError(PersistenceError):
    """An insert collided with a unique column."""
