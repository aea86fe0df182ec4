"""Exception hierarchy for the timing optimizer and submission daemon."""


class CadenceError(Exception):
    """Base exception for all Cadence errors."""


class TimingValidationError(CadenceError, ValueError):
    """Raised when caller input is missing or invalid; nothing was mutated."""


class SubmissionIndexError(TimingValidationError, IndexError):
    """Raised when a submission history index is out of range."""


class NotFoundError(CadenceError, LookupError):
    """Raised when a job, user, or timing record does not exist."""


class StateConflictError(CadenceError):
    """Raised when a transition is requested from the wrong schedule state."""


class TransientExternalError(CadenceError):
    """Raised when an external side effect (e.g. email) fails and may be retried."""


class PersistenceError(CadenceError):
    """Raised when a database read or write fails."""
