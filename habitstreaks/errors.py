"""
errors.py — Error taxonomy for the streak engine.
Validation and ownership errors are raised before any ledger write;
everything raised after the first write has already rolled the session back.
"""


class HabitEngineError(Exception):
    """Base class for every error the engine raises on purpose."""

    status_code = 500

    def __init__(self, message: str, **meta):
        super().__init__(message)
        self.message = message
        self.meta = meta


class ValidationError(HabitEngineError):
    """Malformed date, value, delta or habit definition."""

    status_code = 400


class NotFoundError(HabitEngineError):
    """Habit (or custom rule) does not exist, or is not owned by the caller."""

    status_code = 404


class ObligationMismatch(HabitEngineError):
    """Write targets a date the habit's schedule does not require."""

    status_code = 422


class ConflictError(HabitEngineError):
    """Another mutation holds the habit's exclusive section. Retry."""

    status_code = 409


class RecalculationFailed(HabitEngineError):
    """Ledger or streak write failed mid-transaction; nothing was persisted."""

    status_code = 500
