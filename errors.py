"""Exception taxonomy for career-memory.

Adapter errors (embedding, store transport) propagate to the caller unchanged;
nothing in this package retries on its own.
"""


class CareerMemoryError(Exception):
    """Base class for every error raised by career-memory."""


class EmbeddingUnavailable(CareerMemoryError):
    """The embedding provider failed, returned nothing, or timed out."""


class StoreUnavailable(CareerMemoryError):
    """The vector table could not be reached or the call timed out."""


class StoreWriteFailed(StoreUnavailable):
    """A write was rejected or not acknowledged by the vector table."""


class InvalidAction(CareerMemoryError, ValueError):
    """Unsupported action or missing/malformed input for the chosen action."""


class RecordNotFound(CareerMemoryError, LookupError):
    """No record with the given id exists for the given user."""

    def __init__(self, record_id: str, user_id: str) -> None:
        super().__init__(f"Record {record_id} not found for user {user_id}")
        self.record_id = record_id
        self.user_id = user_id


class DimensionMismatch(CareerMemoryError, ValueError):
    """A vector (or an existing table) does not match the configured dimension."""

    def __init__(self, expected: int, actual: int, where: str = "vector") -> None:
        super().__init__(f"{where} has dimension {actual}, expected {expected}")
        self.expected = expected
        self.actual = actual
