from __future__ import annotations


class FeedbackError(RuntimeError):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFound(FeedbackError):
    """Board, suggestion or roadmap item is absent."""

    status_code = 404


class Forbidden(FeedbackError):
    """Visibility, voting, submission or ownership rule rejected the caller."""

    status_code = 403


class Conflict(FeedbackError):
    """
    A concurrent duplicate vote insert won the unique index race.
    Recovered inside the vote ledger; never surfaced to end callers.
    """

    status_code = 409


class StoreUnavailable(FeedbackError):
    """Transient store I/O failure. Retryable by the calling layer."""

    status_code = 503


class ValidationError(FeedbackError):
    status_code = 400

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors
