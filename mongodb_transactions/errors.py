"""Failure classification and the failures surfaced in an ``Outcome``."""

from __future__ import annotations

from enum import Enum

from pymongo.errors import OperationFailure, PyMongoError

UNKNOWN_COMMIT_RESULT = "UnknownTransactionCommitResult"
TRANSIENT_TRANSACTION_ERROR = "TransientTransactionError"

MAX_TIME_MS_EXPIRED = 50


class FailureKind(str, Enum):
    RETRYABLE_COMMIT = "retryable-commit"
    TRANSIENT_TRANSACTION = "transient-transaction"
    FATAL = "fatal"
    UNEXPECTED = "unexpected"


def _max_time_expired(exc: BaseException) -> bool:
    return isinstance(exc, OperationFailure) and exc.code == MAX_TIME_MS_EXPIRED


def commit_result_unknown(exc: BaseException) -> bool:
    """True if the server may or may not have applied the commit."""
    return isinstance(exc, PyMongoError) and exc.has_error_label(UNKNOWN_COMMIT_RESULT)


def classify(exc: BaseException) -> FailureKind:
    """Sort an exception into one of the ``FailureKind`` buckets.

    Commit is only worth retrying when its result is unknown. A commit that
    ran out of ``maxTimeMS`` carries the same label but would just time out
    again, so it is fatal, as in pymongo's ``with_transaction``.
    """
    if not isinstance(exc, PyMongoError):
        return FailureKind.UNEXPECTED
    if exc.has_error_label(UNKNOWN_COMMIT_RESULT) and not _max_time_expired(exc):
        return FailureKind.RETRYABLE_COMMIT
    if exc.has_error_label(TRANSIENT_TRANSACTION_ERROR):
        return FailureKind.TRANSIENT_TRANSACTION
    return FailureKind.FATAL


class TransactionFailure(Exception):
    """Base class for every failure a unit-of-work can end with.

    ``cause`` is the exception reported by the driver or the operation, also
    chained as ``__cause__``. ``abort_error`` records an ``AbortFailed`` when
    the abort that followed this failure went wrong too; it never replaces
    the failure itself.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None, kind: FailureKind | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.__cause__ = cause
        if kind is None:
            kind = classify(cause) if cause is not None else FailureKind.UNEXPECTED
        self.kind = kind
        self.abort_error: AbortFailed | None = None

    @property
    def transient(self) -> bool:
        """The caller may re-run the whole unit-of-work."""
        return self.kind is FailureKind.TRANSIENT_TRANSACTION


class OperationFailed(TransactionFailure):
    def __init__(self, message: str, *, index: int | None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.index = index


class OperationCancelled(OperationFailed):
    """The unit-of-work timed out or its cancel event was set."""


class CommitFailed(TransactionFailure):
    def __init__(self, message: str, *, attempts: int, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts

    @property
    def result_unknown(self) -> bool:
        return self.cause is not None and commit_result_unknown(self.cause)


class AbortFailed(TransactionFailure):
    pass


class UnexpectedFailure(TransactionFailure):
    pass


class InvalidTransition(UnexpectedFailure):
    def __init__(self, current, target) -> None:
        super().__init__(f"Invalid transaction state transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target
