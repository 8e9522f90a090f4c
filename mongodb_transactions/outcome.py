"""Terminal results of a unit-of-work.

Exactly one of these is returned by ``TransactionController.run``. Only
``Committed`` means the writes are durable; ``CommitUnknown`` means the
server may or may not have applied them and the caller has to find out.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .errors import TransactionFailure, UnexpectedFailure
from .state import TransactionState


@dataclass(frozen=True)
class Outcome(ABC):
    """Base of the terminal results.

    ``close_error`` is set when the session could not be closed afterwards;
    it never changes which variant is returned.
    """

    states: tuple[TransactionState, ...] = ()
    close_error: UnexpectedFailure | None = None

    committed = False
    failure = None

    @abstractmethod
    def unwrap(self) -> Any:
        """Return the results, or raise the failure."""


@dataclass(frozen=True)
class Committed(Outcome):
    results: tuple[Any, ...] = ()
    commit_attempts: int = 1

    committed = True

    def unwrap(self) -> tuple[Any, ...]:
        return self.results


@dataclass(frozen=True)
class _Failed(Outcome):
    failure: TransactionFailure | None = None

    def unwrap(self) -> Any:
        raise self.failure


@dataclass(frozen=True)
class Aborted(_Failed):
    """An operation failed or commit was refused; nothing was written."""


@dataclass(frozen=True)
class CommitUnknown(_Failed):
    """Commit kept failing without a definite answer from the server."""


@dataclass(frozen=True)
class FatalError(_Failed):
    """Something outside the driver's error contract went wrong."""
