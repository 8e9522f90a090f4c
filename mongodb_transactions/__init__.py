"""Client-side lifecycle of multi-document MongoDB transactions."""

from .config import ReadConsistency, Settings, TransactionConfig, WriteDurability
from .controller import TransactionController
from .driver import MotorDriver, Operation, TransactionDriver
from .errors import (
    AbortFailed,
    CommitFailed,
    FailureKind,
    InvalidTransition,
    OperationCancelled,
    OperationFailed,
    TransactionFailure,
    UnexpectedFailure,
    classify,
)
from .outcome import Aborted, Committed, CommitUnknown, FatalError, Outcome
from .state import TransactionState

__version__ = "0.1.0"
