"""Lifecycle of one unit-of-work, from session acquisition to release."""

from __future__ import annotations

from enum import Enum

from .errors import InvalidTransition


class TransactionState(str, Enum):
    IDLE = "idle"
    SESSION_OPEN = "session-open"
    TX_ACTIVE = "tx-active"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ABORTING = "aborting"
    ABORTED = "aborted"
    CLOSED = "closed"


TRANSITIONS: dict[TransactionState, frozenset[TransactionState]] = {
    TransactionState.IDLE: frozenset({TransactionState.SESSION_OPEN, TransactionState.CLOSED}),
    TransactionState.SESSION_OPEN: frozenset({TransactionState.TX_ACTIVE, TransactionState.CLOSED}),
    TransactionState.TX_ACTIVE: frozenset(
        {TransactionState.TX_ACTIVE, TransactionState.COMMITTING, TransactionState.ABORTING}
    ),
    TransactionState.COMMITTING: frozenset(
        {TransactionState.COMMITTING, TransactionState.COMMITTED, TransactionState.ABORTING}
    ),
    TransactionState.COMMITTED: frozenset({TransactionState.CLOSED}),
    TransactionState.ABORTING: frozenset({TransactionState.ABORTED}),
    TransactionState.ABORTED: frozenset({TransactionState.CLOSED}),
    TransactionState.CLOSED: frozenset(),
}


class Lifecycle:
    def __init__(self) -> None:
        self.state = TransactionState.IDLE
        self.history: list[TransactionState] = [self.state]

    def advance(self, target: TransactionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        self.state = target
        self.history.append(target)

    @property
    def transaction_active(self) -> bool:
        return self.state in (TransactionState.TX_ACTIVE, TransactionState.COMMITTING)

    @property
    def closed(self) -> bool:
        return self.state is TransactionState.CLOSED
