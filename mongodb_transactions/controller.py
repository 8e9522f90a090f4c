"""Runs a unit-of-work inside one transaction on one session.

```python
controller = TransactionController(MotorDriver(client), TransactionConfig.causal())
outcome = await controller.run([
    upsert(coll, {"name": "satoshi"}, satoshi),
    find_one_and_update(coll, {"name": "satoshi"}, {"$set": {"age": 30}}),
])
```

The session is released only after the transaction has been committed or
aborted, never while it is still active. Only the commit step is retried;
the operations themselves are never re-run. A caller that wants to retry a
whole transaction on ``TransientTransactionError`` checks
``outcome.failure.transient`` and calls ``run`` again.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Sequence

from .config import TransactionConfig
from .driver import Operation, TransactionDriver
from .errors import (
    AbortFailed,
    CommitFailed,
    FailureKind,
    OperationCancelled,
    OperationFailed,
    TransactionFailure,
    UnexpectedFailure,
    classify,
)
from .outcome import Aborted, Committed, CommitUnknown, FatalError, Outcome
from .state import Lifecycle, TransactionState

logger = logging.getLogger(__name__)


class TransactionController:
    def __init__(self, driver: TransactionDriver, config: TransactionConfig | None = None) -> None:
        self.driver = driver
        self.config = config or TransactionConfig()

    async def run(
        self,
        unit_of_work: Sequence[Operation],
        config: TransactionConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Outcome:
        """Run ``unit_of_work`` in a new transaction and return how it ended.

        Args:
            unit_of_work: Operations executed in order, each awaited with the session.
            config: Overrides the controller's default ``TransactionConfig``.
            cancel: When set, the running operation is interrupted and no commit
                attempt is started.

        Driver failures never escape; they are reported in the returned
        ``Outcome``. ``asyncio.CancelledError`` is re-raised after the
        transaction has been aborted and the session closed.
        """
        config = config or self.config
        lifecycle = Lifecycle()
        try:
            session = await self.driver.open_session(config.causally_consistent)
        except Exception as exc:
            logger.error("Could not open a session: %s", exc)
            lifecycle.advance(TransactionState.CLOSED)
            return FatalError(
                states=tuple(lifecycle.history),
                failure=UnexpectedFailure("Could not open a session", cause=exc),
            )
        lifecycle.advance(TransactionState.SESSION_OPEN)
        logger.debug("Session opened (causal consistency: %s)", config.causally_consistent)

        attempt = _Attempt(self.driver, session, config, lifecycle, cancel)
        try:
            outcome = await attempt.drive(unit_of_work)
        finally:
            close_error = await self._release(session, lifecycle)
        return dataclasses.replace(outcome, states=tuple(lifecycle.history), close_error=close_error)

    async def _release(self, session: Any, lifecycle: Lifecycle) -> UnexpectedFailure | None:
        """Close the session; a failure to do so is returned, never raised."""
        try:
            await self.driver.close_session(session)
        except Exception as exc:
            logger.exception("Closing the session failed")
            return UnexpectedFailure(f"Closing the session failed: {exc}", cause=exc)
        finally:
            lifecycle.advance(TransactionState.CLOSED)
        logger.debug("Session closed")
        return None


class _Attempt:
    """State of a single ``run`` call; never shared between calls."""

    def __init__(
        self,
        driver: TransactionDriver,
        session: Any,
        config: TransactionConfig,
        lifecycle: Lifecycle,
        cancel: asyncio.Event | None,
    ) -> None:
        self.driver = driver
        self.session = session
        self.config = config
        self.lifecycle = lifecycle
        self.cancel = cancel
        self.loop = asyncio.get_running_loop()
        self.deadline = None if config.timeout is None else self.loop.time() + config.timeout

    async def drive(self, unit_of_work: Sequence[Operation]) -> Outcome:
        try:
            await self.driver.start_transaction(
                self.session,
                self.config.read_consistency,
                self.config.write_durability,
                self.config.max_commit_time_ms,
            )
        except Exception as exc:
            logger.error("Could not start a transaction: %s", exc)
            return FatalError(failure=UnexpectedFailure("Could not start a transaction", cause=exc))
        self.lifecycle.advance(TransactionState.TX_ACTIVE)
        logger.info(
            "Transaction started (read: %s, write: %s)",
            self.config.read_consistency.value,
            self.config.write_durability.value,
        )

        try:
            return await self._run_to_completion(unit_of_work)
        except UnexpectedFailure as failure:
            logger.error("Unexpected failure: %s", failure)
            await self._abort(failure)
            return FatalError(failure=failure)
        except BaseException:
            # task cancellation, KeyboardInterrupt, or a bug in this module
            logger.warning("Interrupted, aborting transaction", exc_info=True)
            await self._abort(None)
            raise

    async def _run_to_completion(self, unit_of_work: Sequence[Operation]) -> Outcome:
        results = []
        try:
            for index, operation in enumerate(unit_of_work):
                self._check_cancelled(f"before operation {index}", index)
                results.append(await self._execute(index, operation))
                self.lifecycle.advance(TransactionState.TX_ACTIVE)
        except OperationFailed as failure:
            logger.warning("%s, aborting transaction", failure)
            await self._abort(failure)
            return Aborted(failure=failure)
        return await self._commit(tuple(results))

    async def _execute(self, index: int, operation: Operation) -> Any:
        """Run one operation, racing it against the cancel event and the deadline."""
        running = asyncio.ensure_future(self.driver.execute(self.session, operation))
        waiters = {running}
        stop = None
        if self.cancel is not None:
            stop = asyncio.ensure_future(self.cancel.wait())
            waiters.add(stop)
        timeout = None if self.deadline is None else max(self._remaining(), 0)
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            running.cancel()
            raise
        finally:
            if stop is not None:
                stop.cancel()

        if running in done:
            try:
                return running.result()
            except Exception as exc:
                raise OperationFailed(f"Operation {index} failed: {exc}", index=index, cause=exc) from exc

        # the operation has to unwind before the transaction is aborted
        running.cancel()
        await asyncio.gather(running, return_exceptions=True)
        if stop is not None and stop in done:
            raise OperationCancelled(f"Operation {index} cancelled", index=index, kind=FailureKind.FATAL)
        raise OperationCancelled(
            f"Operation {index} timed out", index=index, cause=asyncio.TimeoutError(), kind=FailureKind.FATAL
        )

    async def _commit(self, results: tuple[Any, ...]) -> Outcome:
        self.lifecycle.advance(TransactionState.COMMITTING)
        attempts = 0
        last_error: CommitFailed | None = None
        while True:
            try:
                self._check_cancelled("before commit", None)
            except OperationCancelled as cancelled:
                await self._abort(last_error or cancelled)
                if last_error is not None:
                    # an earlier attempt may already have been applied
                    return CommitUnknown(failure=last_error)
                return Aborted(failure=cancelled)

            attempts += 1
            logger.info("Committing transaction (attempt %d)", attempts)
            try:
                await self.driver.commit(self.session)
            except Exception as exc:
                kind = classify(exc)
                failure = CommitFailed(f"Commit failed: {exc}", attempts=attempts, cause=exc, kind=kind)
                if kind is FailureKind.RETRYABLE_COMMIT and attempts <= self.config.commit_retry_limit:
                    logger.warning("Commit result unknown, retrying: %s", exc)
                    last_error = failure
                    self.lifecycle.advance(TransactionState.COMMITTING)
                    continue
                logger.error("Commit failed (%s) after %d attempt(s): %s", kind.value, attempts, exc)
                await self._abort(failure)
                if kind is FailureKind.UNEXPECTED:
                    return FatalError(failure=failure)
                if failure.result_unknown:
                    return CommitUnknown(failure=failure)
                return Aborted(failure=failure)

            self.lifecycle.advance(TransactionState.COMMITTED)
            logger.info("Transaction committed")
            return Committed(results=results, commit_attempts=attempts)

    async def _abort(self, failure: TransactionFailure | None) -> None:
        """Abort once, if a transaction is still active.

        An abort failure is logged and attached to ``failure``; it never
        replaces it.
        """
        if not self.lifecycle.transaction_active:
            return
        self.lifecycle.advance(TransactionState.ABORTING)
        try:
            await self.driver.abort(self.session)
        except Exception as exc:
            logger.exception("Abort failed")
            if failure is not None:
                failure.abort_error = AbortFailed(f"Abort failed: {exc}", cause=exc)
        else:
            logger.info("Transaction aborted")
        finally:
            self.lifecycle.advance(TransactionState.ABORTED)

    def _check_cancelled(self, where: str, index: int | None) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise OperationCancelled(f"Cancelled {where}", index=index, kind=FailureKind.FATAL)
        if self.deadline is not None and self._remaining() <= 0:
            raise OperationCancelled(
                f"Timed out {where}", index=index, cause=asyncio.TimeoutError(), kind=FailureKind.FATAL
            )

    def _remaining(self) -> float:
        return self.deadline - self.loop.time()
