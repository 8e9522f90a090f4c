"""The session and transaction primitives the controller is built on."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession

from .config import ReadConsistency, WriteDurability

logger = logging.getLogger(__name__)

Operation = Callable[[Any], Awaitable[Any]]


class TransactionDriver(Protocol):
    async def open_session(self, causally_consistent: bool) -> Any:
        ...

    async def start_transaction(
        self,
        session: Any,
        read_consistency: ReadConsistency,
        write_durability: WriteDurability,
        max_commit_time_ms: int | None = None,
    ) -> None:
        ...

    async def execute(self, session: Any, operation: Operation) -> Any:
        ...

    async def commit(self, session: Any) -> None:
        ...

    async def abort(self, session: Any) -> None:
        ...

    async def close_session(self, session: Any) -> None:
        ...


class MotorDriver:
    """``TransactionDriver`` backed by a motor client.

    Transactions need a replica set or a sharded cluster; a standalone
    server rejects ``startTransaction``.
    """

    def __init__(self, client: AsyncIOMotorClient) -> None:
        self.client = client

    async def open_session(self, causally_consistent: bool) -> AsyncIOMotorClientSession:
        return await self.client.start_session(causal_consistency=causally_consistent)

    async def start_transaction(
        self,
        session: AsyncIOMotorClientSession,
        read_consistency: ReadConsistency,
        write_durability: WriteDurability,
        max_commit_time_ms: int | None = None,
    ) -> None:
        # The returned context manager is not entered: commit and abort are
        # issued explicitly by the controller.
        session.start_transaction(
            read_concern=read_consistency.read_concern(),
            write_concern=write_durability.write_concern(),
            max_commit_time_ms=max_commit_time_ms,
        )

    async def execute(self, session: AsyncIOMotorClientSession, operation: Operation) -> Any:
        return await operation(session)

    async def commit(self, session: AsyncIOMotorClientSession) -> None:
        await session.commit_transaction()

    async def abort(self, session: AsyncIOMotorClientSession) -> None:
        # pymongo refuses to abort once commitTransaction has been sent.
        if not session.in_transaction:
            logger.debug("Session has no transaction in progress, nothing to abort")
            return
        await session.abort_transaction()

    async def close_session(self, session: AsyncIOMotorClientSession) -> None:
        await session.end_session()
