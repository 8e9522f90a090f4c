import os

import pytest
import pytest_asyncio
from motor.motor_asyncio import AsyncIOMotorClient

MONGO_URI = os.getenv("MONGO_URI")


@pytest_asyncio.fixture
async def mongo_client():
    client = AsyncIOMotorClient(MONGO_URI)
    yield client
    client.close()


@pytest_asyncio.fixture
async def test_db(mongo_client):
    db = mongo_client["test_transactions"]
    yield db
    await mongo_client.drop_database("test_transactions")


@pytest_asyncio.fixture
async def test_coll(test_db):
    coll = test_db["testcoll"]
    # Collections cannot be created implicitly by concurrent transactions
    if "testcoll" not in await test_db.list_collection_names():
        await test_db.create_collection("testcoll")
    yield coll
    await coll.delete_many({})


class FakeSession:
    def __init__(self, number, causally_consistent, committed):
        self.number = number
        self.causally_consistent = causally_consistent
        self.committed = committed
        self.snapshot = None
        self.writes = {}
        self.in_transaction = False
        self.ended = False

    def read(self, name):
        """Snapshot taken at transaction start, plus this session's own writes."""
        if name in self.writes:
            return self.writes[name]
        return self.snapshot.get(name)

    def write(self, name, document):
        self.writes[name] = dict(document)


class FakeDriver:
    """In-memory ``TransactionDriver`` recording every primitive call.

    Failures are scripted per primitive: ``execute_errors`` maps an operation
    index to the exception it raises, ``commit_errors`` is consumed one
    exception per commit attempt.
    """

    def __init__(self):
        self.documents = {}
        self.calls = []
        self.sessions = []
        self.open_error = None
        self.start_error = None
        self.execute_errors = {}
        self.commit_errors = []
        self.abort_error = None
        self.close_error = None
        self.transaction_options = None

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    def names(self):
        return [call[0] for call in self.calls]

    async def open_session(self, causally_consistent):
        self.calls.append(("open_session", None))
        if self.open_error is not None:
            raise self.open_error
        session = FakeSession(len(self.sessions), causally_consistent, self.documents)
        self.sessions.append(session)
        return session

    async def start_transaction(self, session, read_consistency, write_durability, max_commit_time_ms=None):
        self.calls.append(("start_transaction", session.number))
        if self.start_error is not None:
            raise self.start_error
        self.transaction_options = (read_consistency, write_durability, max_commit_time_ms)
        session.snapshot = {name: dict(doc) for name, doc in self.documents.items()}
        session.writes = {}
        session.in_transaction = True

    async def execute(self, session, operation):
        index = self.count("execute")
        self.calls.append(("execute", session.number))
        if index in self.execute_errors:
            raise self.execute_errors[index]
        return await operation(session)

    async def commit(self, session):
        self.calls.append(("commit", session.number))
        if self.commit_errors:
            raise self.commit_errors.pop(0)
        self.documents.update(session.writes)
        session.in_transaction = False

    async def abort(self, session):
        self.calls.append(("abort", session.number))
        session.writes = {}
        session.in_transaction = False
        if self.abort_error is not None:
            raise self.abort_error

    async def close_session(self, session):
        self.calls.append(("close_session", session.number))
        session.ended = True
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def driver():
    return FakeDriver()
