"""Two sample transactions against a replica set.

Usage:
    MONGO_URI="mongodb://localhost:27017/?replicaSet=rs0" python -m mongodb_transactions.main basic
    python -m mongodb_transactions.main causal --uri mongodb://db0,db1,db2/?replicaSet=rs0 --retries 2

``basic`` inserts two documents with the driver's default consistency.
``causal`` upserts them in a causally consistent session with snapshot reads
and majority writes, then reads back and modifies one of them in the same
transaction.
"""

import argparse
import asyncio
import sys

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

from .config import PRESETS, Settings
from .controller import TransactionController
from .driver import MotorDriver, Operation
from .log import configure_logging
from .operations import address_document, find_one_and_update, insert_one, upsert

SATOSHI_ADDRESS = {"country": "日本", "pref": "神奈川", "city": "横浜", "zipcode": "220-0001"}
VIGYAN_ADDRESS = {
    "country": "Australia",
    "state": "VIC",
    "city": "Melbourne",
    "street": "120 Collins Street",
    "postcode": "3000",
}


def basic_unit_of_work(coll: AsyncIOMotorCollection) -> list[Operation]:
    return [
        insert_one(coll, address_document("satoshi", **SATOSHI_ADDRESS)),
        insert_one(coll, address_document("vigyan", **VIGYAN_ADDRESS)),
    ]


def causal_unit_of_work(coll: AsyncIOMotorCollection) -> list[Operation]:
    return [
        upsert(coll, {"name": "satoshi"}, address_document("satoshi", **SATOSHI_ADDRESS)),
        upsert(coll, {"name": "vigyan"}, address_document("vigyan", **VIGYAN_ADDRESS)),
        find_one_and_update(
            coll,
            {"name": "satoshi"},
            {"$set": {"address.city": "川崎"}, "$currentDate": {"lastModified": True}},
        ),
    ]


UNITS_OF_WORK = {
    "basic": basic_unit_of_work,
    "causal": causal_unit_of_work,
}


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more: {value}")
    return number


def positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {value}")
    return number


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a sample multi-document transaction")
    parser.add_argument("variant", nargs="?", choices=sorted(PRESETS), default="basic")
    parser.add_argument("--uri", help="connection string (default: $MONGO_URI)")
    parser.add_argument("--database", help="database name")
    parser.add_argument("--collection", help="collection name")
    parser.add_argument("--retries", type=non_negative_int, help="commit retry limit")
    parser.add_argument("--timeout", type=positive_float, help="seconds allowed for the whole transaction")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        "uri": args.uri,
        "database": args.database,
        "collection": args.collection,
        "commit_retry_limit": args.retries,
        "timeout": args.timeout,
        "log_level": args.log_level,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


async def main(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    configure_logging(settings)

    client = AsyncIOMotorClient(settings.uri)
    try:
        coll = client[settings.database][settings.collection]
        controller = TransactionController(MotorDriver(client))
        outcome = await controller.run(
            UNITS_OF_WORK[args.variant](coll),
            settings.transaction_config(args.variant),
        )
    finally:
        client.close()

    if outcome.committed:
        print("Transaction committed.")
        for result in outcome.results:
            print(f"  {result}")
        return 0
    print(f"Transaction {type(outcome).__name__.lower()} due to error: {outcome.failure}")
    if outcome.failure.abort_error is not None:
        print(f"  abort also failed: {outcome.failure.abort_error}")
    return 1


def cli() -> None:
    sys.exit(asyncio.run(main(parse_args())))


if __name__ == "__main__":
    cli()
