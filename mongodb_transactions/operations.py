"""Operation factories for a unit-of-work.

Each factory binds a collection and its arguments and returns a coroutine
function that takes the session the controller opened.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from .driver import Operation


def address_document(name: str, **address: str) -> dict[str, Any]:
    return {
        "name": name,
        "address": dict(address),
        "lastModified": datetime.now(timezone.utc),
    }


def insert_one(collection: AsyncIOMotorCollection, document: Mapping[str, Any]) -> Operation:
    async def insert(session):
        result = await collection.insert_one(dict(document), session=session)
        return result.inserted_id

    return insert


def upsert(collection: AsyncIOMotorCollection, filter: Mapping[str, Any], document: Mapping[str, Any]) -> Operation:
    """Replace the document matching ``filter``, inserting it if there is none."""

    async def replace(session):
        result = await collection.replace_one(filter, dict(document), upsert=True, session=session)
        return result.upserted_id

    return replace


def update_one(collection: AsyncIOMotorCollection, filter: Mapping[str, Any], update: Mapping[str, Any]) -> Operation:
    async def update(session):
        result = await collection.update_one(filter, update, session=session)
        return result.modified_count

    return update


def delete_one(collection: AsyncIOMotorCollection, filter: Mapping[str, Any]) -> Operation:
    async def delete(session):
        result = await collection.delete_one(filter, session=session)
        return result.deleted_count

    return delete


def find_one_and_update(
    collection: AsyncIOMotorCollection, filter: Mapping[str, Any], update: Mapping[str, Any]
) -> Operation:
    """Returns the document as it is after ``update``, or None if nothing matched."""

    async def find_and_update(session):
        return await collection.find_one_and_update(
            filter, update, return_document=ReturnDocument.AFTER, session=session
        )

    return find_and_update
