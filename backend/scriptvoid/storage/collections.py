"""Document store adapter over motor collections.

Jobs address collections by logical name (``scripts``, ``codes``, ``users``,
``leaderboard``, ``online``); ``MongoStore`` maps those onto the two physical
databases the platform uses.
"""

import logging
from typing import Any, Optional, Protocol, Sequence

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import DeleteMany, DeleteOne, UpdateMany, UpdateOne
from pymongo.errors import BulkWriteError, PyMongoError

from scriptvoid.batch.exceptions import MutationApplyError, StoreError
from scriptvoid.batch.mutations import Mutation
from scriptvoid.batch.results import WriteCounts
from scriptvoid.config import MongoConfig

logger = logging.getLogger(__name__)

SCRIPTS = "scripts"
CODES = "codes"
USERS = "users"
LEADERBOARD = "leaderboard"
ONLINE = "online"

Sort = Sequence[tuple[str, int]]


class DocumentCollection(Protocol):
    """Operations the batch engine needs from a collection."""

    name: str

    async def count(self, filter: dict[str, Any]) -> int: ...

    async def find(
        self,
        filter: dict[str, Any],
        *,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
        projection: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]: ...

    async def bulk_apply(self, mutations: Sequence[Mutation]) -> WriteCounts: ...


class DocumentStore(Protocol):
    def collection(self, name: str) -> DocumentCollection: ...


def to_request(mutation: Mutation):
    """Translate a mutation into a pymongo bulk request."""
    if mutation.kind == "update_one":
        return UpdateOne(mutation.filter, mutation.update_document(), upsert=mutation.upsert)
    if mutation.kind == "update_many":
        return UpdateMany(mutation.filter, mutation.update_document())
    if mutation.kind == "delete_one":
        return DeleteOne(mutation.filter)
    if mutation.kind == "delete_many":
        return DeleteMany(mutation.filter)
    raise ValueError(f"Unsupported mutation kind: {mutation.kind}")


def _counts_from_details(details: dict[str, Any]) -> WriteCounts:
    return WriteCounts(
        matched=details.get("nMatched", 0),
        modified=details.get("nModified", 0),
        upserted=details.get("nUpserted", 0),
        deleted=details.get("nRemoved", 0),
    )


class MotorCollection:
    """``DocumentCollection`` backed by an ``AsyncIOMotorCollection``."""

    def __init__(self, name: str, collection: AsyncIOMotorCollection):
        self.name = name
        self._collection = collection

    async def count(self, filter: dict[str, Any]) -> int:
        try:
            return await self._collection.count_documents(filter)
        except PyMongoError as e:
            raise StoreError(f"count on {self.name} failed: {e}") from e

    async def find(
        self,
        filter: dict[str, Any],
        *,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
        projection: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        cursor = self._collection.find(filter, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        try:
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreError(f"find on {self.name} failed: {e}") from e

    async def bulk_apply(self, mutations: Sequence[Mutation]) -> WriteCounts:
        if not mutations:
            return WriteCounts()

        requests = [to_request(m) for m in mutations]
        try:
            result = await self._collection.bulk_write(requests, ordered=True)
        except BulkWriteError as e:
            applied = _counts_from_details(e.details)
            logger.error(
                f"Bulk write on {self.name} failed after "
                f"{applied.modified} modified / {applied.deleted} deleted: {e}"
            )
            raise MutationApplyError(str(e), collection=self.name, applied=applied) from e
        except PyMongoError as e:
            raise MutationApplyError(str(e), collection=self.name) from e

        return WriteCounts(
            matched=result.matched_count,
            modified=result.modified_count,
            upserted=result.upserted_count,
            deleted=result.deleted_count,
        )


class MongoStore:
    """Logical collection names mapped onto the scripts and users databases."""

    def __init__(self, client: AsyncIOMotorClient, mongo: MongoConfig):
        self.client = client
        self.mongo = mongo
        scripts_db = client[mongo.scripts_database]
        users_db = client[mongo.users_database]
        self._collections: dict[str, MotorCollection] = {
            SCRIPTS: MotorCollection(SCRIPTS, scripts_db[mongo.scripts_collection]),
            CODES: MotorCollection(CODES, scripts_db[mongo.codes_collection]),
            USERS: MotorCollection(USERS, users_db[mongo.users_collection]),
            LEADERBOARD: MotorCollection(LEADERBOARD, users_db[mongo.leaderboard_collection]),
            ONLINE: MotorCollection(ONLINE, users_db[mongo.online_collection]),
        }

    def collection(self, name: str) -> MotorCollection:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(
                f"Unknown collection '{name}'. Available: {sorted(self._collections)}"
            ) from None
