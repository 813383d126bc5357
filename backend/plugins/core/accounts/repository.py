"""Repository layer for tenant data purge operations."""

from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from structlog import get_logger
from utils.exceptions import CollectionUnavailable, NotFoundError, ServiceError

from .registry import IDENTITY_COLLECTION

logger = get_logger(__name__)


class TenantDataRepository:
    """Handles database operations against the registered tenant collections."""

    def __init__(self, database: AsyncIOMotorDatabase):
        if database is None:
            raise ServiceError("No database handle available for purge operations")
        self._database = database

    def _collection(self, name: str) -> AsyncIOMotorCollection:
        return self._database[name]

    async def delete_matching(self, collection: str, query: dict[str, Any]) -> int:
        """
        Deletes every document matching ``query`` in one bulk operation.

        Returns:
            The number of documents deleted.

        Raises:
            CollectionUnavailable: If a database error occurs.
        """
        try:
            result = await self._collection(collection).delete_many(query)
            return result.deleted_count
        except PyMongoError as e:
            logger.error(
                "Database error during bulk delete",
                collection=collection,
                error=str(e),
            )
            raise CollectionUnavailable(
                f"Database error while purging '{collection}': {e}"
            ) from e

    async def find_matching(
        self,
        collection: str,
        query: dict[str, Any],
        projection: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Loads all documents matching ``query``."""
        try:
            cursor = self._collection(collection).find(query, projection)
            return [doc async for doc in cursor]
        except PyMongoError as e:
            logger.error(
                "Database error while loading documents",
                collection=collection,
                error=str(e),
            )
            raise CollectionUnavailable(
                f"Database error while reading '{collection}': {e}"
            ) from e

    async def replace_array_field(
        self,
        collection: str,
        document_id: Any,
        array_field: str,
        values: list[Any],
    ) -> int:
        """Overwrites ``array_field`` of one document with ``values``; returns modified count."""
        try:
            result = await self._collection(collection).update_one(
                {"_id": document_id}, {"$set": {array_field: values}}
            )
            return result.modified_count
        except PyMongoError as e:
            logger.error(
                "Database error while rewriting array field",
                collection=collection,
                document_id=str(document_id),
                array_field=array_field,
                error=str(e),
            )
            raise CollectionUnavailable(
                f"Database error while updating '{collection}': {e}"
            ) from e

    async def update_identity(
        self,
        identity_id: Any,
        unset: list[str],
        defaults: dict[str, Any],
        collection: str = IDENTITY_COLLECTION,
    ) -> tuple[int, int]:
        """
        Applies ``$unset``/``$set`` to one identity record.

        An empty reset only checks that the record exists.

        Returns:
            A ``(matched_count, modified_count)`` pair.
        """
        update: dict[str, Any] = {}
        if unset:
            update["$unset"] = {field: "" for field in unset}
        if defaults:
            update["$set"] = dict(defaults)
        try:
            if not update:
                matched = await self._collection(collection).count_documents(
                    {"_id": identity_id}, limit=1
                )
                return matched, 0
            result = await self._collection(collection).update_one(
                {"_id": identity_id}, update
            )
            return result.matched_count, result.modified_count
        except PyMongoError as e:
            logger.error(
                "Database error while resetting identity",
                collection=collection,
                identity_id=str(identity_id),
                error=str(e),
            )
            raise CollectionUnavailable(
                f"Database error while resetting '{collection}': {e}"
            ) from e


class IdentityRepository:
    """Looks up identity records for callers of the purge service."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self._collection = collection

    async def get_by_email(self, email: str) -> dict[str, Any]:
        try:
            doc = await self._collection.find_one(
                {"email": email}, {"_id": 1, "name": 1, "email": 1}
            )
        except PyMongoError as e:
            logger.error("DB error looking up identity", email=email, error=str(e))
            raise ServiceError(f"Database error while looking up '{email}'") from e
        if not doc:
            raise NotFoundError(f"User with email {email} not found")
        return doc
