from typing import Any, Iterable

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from plugins.core.accounts.registry import (
    IDENTITY_COLLECTION,
    CollectionDescriptor,
    index_definitions,
)
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

logger = structlog.get_logger(__name__)

BASE_INDEX_DEFINITIONS: dict[str, list[dict[str, Any]]] = {
    IDENTITY_COLLECTION: [
        {"keys": [("email", ASCENDING)], "options": {"unique": True}},
    ],
}


def build_index_definitions(
    registry: Iterable[CollectionDescriptor],
) -> dict[str, list[dict[str, Any]]]:
    """Base indexes plus one index per tenant reference path in ``registry``."""
    definitions = {name: list(indexes) for name, indexes in BASE_INDEX_DEFINITIONS.items()}
    for collection_name, indexes in index_definitions(registry).items():
        definitions.setdefault(collection_name, []).extend(indexes)
    return definitions


async def ensure_indexes(
    db: AsyncIOMotorDatabase, registry: Iterable[CollectionDescriptor]
) -> None:
    """
    Create any missing index so purge filters never scan whole collections.

    Idempotent; a failure on one collection is logged and the rest continue.
    """
    logger.info("Starting database index verification and creation...")
    for collection_name, indexes in build_index_definitions(registry).items():
        try:
            collection = db[collection_name]
            for index in indexes:
                keys = index["keys"]
                await collection.create_index(
                    keys,
                    name=f"{collection_name}_{'_'.join(k[0] for k in keys)}_idx",
                    **index.get("options", {}),
                )
            logger.info(
                "Indexes ensured for collection",
                collection=collection_name,
                count=len(indexes),
            )
        except PyMongoError as e:
            logger.error(
                "Failed to create indexes for collection",
                collection=collection_name,
                error=str(e),
            )
    logger.info("Database index verification complete.")
