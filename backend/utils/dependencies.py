from typing import Annotated

from config import settings
from fastapi import Depends, Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase


async def get_mongo_client(request: Request) -> AsyncIOMotorClient:
    """Dependency to get the MongoDB client instance from the application state."""
    return request.app.state.mongo_client


async def get_database(
    client: Annotated[AsyncIOMotorClient, Depends(get_mongo_client)],
) -> AsyncIOMotorDatabase:
    """Dependency to get the application's default MongoDB database."""
    return client[settings.mongodb_database]
