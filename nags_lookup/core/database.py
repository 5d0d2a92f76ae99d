import logging

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie
from nags_lookup.core.config import settings

logger = logging.getLogger(__name__)


async def init_db() -> AsyncIOMotorClient:
    """
    Initialize MongoDB connection and Beanie ODM.
    """
    client = AsyncIOMotorClient(settings.DATABASE_URL)

    # Selecting the database name from the URL or default
    default_db = client.get_default_database(default=settings.DATABASE_NAME)
    db_name = default_db.name
    if not db_name or db_name == "test":
        db_name = settings.DATABASE_NAME

    # Import models
    from nags_lookup.models import DOCUMENT_MODELS

    # Initialize Beanie (also creates the cache unique index)
    await init_beanie(database=client[db_name], document_models=DOCUMENT_MODELS)
    logger.info(f"Beanie initialized on database '{db_name}'")
    return client
