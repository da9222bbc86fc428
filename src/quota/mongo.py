import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .ledger import USAGE_COLLECTION

logger = logging.getLogger(__name__)

DEFAULT_URI = "mongodb://localhost:27017/chat_relay"
DEFAULT_DB = "chat_relay"

# serves count_since: equality on kind and value, range on occurred_at
USAGE_INDEX_KEYS = [("identity_kind", 1), ("identity_value", 1), ("occurred_at", -1)]
USAGE_INDEX_NAME = "identity_occurred_at_v1"

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def _database_name(uri: str, env: Mapping[str, str]) -> str:
    path = urlparse(uri).path.strip("/")
    return path or env.get("MONGODB_DB", DEFAULT_DB)


def _client_options(env: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "maxPoolSize": int(env.get("MONGODB_MAX_POOL_SIZE", "100")),
        "connectTimeoutMS": int(env.get("MONGODB_CONNECT_TIMEOUT_MS", "10000")),
        "socketTimeoutMS": int(env.get("MONGODB_SOCKET_TIMEOUT_MS", "20000")),
        "serverSelectionTimeoutMS": int(env.get("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "5000")),
        # window starts are aware UTC datetimes, stored values must compare with them
        "tz_aware": True,
    }


def get_db() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("Mongo DB not initialized. Call init_mongo() first.")
    return _db


async def init_mongo(
    environ: Optional[Mapping[str, str]] = None,
    client_factory: Callable[..., AsyncIOMotorClient] = AsyncIOMotorClient,
) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    """Connect to the usage store and ensure the ledger index.

    Reads MONGODB_URI and pool/timeout tuning from the environment. An
    unreachable server only logs a warning here; the ledger fails open.
    """
    global _client, _db
    env = os.environ if environ is None else environ
    uri = env.get("MONGODB_URI", DEFAULT_URI)

    try:
        client = client_factory(uri, **_client_options(env))
    except Exception as e:
        logger.exception("Failed to create MongoDB client: %s", e)
        raise

    db_name = _database_name(uri, env)
    db = client[db_name]
    try:
        await db.command("ping")
        logger.info("Connected to MongoDB database '%s'", db_name)
    except Exception as e:
        logger.warning("MongoDB ping failed for '%s': %s", db_name, e)

    await ensure_usage_index(db)
    _client, _db = client, db
    return client, db


async def close_mongo() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


async def ensure_usage_index(db: AsyncIOMotorDatabase) -> bool:
    try:
        await db[USAGE_COLLECTION].create_index(USAGE_INDEX_KEYS, name=USAGE_INDEX_NAME)
    except Exception as e:
        logger.warning("Failed to ensure index %s on %s: %s", USAGE_INDEX_NAME, USAGE_COLLECTION, e)
        return False
    logger.info("Index %s ensured on %s", USAGE_INDEX_NAME, USAGE_COLLECTION)
    return True
