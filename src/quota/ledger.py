import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from identity.models import Identity
from relay.errors import LedgerWriteFailure
from .models import UsageEvent, utcnow

logger = logging.getLogger(__name__)

USAGE_COLLECTION = "usage_events"


class QuotaLedger:
    """Append-only store of usage events, queried over a sliding window.

    Events are partitioned by identity kind *and* value, so an anonymous
    address and a user id never share a pool even when the strings collide.
    """

    def __init__(
        self,
        db: Optional[AsyncIOMotorDatabase] = None,
        collection: Optional[AsyncIOMotorCollection] = None,
        timeout: float = 5.0,
    ) -> None:
        if collection is not None:
            self._col = collection
        elif db is not None:
            self._col = db[USAGE_COLLECTION]
        else:
            raise ValueError("QuotaLedger requires a db or collection")
        self._timeout = timeout

    @staticmethod
    def _identity_filter(identity: Identity) -> Dict[str, Any]:
        return {"identity_kind": identity.kind, "identity_value": identity.value}

    async def count_since(self, identity: Identity, window_start: datetime) -> int:
        query = self._identity_filter(identity)
        query["occurred_at"] = {"$gte": window_start}
        try:
            count = await asyncio.wait_for(self._col.count_documents(query), timeout=self._timeout)
        except Exception as e:
            logger.warning("Usage count failed for %s identity; treating as 0: %s", identity.kind, e)
            return 0
        return int(count or 0)

    async def record(self, identity: Identity, now: Optional[datetime] = None) -> None:
        event = UsageEvent.for_identity(identity, now or utcnow())
        try:
            await self._insert(identity, event)
        except LedgerWriteFailure as e:
            logger.warning("%s", e)

    async def _insert(self, identity: Identity, event: UsageEvent) -> None:
        try:
            await asyncio.wait_for(self._col.insert_one(event.model_dump()), timeout=self._timeout)
        except Exception as e:
            raise LedgerWriteFailure(identity, e) from e
