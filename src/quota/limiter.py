import logging
from datetime import datetime, timedelta
from typing import Optional

from identity.models import Identity, is_anonymous
from .ledger import QuotaLedger
from .models import RateDecision, utcnow

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-identity sliding-window limiter on top of a QuotaLedger.

    Count and record are two separate ledger calls, so concurrent requests for
    the same identity can overshoot the limit slightly. The limit is soft.
    """

    def __init__(
        self,
        ledger: QuotaLedger,
        auth_limit: int = 20,
        anon_limit: int = 10,
        window_seconds: int = 3600,
    ) -> None:
        self._ledger = ledger
        self._auth_limit = auth_limit
        self._anon_limit = anon_limit
        self._window = timedelta(seconds=window_seconds)

    def limit_for(self, identity: Identity) -> int:
        return self._anon_limit if is_anonymous(identity) else self._auth_limit

    async def reserve(self, identity: Identity, now: Optional[datetime] = None) -> RateDecision:
        """Reserve one request for ``identity`` or reject it.

        Quota is charged on attempt: an accepted request is recorded before the
        upstream call is made, whatever its outcome.
        """
        now = now or utcnow()
        limit = self.limit_for(identity)
        count = await self._ledger.count_since(identity, now - self._window)

        if count >= limit:
            logger.info("Rate limit reached for %s identity (%d/%d)", identity.kind, count, limit)
            return RateDecision(allowed=False, identity=identity, current_count=count, limit=limit)

        await self._ledger.record(identity, now)
        return RateDecision(allowed=True, identity=identity, current_count=count, limit=limit)
