from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from identity.models import Identity


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity_kind: Literal["user", "anonymous"]
    identity_value: str
    occurred_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def for_identity(cls, identity: Identity, occurred_at: datetime) -> "UsageEvent":
        return cls(identity_kind=identity.kind, identity_value=identity.value, occurred_at=occurred_at)


@dataclass
class RateDecision:
    allowed: bool
    identity: Identity
    current_count: int
    limit: int

    @property
    def remaining(self) -> int:
        # an accepted request has already been charged
        used = self.current_count + (1 if self.allowed else 0)
        return max(0, self.limit - used)
