from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionKeys(BaseModel):
    model_config = ConfigDict(frozen=True)

    p256dh: str
    auth: str


class Subscription(BaseModel):
    """A browser push subscription. Identity is the endpoint URI."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., min_length=1)
    expirationTime: Optional[float] = None
    # required on purpose: without keys nothing can be encrypted, so reject as malformed
    keys: SubscriptionKeys

    def info(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SubscribeRequest(BaseModel):
    subscription: Subscription


class NotifyRequest(BaseModel):
    message: Optional[str] = None


class PublicKey(BaseModel):
    publicKey: str


class Health(BaseModel):
    status: str
    time: str
    subscriptions: int


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Result of one delivery attempt."""

    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "DeliveryOutcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "DeliveryOutcome":
        return cls(ok=False, reason=reason)


@dataclass(frozen=True, slots=True)
class BroadcastResult:
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def as_dict(self) -> Dict[str, int]:
        return {"succeeded": self.succeeded, "failed": self.failed}


class JobState(str, Enum):
    DISPATCHED = "dispatched"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
