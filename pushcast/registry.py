"""In-process store of push subscriptions keyed by endpoint."""

from __future__ import annotations

import threading
from typing import Optional

from .models import Subscription


class SubscriptionRegistry:
    """Thread-safe mapping of endpoint URI to the latest registered subscription.

    Records are immutable, so a re-registration swaps one whole record for
    another under the lock. Snapshots are tuples copied under the same lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Subscription] = {}

    def register(self, subscription: Subscription) -> bool:
        """Insert or overwrite. Returns True when the endpoint was new."""

        with self._lock:
            created = subscription.endpoint not in self._subscriptions
            self._subscriptions[subscription.endpoint] = subscription
        return created

    def snapshot(self) -> tuple[Subscription, ...]:
        with self._lock:
            return tuple(self._subscriptions.values())

    def get(self, endpoint: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(endpoint)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def __contains__(self, endpoint: object) -> bool:
        with self._lock:
            return endpoint in self._subscriptions
