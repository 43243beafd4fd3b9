from __future__ import annotations

import threading
import time

import pytest

from pushcast.credentials import generate_credentials
from pushcast.models import DeliveryOutcome, Subscription


class FakeTransport:
    """Records deliveries; fails or raises for chosen endpoints."""

    def __init__(self, fail=(), explode=(), delay: float = 0.0, gate=None):
        self.fail = set(fail)
        self.explode = set(explode)
        self.delay = delay
        self.gate = gate
        self.calls: list[tuple[str, bytes]] = []
        self._lock = threading.Lock()

    def deliver(self, subscription, payload, credentials):
        with self._lock:
            self.calls.append((subscription.endpoint, payload))
        if self.gate is not None:
            self.gate.wait(5)
        if self.delay:
            time.sleep(self.delay)
        if subscription.endpoint in self.explode:
            raise RuntimeError("transport blew up")
        if subscription.endpoint in self.fail:
            return DeliveryOutcome.failure("push service returned 410")
        return DeliveryOutcome.success()


def sub(endpoint: str, p256dh: str = "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", auth: str = "tBHItJI5svbpez7KI4CCXg") -> Subscription:
    return Subscription(endpoint=endpoint, keys={"p256dh": p256dh, "auth": auth})


@pytest.fixture
def make_subscription():
    return sub


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture(scope="session")
def credentials():
    return generate_credentials()
