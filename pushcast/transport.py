"""Delivery of one encrypted payload to one push endpoint."""

from __future__ import annotations

from typing import Protocol

import requests
from pywebpush import WebPushException, webpush

from .credentials import VapidCredentials
from .models import DeliveryOutcome, Subscription


class DeliveryTransport(Protocol):
    """Sends a payload to a single subscription.

    Implementations must not raise; every failure is returned as
    ``DeliveryOutcome.failure``. They are called from worker threads.
    """

    def deliver(
        self,
        subscription: Subscription,
        payload: bytes,
        credentials: VapidCredentials,
    ) -> DeliveryOutcome:  # pragma: no cover (interface)
        ...


class WebPushTransport:
    """RFC 8291 encrypted, VAPID signed delivery through pywebpush."""

    def __init__(self, subject: str, ttl: int = 30, timeout: float = 10.0) -> None:
        self.subject = subject
        self.ttl = ttl
        self.timeout = timeout
        self._session = requests.Session()

    def deliver(
        self,
        subscription: Subscription,
        payload: bytes,
        credentials: VapidCredentials,
    ) -> DeliveryOutcome:
        try:
            webpush(
                subscription_info=subscription.info(),
                data=payload,
                vapid_private_key=credentials.signer,
                # pywebpush adds "aud" and "exp" to the dict it is given
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
                timeout=self.timeout,
                requests_session=self._session,
            )
        except WebPushException as exc:
            response = getattr(exc, "response", None)
            if response is not None:
                return DeliveryOutcome.failure(
                    f"push service returned {response.status_code}"
                )
            return DeliveryOutcome.failure(str(exc))
        except requests.RequestException as exc:
            return DeliveryOutcome.failure(f"{type(exc).__name__}: {exc}")
        except Exception as exc:  # noqa: BLE001
            return DeliveryOutcome.failure(repr(exc))
        return DeliveryOutcome.success()

    def close(self) -> None:
        self._session.close()
