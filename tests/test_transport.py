from __future__ import annotations

from types import SimpleNamespace

import requests
from pywebpush import WebPushException

from pushcast import transport as T


def _transport() -> T.WebPushTransport:
    return T.WebPushTransport(subject="mailto:ops@example.com", ttl=30, timeout=2.5)


def test_successful_delivery_passes_vapid_options(monkeypatch, make_subscription, credentials):
    seen: list[dict] = []

    def fake_webpush(**kwargs):
        kwargs["vapid_claims"]["aud"] = "https://push.example"
        seen.append(kwargs)
        return SimpleNamespace(status_code=201)

    monkeypatch.setattr(T, "webpush", fake_webpush)
    transport = _transport()
    subscription = make_subscription("https://push.example/A")

    first = transport.deliver(subscription, b"hi", credentials)
    second = transport.deliver(subscription, b"hi", credentials)

    assert first.ok and second.ok
    call = seen[0]
    assert call["subscription_info"] == {
        "endpoint": "https://push.example/A",
        "keys": {
            "p256dh": subscription.keys.p256dh,
            "auth": subscription.keys.auth,
        },
    }
    assert call["data"] == b"hi"
    assert call["vapid_private_key"] is credentials.signer
    assert call["ttl"] == 30
    assert call["timeout"] == 2.5
    assert seen[1]["vapid_claims"] == {"sub": "mailto:ops@example.com", "aud": "https://push.example"}
    assert seen[0]["vapid_claims"] is not seen[1]["vapid_claims"]


def test_push_service_rejection_is_a_failure(monkeypatch, make_subscription, credentials):
    def gone(**kwargs):
        raise WebPushException("Push failed", response=SimpleNamespace(status_code=410))

    monkeypatch.setattr(T, "webpush", gone)
    outcome = _transport().deliver(make_subscription("https://push.example/A"), b"x", credentials)

    assert outcome.ok is False
    assert outcome.reason == "push service returned 410"


def test_network_error_is_a_failure(monkeypatch, make_subscription, credentials):
    def timeout(**kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(T, "webpush", timeout)
    outcome = _transport().deliver(make_subscription("https://push.example/A"), b"x", credentials)

    assert outcome.ok is False
    assert outcome.reason.startswith("Timeout")


def test_unexpected_error_is_a_failure(monkeypatch, make_subscription, credentials):
    def boom(**kwargs):
        raise ValueError("bad key")

    monkeypatch.setattr(T, "webpush", boom)
    outcome = _transport().deliver(make_subscription("https://push.example/A"), b"x", credentials)

    assert outcome.ok is False
    assert "bad key" in outcome.reason
