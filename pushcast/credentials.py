"""VAPID signing credentials used to authenticate outbound pushes."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from py_vapid import Vapid

logger = logging.getLogger(__name__)


class CredentialGenerationError(RuntimeError):
    """The VAPID key pair could not be created or loaded."""


@dataclass(frozen=True)
class VapidCredentials:
    public_key: str
    private_key: str
    signer: Vapid


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _from_vapid(vapid: Vapid) -> VapidCredentials:
    point = vapid.public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )
    scalar = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    return VapidCredentials(
        public_key=_b64encode(point),
        private_key=_b64encode(scalar),
        signer=vapid,
    )


def generate_credentials() -> VapidCredentials:
    try:
        vapid = Vapid()
        vapid.generate_keys()
        return _from_vapid(vapid)
    except Exception as exc:
        raise CredentialGenerationError(f"failed to generate VAPID keys: {exc}") from exc


def load_credentials(private_key: str) -> VapidCredentials:
    """Rebuild a key pair from a base64url encoded raw P-256 private key."""

    try:
        raw = _b64decode(private_key.strip())
        if len(raw) != 32:
            raise ValueError(f"expected 32 byte key, got {len(raw)}")
        key = ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())
        return _from_vapid(Vapid(private_key=key))
    except Exception as exc:
        raise CredentialGenerationError(f"invalid VAPID private key: {exc}") from exc


def resolve_credentials(private_key: str | None) -> VapidCredentials:
    if private_key:
        creds = load_credentials(private_key)
        logger.info("Loaded configured VAPID key pair")
    else:
        creds = generate_credentials()
        logger.info("Generated new VAPID key pair")
    logger.info("VAPID Public Key: %s", creds.public_key)
    return creds
