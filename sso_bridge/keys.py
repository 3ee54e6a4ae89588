"""
HMAC key for the Discourse SSO payload signature.
Derived once from DISCOURSE_SECRET and reused for every request in both directions.
"""
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigningKey:
    """Opaque HMAC-SHA256 key material. repr never shows the secret."""

    material: bytes = field(repr=False)


def derive_key(secret: str) -> SigningKey:
    if not secret:
        raise RuntimeError("DISCOURSE_SECRET is empty; refusing to sign or verify SSO payloads")
    return SigningKey(material=secret.encode("utf-8"))


# Module-level state (set at app startup)
_signing_key: SigningKey | None = None


def get_signing_key() -> SigningKey:
    """Return the process-wide signing key, deriving it on first use."""
    global _signing_key
    if _signing_key is None:
        from sso_bridge.config import DISCOURSE_SECRET

        _signing_key = derive_key(DISCOURSE_SECRET)
        logger.info("Derived Discourse SSO signing key")
    return _signing_key


def reset_signing_key() -> None:
    """Forget the memoized key (tests only)."""
    global _signing_key
    _signing_key = None
