"""
Discourse SSO payload codec.
Inbound: verify HMAC over the still-encoded payload, then base64-decode and parse.
Outbound: urlencode, base64-encode, sign the base64 text.
The signature always covers the transport form, never the parsed fields.
"""
import base64
import binascii
import hashlib
import hmac
import logging
from urllib.parse import parse_qsl, urlencode

from sso_bridge.errors import MalformedRequest, SignatureInvalid
from sso_bridge.keys import SigningKey
from sso_bridge.urls import set_query_params

logger = logging.getLogger(__name__)


def sign(encoded: str, key: SigningKey) -> str:
    """Hex HMAC-SHA256 of the encoded payload."""
    return hmac.new(key.material, encoded.encode("utf-8"), hashlib.sha256).hexdigest()


def verify(encoded: str, signature: str, key: SigningKey) -> bool:
    """Constant-time comparison of the expected signature with the supplied hex string."""
    expected = sign(encoded, key)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def decode_and_verify(encoded: str, signature: str, key: SigningKey) -> dict[str, str]:
    """
    Verify and decode an inbound payload. Raises SignatureInvalid before any
    decoding is attempted when the signature does not match.
    Unknown fields are kept; for repeated fields the first value wins.
    """
    if not verify(encoded, signature, key):
        logger.debug("Rejected SSO payload with invalid signature")
        raise SignatureInvalid()

    try:
        # Non-alphabet characters (e.g. line breaks from Base64.encode64) are discarded
        raw = base64.b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise MalformedRequest("Unable to decode SSO payload")

    fields: dict[str, str] = {}
    for name, value in parse_qsl(raw, keep_blank_values=True):
        fields.setdefault(name, value)
    return fields


def encode_and_sign(fields: dict[str, str | None], key: SigningKey) -> tuple[str, str]:
    """
    Serialize fields (None values omitted entirely), base64-encode and sign.
    Returns (encoded, signature).
    """
    present = [(name, value) for name, value in fields.items() if value is not None]
    encoded = base64.b64encode(urlencode(present).encode("utf-8")).decode("ascii")
    return encoded, sign(encoded, key)


def add_payload_to_url(url: str, fields: dict[str, str | None], key: SigningKey) -> str:
    """Sign fields and set them as sso/sig on url (e.g. Discourse's return_sso_url)."""
    encoded, signature = encode_and_sign(fields, key)
    return set_query_params(url, {"sso": encoded, "sig": signature})
