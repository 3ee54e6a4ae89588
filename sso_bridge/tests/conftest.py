"""
Pytest configuration for sso_bridge. Config is read at import time, so the
environment is fixed here before any sso_bridge module is imported.
"""
import os
import time

os.environ["GHOST_URL"] = "https://blog.example/"
os.environ["GHOST_ADMIN_URL"] = ""
os.environ["GHOST_ADMIN_API_KEY"] = "6489a1c0ffee:" + "ab" * 32
os.environ["DISCOURSE_SECRET"] = "test-discourse-secret"
os.environ["SSO_METHOD"] = "session"
os.environ["JWT_GHOST_SSO_PATH"] = "/discourse-sso/"
for _name in ("NO_AUTH_REDIRECT", "OBSCURE_GHOST_SSO_PATH", "LOG_GHOST_REQUESTS"):
    os.environ.pop(_name, None)

import httpx
import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi.testclient import TestClient

from sso_bridge import config
from sso_bridge.ghost import GhostClient, get_ghost_client
from sso_bridge.jwks import MemberKeySet, get_member_keys
from sso_bridge.keys import get_signing_key
from sso_bridge.main import build_app
from sso_bridge.payload import encode_and_sign

RETURN_URL = "https://forum.example/session/sso_login"
MEMBER_KID = "member-key"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def make_jwk(private_key, kid: str = MEMBER_KID) -> dict:
    pub = private_key.public_key().public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "alg": "RS512",
        "use": "sig",
        "n": _int_to_b64url(pub.n),
        "e": _int_to_b64url(pub.e),
    }


def make_member_token(private_key, sub: str, *, kid: str = MEMBER_KID, iss: str | None = None, exp_in: int = 600) -> str:
    """Identity token shaped like the ones Ghost hands to logged-in members."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "kid": kid,
        "iss": iss or f"{config.GHOST_URL.rstrip('/')}/members/api",
        "aud": f"{config.GHOST_URL.rstrip('/')}/members/api",
        "iat": now,
        "exp": now + exp_in,
    }
    token = jwt.encode(payload, private_key, algorithm="RS512", headers={"kid": kid})
    return token.decode("utf-8") if isinstance(token, bytes) else token


def make_discourse_request(nonce: str = "n1", return_url: str = RETURN_URL, **extra) -> tuple[str, str]:
    """(sso, sig) as Discourse would send them."""
    return encode_and_sign({"nonce": nonce, "return_sso_url": return_url, **extra}, get_signing_key())


def member_json(**overrides) -> dict:
    data = {
        "uuid": "u1",
        "email": "a@b.com",
        "name": "Ada",
        "avatar_image": "https://gravatar.com/avatar/x?d=blank",
        "subscriptions": [{"tier": {"slug": "Gold Tier", "active": True}}],
    }
    data.update(overrides)
    return data


@pytest.fixture(scope="session")
def member_signing_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def ghost_requests():
    """Requests seen by the mocked Ghost, in order."""
    return []


@pytest.fixture
def make_client(ghost_requests):
    """
    Build a TestClient for the given SSO method with Ghost replaced by `handler`
    (a function httpx.Request -> httpx.Response).
    """

    def _make(sso_method: str, handler=None) -> TestClient:
        def _record(request: httpx.Request) -> httpx.Response:
            ghost_requests.append(request)
            if handler is None:
                return httpx.Response(500)
            return handler(request)

        app = build_app(sso_method)
        ghost = GhostClient(
            config.GHOST_URL,
            config.GHOST_ADMIN_URL,
            config.GHOST_ADMIN_API_KEY,
            transport=httpx.MockTransport(_record),
        )
        keys = MemberKeySet(ghost)
        app.dependency_overrides[get_ghost_client] = lambda: ghost
        app.dependency_overrides[get_member_keys] = lambda: keys
        return TestClient(app)

    return _make
