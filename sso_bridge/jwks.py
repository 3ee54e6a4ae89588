"""
Ghost member identity tokens: JWKS key cache and RS512 verification.

Keys are fetched from Ghost's members JWKS endpoint on first use and kept for the
life of the process. They are never refreshed: a key rotated on the Ghost side
is only picked up after a restart, and a token with an unknown kid is rejected.
"""
import asyncio
import logging

import jwt
from cryptography.hazmat.primitives import serialization
from jwt.algorithms import RSAAlgorithm

from sso_bridge.errors import InvalidProof
from sso_bridge.ghost import GhostClient

logger = logging.getLogger(__name__)

MEMBER_TOKEN_ALGORITHMS = ["RS512"]


def jwk_to_pem(jwk: dict) -> tuple[str | None, str]:
    """(kid, PKCS#1 PEM) for an RSA JWK."""
    public_key = RSAAlgorithm.from_jwk(jwk)
    pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.PKCS1,
    )
    return jwk.get("kid"), pem.decode("ascii")


class MemberKeySet:
    """
    Populate-once cache of Ghost's member signing keys, keyed by kid.
    Concurrent first requests share a single fetch; the key map is published in
    one assignment so readers never see a partial set.
    """

    def __init__(self, ghost: GhostClient):
        self._ghost = ghost
        self._keys: dict[str, str] | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._keys is not None

    async def _ensure_loaded(self) -> dict[str, str]:
        if self._keys is not None:
            return self._keys
        async with self._lock:
            if self._keys is None:
                keys = {}
                for jwk in await self._ghost.get_jwks():
                    try:
                        kid, pem = jwk_to_pem(jwk)
                    except (jwt.InvalidKeyError, ValueError, KeyError, TypeError) as e:
                        logger.warning("Skipping unusable JWK from Ghost: %s", e)
                        continue
                    # Keys without a kid can never be selected
                    if kid:
                        keys[kid] = pem
                self._keys = keys
                logger.info("Loaded %d Ghost member signing key(s)", len(keys))
        return self._keys

    async def get_key(self, kid: str | None) -> str:
        """PEM for kid. Raises InvalidProof when kid is missing or unknown."""
        keys = await self._ensure_loaded()
        if not kid:
            raise InvalidProof("No kid")
        pem = keys.get(kid)
        if pem is None:
            raise InvalidProof("Unable to find key with kid")
        return pem

    async def verify(self, token: str) -> str:
        """
        Verify a member identity token (RS512, issuer = Ghost members API) and
        return its subject, the member's email. Raises InvalidProof.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise InvalidProof(str(e))
        pem = await self.get_key(header.get("kid"))
        try:
            payload = jwt.decode(
                token,
                pem,
                algorithms=MEMBER_TOKEN_ALGORITHMS,
                issuer=self._ghost.jwt_issuer,
                options={"verify_aud": False, "require": ["sub"]},
            )
        except jwt.InvalidTokenError as e:
            logger.debug("Member JWT verification failed: %s", e)
            raise InvalidProof(str(e))
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidProof("Token has no subject")
        return subject


_member_keys: MemberKeySet | None = None


def get_member_keys() -> MemberKeySet:
    """Dependency: process-wide key set bound to the shared Ghost client."""
    global _member_keys
    if _member_keys is None:
        from sso_bridge.ghost import get_ghost_client

        _member_keys = MemberKeySet(get_ghost_client())
    return _member_keys


def reset_member_keys() -> None:
    """Forget the cached key set so the next request binds to a fresh Ghost client."""
    global _member_keys
    _member_keys = None
